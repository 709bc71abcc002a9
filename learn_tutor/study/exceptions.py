"""
Errors raised by the scheduling engine.

Callers can catch ``SchedulingError`` for any engine failure, or branch on
``retryable`` to decide whether re-fetching and retrying makes sense.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for scheduling engine errors."""

    retryable: bool = False


class InvalidCardStateError(SchedulingError):
    """Raised when a stored card carries an unknown scheduling state."""

    def __init__(self, state: object, card_id: int | None = None):
        self.state = state
        self.card_id = card_id
        where = f" on card {card_id}" if card_id is not None else ""
        super().__init__(f"Unknown card state{where}: {state!r}")


class InvalidGradeError(SchedulingError):
    """Raised when a grade is outside Again/Hard/Good/Easy (0-3)."""

    def __init__(self, grade: object):
        self.grade = grade
        super().__init__(f"Invalid grade {grade!r}; expected one of 0, 1, 2, 3")


class CardNotFoundError(SchedulingError):
    """Raised when a card id does not exist in storage."""

    def __init__(self, card_id: int):
        self.card_id = card_id
        super().__init__(f"Card not found: {card_id}")


class SessionNotFoundError(SchedulingError):
    """Raised when a study session id does not exist in storage."""

    def __init__(self, session_id: int):
        self.session_id = session_id
        super().__init__(f"Study session not found: {session_id}")


class SessionClosedError(SchedulingError):
    """Raised when grading into a session that is no longer active."""

    def __init__(self, session_id: int, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Study session {session_id} is {status}, not active")


class StaleCardStateError(SchedulingError):
    """
    Raised when a card changed between read and write-back.

    Recoverable: re-fetch the card and retry with fresh input.
    """

    retryable = True

    def __init__(self, card_id: int, detail: str = "card was modified concurrently"):
        self.card_id = card_id
        super().__init__(f"Stale state for card {card_id}: {detail}")
