"""
Persisted vocabularies.

Values are stored verbatim so reporting collaborators can read them without
translation tables.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class CardState(str, Enum):
    """Scheduling state of a card."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class Grade(IntEnum):
    """Learner's self-reported recall quality."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3


class SessionStatus(str, Enum):
    """Lifecycle status of a study session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SourceStatus(str, Enum):
    """Processing status of an imported content source."""

    PENDING = "pending"
    PROCESSING = "processing"
    IMPORTED = "imported"
    PROCESSED = "processed"
    ERROR = "error"


CARD_STATES = tuple(s.value for s in CardState)
SESSION_STATUSES = tuple(s.value for s in SessionStatus)
SOURCE_STATUSES = tuple(s.value for s in SourceStatus)
