"""
Card state machine for the fixed interval ladder.

Maps (state, step_index, ease_factor, grade, now) to the card's next
schedule. Pure and synchronous: no storage access, no clock reads.

Grading:
    Again (0) → back to the start of the active ladder
    Hard  (1) → repeat the current step
    Good  (2) → advance one step (graduating out of learning at the top)
    Easy  (3) → graduate immediately / skip one step ahead

``ease_factor`` is carried through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from learn_tutor.db.models.enums import CardState, Grade
from learn_tutor.study import ladder
from learn_tutor.study.exceptions import InvalidCardStateError, InvalidGradeError


@dataclass(frozen=True)
class ScheduleResult:
    """Next schedule for a card after one grade."""

    card_state: CardState
    step_index: int
    interval_days: float
    due_date: datetime
    ease_factor: float


def parse_state(value: str | CardState, card_id: int | None = None) -> CardState:
    """Resolve a stored state value, refusing anything outside the vocabulary."""
    try:
        return CardState(value)
    except ValueError:
        raise InvalidCardStateError(value, card_id) from None


def parse_grade(value: int | Grade) -> Grade:
    """Resolve a grade ordinal, refusing booleans and out-of-range values."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidGradeError(value)
    try:
        return Grade(value)
    except ValueError:
        raise InvalidGradeError(value) from None


def transition(
    state: str | CardState,
    step_index: int,
    ease_factor: float,
    grade: int | Grade,
    now: datetime,
) -> ScheduleResult:
    """
    Compute the next schedule for a card.

    Args:
        state: Current card state (new, learning, review, relearning)
        step_index: Position in the ladder for that state
        ease_factor: Passed through unchanged
        grade: 0 Again, 1 Hard, 2 Good, 3 Easy
        now: Reference time for the new due date

    Returns:
        ScheduleResult with the new state, step, interval and due date

    Raises:
        InvalidCardStateError: state is not one of the four known values
        InvalidGradeError: grade is not 0-3
    """
    card_state = parse_state(state)
    grade = parse_grade(grade)

    if card_state in (CardState.NEW, CardState.LEARNING):
        return _process_learning(step_index, ease_factor, grade, now)
    return _process_review(step_index, ease_factor, grade, now)


def _process_learning(step: int, ease: float, grade: Grade, now: datetime) -> ScheduleResult:
    if grade == Grade.AGAIN:
        return ScheduleResult(
            card_state=CardState.LEARNING,
            step_index=0,
            interval_days=0,
            due_date=ladder.add_minutes(now, ladder.LEARNING_STEPS_MINUTES[0]),
            ease_factor=ease,
        )

    if grade == Grade.HARD:
        # No day floor here, unlike Hard on a review card
        return ScheduleResult(
            card_state=CardState.LEARNING,
            step_index=step,
            interval_days=0,
            due_date=ladder.add_minutes(now, ladder.learning_delay(step)),
            ease_factor=ease,
        )

    if grade == Grade.GOOD:
        next_step = step + 1
        if next_step < len(ladder.LEARNING_STEPS_MINUTES):
            return ScheduleResult(
                card_state=CardState.LEARNING,
                step_index=next_step,
                interval_days=0,
                due_date=ladder.add_minutes(now, ladder.LEARNING_STEPS_MINUTES[next_step]),
                ease_factor=ease,
            )
        return _graduate(ladder.GRADUATE_STEP, ease, now)

    return _graduate(ladder.EASY_GRADUATE_STEP, ease, now)


def _graduate(review_step: int, ease: float, now: datetime) -> ScheduleResult:
    interval = ladder.REVIEW_INTERVAL_DAYS[review_step]
    return ScheduleResult(
        card_state=CardState.REVIEW,
        step_index=review_step,
        interval_days=interval,
        due_date=ladder.add_days(now, interval),
        ease_factor=ease,
    )


def _process_review(step: int, ease: float, grade: Grade, now: datetime) -> ScheduleResult:
    if grade == Grade.AGAIN:
        # Lapse
        return ScheduleResult(
            card_state=CardState.RELEARNING,
            step_index=0,
            interval_days=0,
            due_date=ladder.add_minutes(now, ladder.RELEARN_DELAY_MINUTES),
            ease_factor=ease,
        )

    if grade == Grade.HARD:
        held = min(step, ladder.MAX_REVIEW_STEP)
        interval = ladder.REVIEW_INTERVAL_DAYS[held]
        return ScheduleResult(
            card_state=CardState.REVIEW,
            step_index=held,
            interval_days=interval,
            due_date=ladder.add_days(now, max(interval, 1)),
            ease_factor=ease,
        )

    advance = 1 if grade == Grade.GOOD else 2
    next_step = min(step + advance, ladder.MAX_REVIEW_STEP)
    interval = ladder.REVIEW_INTERVAL_DAYS[next_step]
    return ScheduleResult(
        card_state=CardState.REVIEW,
        step_index=next_step,
        interval_days=interval,
        due_date=ladder.add_days(now, interval),
        ease_factor=ease,
    )
