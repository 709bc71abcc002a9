"""
Review ledger and session aggregator.

``record_grade`` applies one grade as a single unit inside the caller's
transaction: compute the transition, compare-and-swap the card row, append
the history entry, bump the session counters. Any failure propagates so the
surrounding ``session_scope`` rolls everything back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from learn_tutor.db.models import Card, CardState, Grade, ReviewHistory, SessionStatus, StudySession
from learn_tutor.study.exceptions import (
    CardNotFoundError,
    SessionClosedError,
    SessionNotFoundError,
    StaleCardStateError,
)
from learn_tutor.study.scheduler import ScheduleResult, parse_grade, parse_state, transition


@dataclass(frozen=True)
class CardSnapshot:
    """Scheduling fields read immediately before a transition."""

    card_id: int
    card_state: CardState
    step_index: int
    interval_days: float
    ease_factor: float
    review_count: int

    @classmethod
    def read(cls, card: Card) -> CardSnapshot:
        return cls(
            card_id=card.id,
            card_state=parse_state(card.card_state, card.id),
            step_index=card.step_index,
            interval_days=card.interval_days,
            ease_factor=card.ease_factor,
            review_count=card.review_count,
        )


def is_lapse(before: CardState, grade: Grade) -> bool:
    """Again on an established review card (not a learning-phase Again)."""
    return grade == Grade.AGAIN and before == CardState.REVIEW


def load_card(db: Session, card_id: int) -> Card:
    """Read a card fresh from storage, bypassing any identity-map copy."""
    card = db.scalars(
        select(Card).where(Card.id == card_id).execution_options(populate_existing=True)
    ).one_or_none()
    if card is None:
        raise CardNotFoundError(card_id)
    return card


def load_active_session(db: Session, session_id: int) -> StudySession:
    study_session = db.get(StudySession, session_id, populate_existing=True)
    if study_session is None:
        raise SessionNotFoundError(session_id)
    if not study_session.is_active:
        raise SessionClosedError(session_id, study_session.status)
    return study_session


def write_back(
    db: Session, before: CardSnapshot, result: ScheduleResult, lapse: bool, now: datetime
) -> None:
    """
    Persist a transition only if the card is still in the state it was read in.

    Raises:
        StaleCardStateError: another writer advanced the card first
    """
    stmt = (
        update(Card)
        .where(
            Card.id == before.card_id,
            Card.card_state == before.card_state.value,
            Card.step_index == before.step_index,
            Card.interval_days == before.interval_days,
            Card.review_count == before.review_count,
        )
        .values(
            card_state=result.card_state.value,
            step_index=result.step_index,
            interval_days=result.interval_days,
            ease_factor=result.ease_factor,
            due_date=result.due_date,
            review_count=Card.review_count + 1,
            lapse_count=Card.lapse_count + (1 if lapse else 0),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        logger.warning(f"Write-back conflict on card {before.card_id}")
        raise StaleCardStateError(before.card_id)


def apply_session_counters(
    db: Session, session_id: int, grade: Grade, elapsed_ms: int | None
) -> None:
    """Increment a session's running counters in place."""
    stmt = (
        update(StudySession)
        .where(
            StudySession.id == session_id,
            StudySession.status == SessionStatus.ACTIVE.value,
        )
        .values(
            cards_studied=StudySession.cards_studied + 1,
            cards_correct=StudySession.cards_correct + (1 if grade >= Grade.GOOD else 0),
            total_time_ms=StudySession.total_time_ms + (elapsed_ms or 0),
        )
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        raise SessionClosedError(session_id, "no longer active")


def record_grade(
    db: Session,
    card_id: int,
    grade: int | Grade,
    now: datetime,
    elapsed_ms: int | None = None,
    session_id: int | None = None,
    expected_review_count: int | None = None,
) -> ScheduleResult:
    """
    Apply one grade to a card and record it.

    Args:
        db: Open session; the caller owns commit/rollback
        card_id: Card being graded
        grade: 0 Again, 1 Hard, 2 Good, 3 Easy
        now: Reference time for the new due date and the ledger entry
        elapsed_ms: Time the learner took, if measured
        session_id: Study session to credit, if any
        expected_review_count: Revision the caller last saw; a mismatch
            means the grade was already applied and is refused

    Returns:
        The ScheduleResult that was persisted
    """
    grade = parse_grade(grade)
    if elapsed_ms is not None and elapsed_ms < 0:
        raise ValueError(f"elapsed_ms must be non-negative, got {elapsed_ms}")

    card = load_card(db, card_id)
    if expected_review_count is not None and card.review_count != expected_review_count:
        raise StaleCardStateError(
            card_id,
            f"expected review_count {expected_review_count}, found {card.review_count}",
        )
    if session_id is not None:
        load_active_session(db, session_id)

    before = CardSnapshot.read(card)
    result = transition(before.card_state, before.step_index, before.ease_factor, grade, now)
    lapse = is_lapse(before.card_state, grade)

    write_back(db, before, result, lapse, now)
    db.add(
        ReviewHistory(
            card_id=card_id,
            session_id=session_id,
            grade=int(grade),
            previous_interval=before.interval_days,
            new_interval=result.interval_days,
            previous_ease=before.ease_factor,
            new_ease=result.ease_factor,
            time_taken_ms=elapsed_ms,
            reviewed_at=now,
        )
    )
    if session_id is not None:
        apply_session_counters(db, session_id, grade, elapsed_ms)
    db.flush()

    logger.info(
        f"Card {card_id}: {before.card_state.value}@{before.step_index} "
        f"--{grade.name}--> {result.card_state.value}@{result.step_index} "
        f"(due {result.due_date:%Y-%m-%d %H:%M})"
    )
    return result
