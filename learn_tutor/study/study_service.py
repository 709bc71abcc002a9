"""
Study Service: the scheduling engine's boundary.

Provides high-level operations for the CLI and API:
- Start a session and assemble its queue
- Grade a card (state machine + ledger + session counters, atomically)
- End or abandon a session
- Due counts and dashboard aggregates
- Library housekeeping (suspend / unsuspend / reschedule)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from config import get_settings
from learn_tutor.db.database import SessionFactory, session_scope
from learn_tutor.db.models import Card, CardState, SessionStatus, StudySession
from learn_tutor.db.types import utcnow
from learn_tutor.study import reports
from learn_tutor.study.exceptions import SessionNotFoundError
from learn_tutor.study.ladder import add_days
from learn_tutor.study.ledger import load_card, record_grade
from learn_tutor.study.queue_builder import StudyScope, assemble_queue
from learn_tutor.study.scheduler import parse_grade
from learn_tutor.study.session_manager import (
    SessionManager,
    close_study_session,
    open_study_session,
)


@dataclass
class QueuedCard:
    """A card as presented to the learner, flattened with its topic/source."""

    id: int
    topic_id: int
    topic_title: str
    source_id: int
    source_filename: str
    question_type: str
    question_text: str
    answer_text: str
    options_json: str | None
    explanation: str | None
    card_state: str
    step_index: int
    interval_days: float
    ease_factor: float
    due_date: datetime | None
    review_count: int
    lapse_count: int

    @classmethod
    def from_card(cls, card: Card) -> QueuedCard:
        topic = card.topic
        return cls(
            id=card.id,
            topic_id=card.topic_id,
            topic_title=topic.title,
            source_id=topic.source_id,
            source_filename=topic.source.filename,
            question_type=card.question_type,
            question_text=card.question_text,
            answer_text=card.answer_text,
            options_json=card.options_json,
            explanation=card.explanation,
            card_state=card.card_state,
            step_index=card.step_index,
            interval_days=card.interval_days,
            ease_factor=card.ease_factor,
            due_date=card.due_date,
            review_count=card.review_count,
            lapse_count=card.lapse_count,
        )


@dataclass
class StudySessionStart:
    """Result of starting a session: its id and the initial queue."""

    session_id: int
    cards: list[QueuedCard] = field(default_factory=list)

    @property
    def total_available(self) -> int:
        return len(self.cards)


@dataclass
class GradeResult:
    """Authoritative schedule after a grade."""

    card_id: int
    new_state: str
    new_step_index: int
    new_interval_days: float
    new_ease_factor: float
    due_date: datetime


@dataclass
class SessionSummary:
    session_id: int
    status: str
    started_at: datetime
    ended_at: datetime | None
    cards_studied: int
    cards_correct: int
    total_time_ms: int
    topic_filter: str | None

    @classmethod
    def from_row(cls, row: StudySession) -> SessionSummary:
        return cls(
            session_id=row.id,
            status=row.status,
            started_at=row.started_at,
            ended_at=row.ended_at,
            cards_studied=row.cards_studied,
            cards_correct=row.cards_correct,
            total_time_ms=row.total_time_ms,
            topic_filter=row.topic_filter,
        )

    @property
    def accuracy(self) -> float:
        return self.cards_correct / self.cards_studied if self.cards_studied else 0.0


class StudyService:
    """
    High-level service for study operations.

    Coordinates storage, the queue assembler, the state machine and the
    ledger. Holds no card state; the only thing it remembers between calls
    is each learner's current session, via its ``SessionManager``.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        session_manager: SessionManager | None = None,
        default_limit: int | None = None,
    ):
        """
        Initialize study service.

        Args:
            session_factory: Callable returning a new DB session (defaults to SessionLocal)
            session_manager: Shared session-affinity state (one per process)
            default_limit: Queue size when start_session is called without one
        """
        settings = get_settings()
        self._factory = session_factory
        self.sessions = session_manager or SessionManager()
        self.default_limit = default_limit or settings.study_queue_limit
        self.default_learner_id = settings.default_learner_id

    def _scope(self):
        return session_scope(self._factory)

    # ========================================
    # Sessions
    # ========================================

    def start_session(
        self,
        scope: StudyScope | None = None,
        limit: int | None = None,
        learner_id: str | None = None,
        now: datetime | None = None,
    ) -> StudySessionStart:
        """
        Create a session and assemble its initial queue.

        Any session the learner already had running is marked completed first.
        """
        now = now or utcnow()
        learner_id = learner_id or self.default_learner_id
        limit = self.default_limit if limit is None else limit

        previous_id = self.sessions.current(learner_id)
        with self._scope() as db:
            if previous_id is not None:
                try:
                    close_study_session(db, previous_id, SessionStatus.COMPLETED, now)
                except SessionNotFoundError:
                    logger.warning(f"Current session {previous_id} no longer exists; replacing it")
            study_session = open_study_session(db, learner_id, scope, now)
            cards = [QueuedCard.from_card(c) for c in assemble_queue(db, scope, limit, now)]
            session_id = study_session.id

        if previous_id is not None:
            self.sessions.release(previous_id)
        self.sessions.set_current(learner_id, session_id)
        logger.info(f"Session {session_id}: {len(cards)} card(s) queued")
        return StudySessionStart(session_id=session_id, cards=cards)

    def next_cards(
        self,
        scope: StudyScope | None = None,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[QueuedCard]:
        """Assemble a queue without opening a session."""
        now = now or utcnow()
        limit = self.default_limit if limit is None else limit
        with self._scope() as db:
            return [QueuedCard.from_card(c) for c in assemble_queue(db, scope, limit, now)]

    def end_session(self, session_id: int, now: datetime | None = None) -> SessionSummary:
        """Mark a session completed and clear it from the current slot."""
        return self._close(session_id, SessionStatus.COMPLETED, now)

    def abandon_session(self, session_id: int, now: datetime | None = None) -> SessionSummary:
        """Mark a session abandoned (terminated without a completion signal)."""
        return self._close(session_id, SessionStatus.ABANDONED, now)

    def _close(
        self, session_id: int, status: SessionStatus, now: datetime | None
    ) -> SessionSummary:
        now = now or utcnow()
        with self.sessions.serialized(session_id):
            with self._scope() as db:
                summary = SessionSummary.from_row(
                    close_study_session(db, session_id, status, now)
                )
        self.sessions.release(session_id)
        return summary

    def get_session(self, session_id: int) -> SessionSummary | None:
        with self._scope() as db:
            row = db.get(StudySession, session_id)
            return SessionSummary.from_row(row) if row else None

    def current_session_id(self, learner_id: str | None = None) -> int | None:
        return self.sessions.current(learner_id or self.default_learner_id)

    # ========================================
    # Grading
    # ========================================

    def grade_card(
        self,
        card_id: int,
        grade: int,
        elapsed_ms: int | None = None,
        session_id: int | None = None,
        expected_review_count: int | None = None,
        learner_id: str | None = None,
        now: datetime | None = None,
    ) -> GradeResult:
        """
        Apply a grade and return the card's new schedule.

        Args:
            card_id: Card being graded
            grade: 0 Again, 1 Hard, 2 Good, 3 Easy
            elapsed_ms: Time taken to answer
            session_id: Session to credit; defaults to the learner's current one
            expected_review_count: Revision the caller saw when the card was shown
            learner_id: Learner whose current session is used when session_id is None
            now: Reference time (defaults to current UTC time)

        Raises:
            InvalidGradeError, CardNotFoundError, InvalidCardStateError,
            StaleCardStateError, SessionNotFoundError, SessionClosedError
        """
        grade = parse_grade(grade)
        now = now or utcnow()
        if session_id is None:
            session_id = self.sessions.current(learner_id or self.default_learner_id)

        with self.sessions.serialized(session_id):
            with self._scope() as db:
                result = record_grade(
                    db,
                    card_id,
                    grade,
                    now,
                    elapsed_ms=elapsed_ms,
                    session_id=session_id,
                    expected_review_count=expected_review_count,
                )

        return GradeResult(
            card_id=card_id,
            new_state=result.card_state.value,
            new_step_index=result.step_index,
            new_interval_days=result.interval_days,
            new_ease_factor=result.ease_factor,
            due_date=result.due_date,
        )

    # ========================================
    # Reporting
    # ========================================

    def get_due_counts(
        self, scope: StudyScope | None = None, now: datetime | None = None
    ) -> reports.DueCounts:
        """Counts per state for a scope; no queue side effects."""
        with self._scope() as db:
            return reports.count_due(db, scope, now or utcnow())

    def get_card_stats(self, now: datetime | None = None) -> reports.CardStats:
        with self._scope() as db:
            return reports.card_stats(db, now or utcnow())

    def get_schedule_overview(self, now: datetime | None = None) -> reports.ScheduleOverview:
        with self._scope() as db:
            return reports.schedule_overview(db, now or utcnow())

    def get_topic_stats(
        self, source_id: int, now: datetime | None = None
    ) -> list[reports.TopicStats]:
        with self._scope() as db:
            return reports.topic_stats(db, source_id, now or utcnow())

    def get_sources_summary(self, now: datetime | None = None) -> list[reports.SourceSummary]:
        """Card counts per source, newest import first."""
        with self._scope() as db:
            return reports.sources_summary(db, now or utcnow())

    def get_review_report(self, now: datetime | None = None) -> reports.ReviewReport:
        """Per-topic review performance, recent daily activity and the schedule overview."""
        with self._scope() as db:
            return reports.review_report(db, now or utcnow())

    # ========================================
    # Library housekeeping
    # ========================================

    def suspend_card(self, card_id: int) -> None:
        """Exclude a card from queues and due counts."""
        self._set_suspended(card_id, True)

    def unsuspend_card(self, card_id: int) -> None:
        self._set_suspended(card_id, False)

    def _set_suspended(self, card_id: int, suspended: bool) -> None:
        with self._scope() as db:
            card = load_card(db, card_id)
            card.is_suspended = suspended
        logger.info(f"Card {card_id} {'suspended' if suspended else 'unsuspended'}")

    def reschedule_card(
        self,
        card_id: int,
        interval_days: float | None = None,
        due_date: datetime | None = None,
        now: datetime | None = None,
    ) -> datetime:
        """
        Move a studied card's due date by hand.

        An explicit ``due_date`` wins; otherwise the card is pushed
        ``interval_days`` from now and that interval is stored. The ladder
        position and counters are left alone.
        """
        if due_date is None and interval_days is None:
            raise ValueError("Either interval_days or due_date is required")
        if interval_days is not None and interval_days < 0:
            raise ValueError(f"interval_days must be non-negative, got {interval_days}")

        now = now or utcnow()
        with self._scope() as db:
            card = load_card(db, card_id)
            if card.card_state == CardState.NEW.value:
                raise ValueError(f"Card {card_id} has never been studied; nothing to reschedule")
            if due_date is not None:
                card.due_date = due_date
            else:
                card.due_date = add_days(now, interval_days)
                card.interval_days = interval_days
            new_due = card.due_date
        logger.info(f"Card {card_id} rescheduled to {new_due:%Y-%m-%d %H:%M}")
        return new_due

    def get_card(self, card_id: int) -> Card:
        """Fetch a card (detached) for display or verification."""
        with self._scope() as db:
            card = load_card(db, card_id)
            db.expunge(card)
            return card