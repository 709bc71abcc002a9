"""
Read-only aggregates for dashboards and reports.

Nothing here touches the queue or mutates a card. "Due" means the same thing
in every aggregate: a non-suspended review or relearning card whose due date
has passed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import ColumnElement, and_, case, func, select
from sqlalchemy.orm import Session

from learn_tutor.db.models import Card, CardState, ContentSource, ReviewHistory, Topic
from learn_tutor.study.queue_builder import StudyScope, apply_scope
from learn_tutor.study.scheduler import parse_state

SCHEDULED_STATES = (CardState.REVIEW.value, CardState.RELEARNING.value)
IN_LEARNING_STATES = (CardState.LEARNING.value, CardState.RELEARNING.value)
DAILY_STATS_DAYS = 30


@dataclass
class DueCounts:
    """Card counts per state, excluding suspended cards except in ``suspended``."""

    new: int = 0
    learning: int = 0
    review: int = 0
    relearning: int = 0
    suspended: int = 0
    due: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.review + self.relearning

    def to_dict(self) -> dict[str, int]:
        data = asdict(self)
        data["total"] = self.total
        return data


@dataclass
class CardStats:
    """Dashboard summary: state counts plus today's review activity."""

    counts: DueCounts
    reviews_today: int
    correct_today: int

    @property
    def accuracy_today(self) -> float:
        return self.correct_today / self.reviews_today if self.reviews_today else 0.0


@dataclass
class ScheduleOverview:
    """How the scheduled (review/relearning) backlog is spread over time."""

    due_today: int
    due_this_week: int
    due_this_month: int
    due_later: int
    new_cards: int


@dataclass
class TopicStats:
    topic_id: int
    topic_title: str
    card_count: int
    due_count: int
    new_count: int
    learning_count: int


@dataclass
class SourceSummary:
    """Card counts for one imported source, used to pick what to study."""

    source_id: int
    filename: str
    card_count: int
    due_count: int
    new_count: int
    learning_count: int


@dataclass
class TopicPerformance:
    """Review history for one topic, across all its cards."""

    topic_id: int
    topic_title: str
    source_filename: str
    total_reviews: int
    correct_count: int
    accuracy_pct: int
    avg_time_sec: float


@dataclass
class DailyStats:
    review_date: date
    review_count: int
    correct_count: int


@dataclass
class ReviewReport:
    """Everything the reports screen shows."""

    topic_stats: list[TopicPerformance] = field(default_factory=list)
    daily_stats: list[DailyStats] = field(default_factory=list)
    schedule_overview: ScheduleOverview | None = None


def _end_of_day(now: datetime) -> datetime:
    day = now.astimezone(timezone.utc).date()
    return datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc)


def _start_of_day(now: datetime) -> datetime:
    day = now.astimezone(timezone.utc).date()
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _is_due(now: datetime) -> ColumnElement[bool]:
    return and_(
        Card.is_suspended.is_(False),
        Card.card_state.in_(SCHEDULED_STATES),
        Card.due_date.is_not(None),
        Card.due_date <= now,
    )


def _card_breakdown(now: datetime) -> tuple:
    """Card, due, new and in-learning counts for use in a grouped select."""
    active = Card.is_suspended.is_(False)
    return (
        func.count(Card.id),
        func.count(case((_is_due(now), Card.id))),
        func.count(case((and_(active, Card.card_state == CardState.NEW.value), Card.id))),
        func.count(case((and_(active, Card.card_state.in_(IN_LEARNING_STATES)), Card.id))),
    )


def count_due(db: Session, scope: StudyScope | None, now: datetime) -> DueCounts:
    """
    Count cards per state for a scope.

    ``due`` counts review and relearning cards whose due date has passed,
    the same figure the source and topic summaries report.
    """
    counts = DueCounts()

    by_state = select(Card.card_state, func.count(Card.id)).where(Card.is_suspended.is_(False))
    by_state = apply_scope(by_state, scope).group_by(Card.card_state)
    for state, n in db.execute(by_state):
        setattr(counts, parse_state(state).value, n)

    suspended = apply_scope(
        select(func.count(Card.id)).where(Card.is_suspended.is_(True)), scope
    )
    counts.suspended = db.scalar(suspended) or 0

    due = select(func.count(Card.id)).where(_is_due(now))
    counts.due = db.scalar(apply_scope(due, scope)) or 0
    return counts


def card_stats(db: Session, now: datetime) -> CardStats:
    """State counts plus the number of reviews (and correct ones) since midnight UTC."""
    start = _start_of_day(now)
    end = _end_of_day(now)
    today = and_(ReviewHistory.reviewed_at >= start, ReviewHistory.reviewed_at < end)

    reviews_today = db.scalar(select(func.count(ReviewHistory.id)).where(today)) or 0
    correct_today = (
        db.scalar(select(func.count(ReviewHistory.id)).where(today, ReviewHistory.grade >= 2))
        or 0
    )
    return CardStats(
        counts=count_due(db, None, now),
        reviews_today=reviews_today,
        correct_today=correct_today,
    )


def schedule_overview(db: Session, now: datetime) -> ScheduleOverview:
    """Bucket the scheduled backlog into today / 7 days / 30 days / later."""
    end_today = _end_of_day(now)
    week = end_today + timedelta(days=7)
    month = end_today + timedelta(days=30)

    scheduled = and_(
        Card.is_suspended.is_(False),
        Card.card_state.in_(SCHEDULED_STATES),
        Card.due_date.is_not(None),
    )

    def _count(*criteria) -> int:
        return db.scalar(select(func.count(Card.id)).where(scheduled, *criteria)) or 0

    new_cards = (
        db.scalar(
            select(func.count(Card.id)).where(
                Card.is_suspended.is_(False), Card.card_state == CardState.NEW.value
            )
        )
        or 0
    )
    return ScheduleOverview(
        due_today=_count(Card.due_date < end_today),
        due_this_week=_count(Card.due_date < week),
        due_this_month=_count(Card.due_date < month),
        due_later=_count(Card.due_date >= month),
        new_cards=new_cards,
    )


def topic_stats(db: Session, source_id: int, now: datetime) -> list[TopicStats]:
    """Per-topic card counts for one source, in the source's topic order."""
    stmt = (
        select(Topic.id, Topic.title, *_card_breakdown(now))
        .outerjoin(Card, Card.topic_id == Topic.id)
        .where(Topic.source_id == source_id)
        .group_by(Topic.id, Topic.title, Topic.sequence_order)
        .order_by(Topic.sequence_order, Topic.id)
    )
    return [
        TopicStats(
            topic_id=row[0],
            topic_title=row[1],
            card_count=row[2],
            due_count=row[3],
            new_count=row[4],
            learning_count=row[5],
        )
        for row in db.execute(stmt)
    ]


def sources_summary(db: Session, now: datetime) -> list[SourceSummary]:
    """Per-source card counts, most recently imported first."""
    stmt = (
        select(ContentSource.id, ContentSource.filename, *_card_breakdown(now))
        .outerjoin(Topic, Topic.source_id == ContentSource.id)
        .outerjoin(Card, Card.topic_id == Topic.id)
        .group_by(ContentSource.id, ContentSource.filename, ContentSource.import_date)
        .order_by(ContentSource.import_date.desc(), ContentSource.id.desc())
    )
    return [
        SourceSummary(
            source_id=row[0],
            filename=row[1],
            card_count=row[2],
            due_count=row[3],
            new_count=row[4],
            learning_count=row[5],
        )
        for row in db.execute(stmt)
    ]


def topic_performance(db: Session) -> list[TopicPerformance]:
    """Review totals, accuracy and mean answer time per topic."""
    correct = case((ReviewHistory.grade >= 2, ReviewHistory.id))
    stmt = (
        select(
            Topic.id,
            Topic.title,
            ContentSource.filename,
            func.count(ReviewHistory.id),
            func.count(correct),
            func.avg(ReviewHistory.time_taken_ms),
        )
        .join(ContentSource, ContentSource.id == Topic.source_id)
        .outerjoin(Card, Card.topic_id == Topic.id)
        .outerjoin(ReviewHistory, ReviewHistory.card_id == Card.id)
        .group_by(Topic.id, Topic.title, ContentSource.filename)
        .order_by(ContentSource.filename, Topic.title)
    )
    performance = []
    for topic_id, title, filename, total, correct_count, avg_ms in db.execute(stmt):
        performance.append(
            TopicPerformance(
                topic_id=topic_id,
                topic_title=title,
                source_filename=filename,
                total_reviews=total,
                correct_count=correct_count,
                accuracy_pct=round(correct_count * 100 / total) if total else 0,
                avg_time_sec=round(float(avg_ms) / 1000, 1) if avg_ms is not None else 0.0,
            )
        )
    return performance


def _as_date(value: date | str) -> date:
    # SQLite's date() returns text
    return date.fromisoformat(value) if isinstance(value, str) else value


def daily_stats(db: Session, now: datetime, days: int = DAILY_STATS_DAYS) -> list[DailyStats]:
    """Reviews and correct answers per UTC day, oldest first, for the last ``days`` days."""
    since = _start_of_day(now) - timedelta(days=days)
    review_day = func.date(ReviewHistory.reviewed_at)
    stmt = (
        select(
            review_day,
            func.count(ReviewHistory.id),
            func.count(case((ReviewHistory.grade >= 2, ReviewHistory.id))),
        )
        .where(ReviewHistory.reviewed_at >= since)
        .group_by(review_day)
        .order_by(review_day)
    )
    return [
        DailyStats(review_date=_as_date(day), review_count=total, correct_count=correct)
        for day, total, correct in db.execute(stmt)
    ]


def review_report(db: Session, now: datetime) -> ReviewReport:
    """Topic performance, the daily activity window and the schedule overview."""
    return ReviewReport(
        topic_stats=topic_performance(db),
        daily_stats=daily_stats(db, now),
        schedule_overview=schedule_overview(db, now),
    )
