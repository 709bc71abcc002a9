"""
Study queue assembly.

Builds the next batch of cards to present, tier by tier:

1. learning / relearning cards that are due
2. review cards that are due
3. new cards (never studied, no due filter)

Each tier skips suspended cards, honours the scope, and only takes what is
left of the budget, so a fresh card can never appear ahead of an overdue
relearn. Assembly is read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import Select, select
from sqlalchemy.orm import Session, selectinload

from learn_tutor.db.models import Card, CardState, Topic


@dataclass(frozen=True)
class StudyScope:
    """
    Optional restriction to one source document or one topic.

    When both are given the topic wins, since it is the narrower filter.
    """

    source_id: int | None = None
    topic_id: int | None = None

    @property
    def is_unscoped(self) -> bool:
        return self.source_id is None and self.topic_id is None

    def describe(self) -> str | None:
        """Short form stored on the session row (``topic:3`` / ``source:2``)."""
        if self.topic_id is not None:
            return f"topic:{self.topic_id}"
        if self.source_id is not None:
            return f"source:{self.source_id}"
        return None


@dataclass(frozen=True)
class QueueTier:
    """One selection step: which states qualify and whether they must be due."""

    name: str
    states: tuple[CardState, ...]
    due_only: bool


QUEUE_TIERS: tuple[QueueTier, ...] = (
    QueueTier("learning", (CardState.LEARNING, CardState.RELEARNING), due_only=True),
    QueueTier("review", (CardState.REVIEW,), due_only=True),
    QueueTier("new", (CardState.NEW,), due_only=False),
)


def apply_scope(stmt: Select, scope: StudyScope | None) -> Select:
    """Restrict a card query to the scope's topic or source."""
    if scope is None or scope.is_unscoped:
        return stmt
    if scope.topic_id is not None:
        return stmt.where(Card.topic_id == scope.topic_id)
    topic_ids = select(Topic.id).where(Topic.source_id == scope.source_id)
    return stmt.where(Card.topic_id.in_(topic_ids))


def tier_statement(
    tier: QueueTier, scope: StudyScope | None, now: datetime, limit: int
) -> Select:
    """Build the query for a single tier, capped at ``limit`` rows."""
    stmt = (
        select(Card)
        .options(selectinload(Card.topic).selectinload(Topic.source))
        .where(
            Card.card_state.in_([s.value for s in tier.states]),
            Card.is_suspended.is_(False),
        )
    )
    if tier.due_only:
        stmt = stmt.where(Card.due_date.is_not(None), Card.due_date <= now)
        stmt = stmt.order_by(Card.due_date, Card.id)
    else:
        stmt = stmt.order_by(Card.id)
    return apply_scope(stmt, scope).limit(limit)


def select_tier(
    session: Session,
    tier: QueueTier,
    scope: StudyScope | None,
    now: datetime,
    limit: int,
) -> list[Card]:
    """Fetch up to ``limit`` cards for one tier."""
    if limit <= 0:
        return []
    return list(session.scalars(tier_statement(tier, scope, now, limit)))


def assemble_queue(
    session: Session,
    scope: StudyScope | None,
    limit: int,
    now: datetime,
) -> list[Card]:
    """
    Select and order the next batch of cards to study.

    Args:
        session: Open database session (only read from)
        scope: Topic/source restriction, or None for all cards
        limit: Maximum number of cards returned
        now: Reference time for "due"

    Returns:
        Up to ``limit`` cards in tier order; empty when nothing is eligible
    """
    queue: list[Card] = []
    for tier in QUEUE_TIERS:
        remaining = limit - len(queue)
        if remaining <= 0:
            break
        cards = select_tier(session, tier, scope, now, remaining)
        logger.debug(f"Queue tier '{tier.name}': {len(cards)} card(s) (budget {remaining})")
        queue.extend(cards)
    return queue
