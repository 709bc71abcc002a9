"""
Library tables: content sources, topics, and the cards generated from them.

Sources and topics are written by the ingestion and generation collaborators;
the scheduler only reads them to resolve a study scope. Cards carry the
scheduling fields the engine mutates.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..types import UTCDateTime, utcnow
from .base import Base
from .enums import CARD_STATES, SOURCE_STATUSES, CardState, SourceStatus


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class ContentSource(Base):
    """An imported document whose extracted text was split into topics."""

    __tablename__ = "content_sources"
    __table_args__ = (
        CheckConstraint("file_type IN ('json','docx','pdf','txt')", name="ck_source_file_type"),
        CheckConstraint(_in_clause("status", SOURCE_STATUSES), name="ck_source_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    file_size_bytes: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(Text, default=SourceStatus.PENDING.value)
    error_message: Mapped[str | None] = mapped_column(Text)
    import_date: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    # Relationships
    topics: Mapped[list[Topic]] = relationship(
        back_populates="source", cascade="all, delete-orphan", passive_deletes=True
    )


class Topic(Base):
    """A titled excerpt of a source; cards belong to exactly one topic."""

    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        ForeignKey("content_sources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    topic_path: Mapped[str] = mapped_column(Text, default="")
    content_text: Mapped[str] = mapped_column(Text, default="")
    sequence_order: Mapped[int] = mapped_column(Integer, default=0)
    word_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    # Relationships
    source: Mapped[ContentSource] = relationship(back_populates="topics")
    cards: Mapped[list[Card]] = relationship(
        back_populates="topic", cascade="all, delete-orphan", passive_deletes=True
    )


class Card(Base):
    """A single study prompt under spaced repetition."""

    __tablename__ = "cards"
    __table_args__ = (
        CheckConstraint(_in_clause("card_state", CARD_STATES), name="ck_card_state"),
        CheckConstraint("step_index >= 0", name="ck_card_step_index"),
        Index("idx_cards_due", "due_date", "card_state"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Content (produced by the generation collaborator)
    question_type: Mapped[str] = mapped_column(Text, default="recall")
    difficulty_tier: Mapped[str] = mapped_column(Text, default="foundational")
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    answer_text: Mapped[str] = mapped_column(Text, nullable=False)
    options_json: Mapped[str | None] = mapped_column(Text)
    explanation: Mapped[str | None] = mapped_column(Text)

    # Scheduling
    card_state: Mapped[str] = mapped_column(
        Text, default=CardState.NEW.value, nullable=False, index=True
    )
    step_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    interval_days: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(UTCDateTime)
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Counters (grading only)
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lapse_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    topic: Mapped[Topic] = relationship(back_populates="cards")

    def __repr__(self) -> str:
        return (
            f"<Card id={self.id} state={self.card_state} step={self.step_index} "
            f"due={self.due_date}>"
        )
