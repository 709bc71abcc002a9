"""
Study activity tables: the append-only review ledger and study sessions.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..types import UTCDateTime, utcnow
from .base import Base
from .content import _in_clause
from .enums import SESSION_STATUSES, SessionStatus


class ReviewHistory(Base):
    """Immutable record of one grading event."""

    __tablename__ = "review_history"
    __table_args__ = (
        CheckConstraint("grade BETWEEN 0 AND 3", name="ck_review_grade"),
        Index("idx_review_date", "reviewed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(
        ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[int | None] = mapped_column(Integer)
    grade: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_interval: Mapped[float | None] = mapped_column(Float)
    new_interval: Mapped[float | None] = mapped_column(Float)
    previous_ease: Mapped[float | None] = mapped_column(Float)
    new_ease: Mapped[float | None] = mapped_column(Float)
    time_taken_ms: Mapped[int | None] = mapped_column(Integer)
    reviewed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class StudySession(Base):
    """One continuous study run and its running counters."""

    __tablename__ = "study_sessions"
    __table_args__ = (
        CheckConstraint(_in_clause("status", SESSION_STATUSES), name="ck_session_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, default="default", nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(Text, default=SessionStatus.ACTIVE.value, nullable=False)
    cards_studied: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cards_correct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    topic_filter: Mapped[str | None] = mapped_column(Text)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE.value

    @property
    def accuracy(self) -> float:
        """Share of graded cards answered Good or Easy (0.0 when empty)."""
        if not self.cards_studied:
            return 0.0
        return self.cards_correct / self.cards_studied
