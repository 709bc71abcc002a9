# SQLAlchemy models
from .base import Base
from .content import Card, ContentSource, Topic
from .enums import CardState, Grade, SessionStatus, SourceStatus
from .study import ReviewHistory, StudySession

__all__ = [
    # Base
    "Base",
    # Library
    "ContentSource",
    "Topic",
    "Card",
    # Study activity
    "ReviewHistory",
    "StudySession",
    # Vocabularies
    "CardState",
    "Grade",
    "SessionStatus",
    "SourceStatus",
]
