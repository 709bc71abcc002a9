"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Storage-backed tests run against an in-memory SQLite database.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from learn_tutor.db.database import create_db_engine  # noqa: E402
from learn_tutor.db.models import Base, Card, ContentSource, Topic  # noqa: E402
from learn_tutor.study.session_manager import SessionManager  # noqa: E402
from learn_tutor.study.study_service import StudyService  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands and API routes")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """A fixed reference time so due dates are exact."""
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_engine():
    """Fresh in-memory database shared by every session in the test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def study_service(session_factory):
    """StudyService bound to the in-memory database."""
    return StudyService(session_factory=session_factory, session_manager=SessionManager())


@pytest.fixture
def library(session_factory):
    """
    One source with two topics, plus a second source with one topic.

    Returns a dict of ids: source, other_source, topic_a, topic_b, topic_c.
    """
    with session_factory() as db:
        source = ContentSource(filename="networking.txt", file_type="txt", file_hash="hash-1")
        other = ContentSource(filename="biology.pdf", file_type="pdf", file_hash="hash-2")
        topic_a = Topic(source=source, title="OSI Model", content_text="...", sequence_order=0)
        topic_b = Topic(source=source, title="Subnetting", content_text="...", sequence_order=1)
        topic_c = Topic(source=other, title="Cell Division", content_text="...", sequence_order=0)
        db.add_all([source, other, topic_a, topic_b, topic_c])
        db.commit()
        return {
            "source": source.id,
            "other_source": other.id,
            "topic_a": topic_a.id,
            "topic_b": topic_b.id,
            "topic_c": topic_c.id,
        }


@pytest.fixture
def make_cards(session_factory):
    """
    Factory inserting cards directly with the given scheduling fields.

    Usage: make_cards(topic_id, count, state="review", due=..., step_index=3)
    """

    def _make(
        topic_id,
        count=1,
        state="new",
        due=None,
        step_index=0,
        interval_days=0.0,
        suspended=False,
        review_count=0,
    ):
        with session_factory() as db:
            cards = [
                Card(
                    topic_id=topic_id,
                    question_text=f"Question {i}",
                    answer_text=f"Answer {i}",
                    card_state=state,
                    step_index=step_index,
                    interval_days=interval_days,
                    due_date=due,
                    is_suspended=suspended,
                    review_count=review_count,
                )
                for i in range(count)
            ]
            db.add_all(cards)
            db.commit()
            return [c.id for c in cards]

    return _make
