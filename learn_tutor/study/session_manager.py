"""
Study session lifecycle and per-process session affinity.

``SessionManager`` keeps, for each learner, the id of the session currently
accruing counters, plus one lock per session id so grading calls against the
same session run one at a time. It holds ids only; session rows live in
storage.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session

from learn_tutor.db.models import SessionStatus, StudySession
from learn_tutor.study.exceptions import SessionClosedError, SessionNotFoundError
from learn_tutor.study.queue_builder import StudyScope

TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class SessionManager:
    """Current-session slot per learner and serialisation per session."""

    def __init__(self):
        self._guard = threading.Lock()
        self._current: dict[str, int] = {}
        self._session_locks: dict[int, threading.Lock] = {}

    def current(self, learner_id: str) -> int | None:
        """Id of the learner's current session, if any."""
        with self._guard:
            return self._current.get(learner_id)

    def set_current(self, learner_id: str, session_id: int) -> int | None:
        """Point the learner's slot at a session, returning the previous id."""
        with self._guard:
            previous = self._current.get(learner_id)
            self._current[learner_id] = session_id
            return previous

    def release(self, session_id: int) -> None:
        """Clear any slot holding this session and drop its lock."""
        with self._guard:
            for learner_id, current_id in list(self._current.items()):
                if current_id == session_id:
                    del self._current[learner_id]
            self._session_locks.pop(session_id, None)

    @contextmanager
    def serialized(self, session_id: int | None) -> Iterator[None]:
        """
        Hold the session's lock for the duration of the block.

        If the block finds the session gone or closed, the session is
        released so its lock and any slot pointing at it are dropped.
        """
        if session_id is None:
            yield
            return
        with self._guard:
            lock = self._session_locks.setdefault(session_id, threading.Lock())
        try:
            with lock:
                yield
        except (SessionClosedError, SessionNotFoundError):
            self.release(session_id)
            raise

    def tracked_sessions(self) -> set[int]:
        """Ids that currently hold a lock."""
        with self._guard:
            return set(self._session_locks)


def open_study_session(
    db: Session, learner_id: str, scope: StudyScope | None, now: datetime
) -> StudySession:
    """Insert a new active session row."""
    study_session = StudySession(
        learner_id=learner_id,
        started_at=now,
        status=SessionStatus.ACTIVE.value,
        topic_filter=scope.describe() if scope else None,
    )
    db.add(study_session)
    db.flush()
    logger.info(
        f"Study session {study_session.id} started for '{learner_id}' "
        f"(scope={study_session.topic_filter or 'all'})"
    )
    return study_session


def close_study_session(
    db: Session, session_id: int, status: SessionStatus, now: datetime
) -> StudySession:
    """
    Move an active session to a terminal status.

    Sessions already completed or abandoned are returned unchanged; a
    terminal session never reopens or switches terminal status.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Not a terminal session status: {status}")

    study_session = db.get(StudySession, session_id, populate_existing=True)
    if study_session is None:
        raise SessionNotFoundError(session_id)
    if not study_session.is_active:
        logger.debug(f"Study session {session_id} already {study_session.status}")
        return study_session

    study_session.status = status.value
    study_session.ended_at = now
    db.flush()
    logger.info(
        f"Study session {session_id} {status.value}: "
        f"{study_session.cards_studied} studied, {study_session.cards_correct} correct"
    )
    return study_session
