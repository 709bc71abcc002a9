from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from learn_tutor.db.models.base import Base

settings = get_settings()

SessionFactory = Callable[[], Session]


def create_db_engine(url: str, echo: bool = False, **engine_kwargs: Any) -> Engine:
    """Create an engine, enabling foreign keys and thread sharing on SQLite."""
    if url.startswith("sqlite"):
        db_engine = create_engine(
            url, echo=echo, connect_args={"check_same_thread": False}, **engine_kwargs
        )

        @event.listens_for(db_engine, "connect")
        def _enable_sqlite_fks(dbapi_conn, _record) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return db_engine
    return create_engine(url, echo=echo, pool_pre_ping=True, **engine_kwargs)


# Sync engine/session
engine = create_db_engine(settings.database_url, echo=settings.log_level == "DEBUG")
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    """Get the database engine."""
    return engine


def init_db(bind: Engine | None = None) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables initialized")


@contextmanager
def session_scope(factory: SessionFactory | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()
