"""
FastAPI application for learn-tutor.

Provides REST API for:
- Study sessions and queue assembly
- Grading cards through the scheduling engine
- Due counts and dashboard statistics
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from learn_tutor import __version__
from learn_tutor.api.routers import study_router
from learn_tutor.core.logs import configure_logging
from learn_tutor.db.database import get_engine, init_db

settings = get_settings()


def _check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging()
    logger.info("Starting learn-tutor service...")
    init_db()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    logger.info("Shutting down learn-tutor service...")


app = FastAPI(
    title="learn-tutor",
    description="Spaced-repetition scheduling for self-generated study cards.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(study_router, prefix="/api/study", tags=["Study"])


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round-trip."""
    db_status, db_error = _check_database_health()
    return {
        "service": "learn-tutor",
        "version": __version__,
        "status": "ok" if db_status == "ok" else "degraded",
        "database": {"status": db_status, "error": db_error},
    }
