"""
Study router.

Endpoints for study sessions, grading, due counts and library reports.
"""

from __future__ import annotations

from datetime import date, datetime
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from learn_tutor.study.exceptions import (
    CardNotFoundError,
    InvalidCardStateError,
    InvalidGradeError,
    SchedulingError,
    SessionClosedError,
    SessionNotFoundError,
    StaleCardStateError,
)
from learn_tutor.study.queue_builder import StudyScope
from learn_tutor.study.study_service import StudyService

router = APIRouter()


@lru_cache(maxsize=1)
def get_study_service() -> StudyService:
    """FastAPI dependency: one service (and one session manager) per process."""
    return StudyService()


# ========================================
# Request/Response Models
# ========================================


class StartSessionRequest(BaseModel):
    source_id: int | None = None
    topic_id: int | None = None
    limit: int | None = Field(default=None, ge=0)
    learner_id: str | None = None


class QueuedCardModel(BaseModel):
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


class StartSessionResponse(BaseModel):
    session_id: int
    cards: List[QueuedCardModel]
    total_available: int


class GradeRequest(BaseModel):
    # Range is checked by the engine so every surface reports the same error
    grade: int
    elapsed_ms: int | None = Field(default=None, ge=0)
    session_id: int | None = None
    expected_review_count: int | None = None
    learner_id: str | None = None


class GradeResponse(BaseModel):
    card_id: int
    new_state: str
    new_step_index: int
    new_interval_days: float
    new_ease_factor: float
    due_date: datetime


class SessionResponse(BaseModel):
    session_id: int
    status: str
    started_at: datetime
    ended_at: datetime | None
    cards_studied: int
    cards_correct: int
    total_time_ms: int
    topic_filter: str | None


# ========================================
# Error mapping
# ========================================


def _http_error(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, (CardNotFoundError, SessionNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (InvalidGradeError, InvalidCardStateError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (StaleCardStateError, SessionClosedError)):
        return HTTPException(
            status_code=409, detail={"message": str(exc), "retryable": exc.retryable}
        )
    return HTTPException(status_code=400, detail=str(exc))


def _scope(source_id: int | None, topic_id: int | None) -> StudyScope | None:
    if source_id is None and topic_id is None:
        return None
    return StudyScope(source_id=source_id, topic_id=topic_id)


# ========================================
# Session Endpoints
# ========================================


@router.post("/sessions", response_model=StartSessionResponse, summary="Start a study session")
def start_session(
    request: StartSessionRequest,
    service: StudyService = Depends(get_study_service),
) -> StartSessionResponse:
    """
    Create a session and return its initial queue.

    Queue order: due learning/relearning cards, then due reviews, then new cards.
    """
    started = service.start_session(
        scope=_scope(request.source_id, request.topic_id),
        limit=request.limit,
        learner_id=request.learner_id,
    )
    return StartSessionResponse(
        session_id=started.session_id,
        cards=[QueuedCardModel.model_validate(c, from_attributes=True) for c in started.cards],
        total_available=started.total_available,
    )


@router.post("/sessions/{session_id}/end", response_model=SessionResponse, summary="End a session")
def end_session(
    session_id: int, service: StudyService = Depends(get_study_service)
) -> SessionResponse:
    try:
        summary = service.end_session(session_id)
    except SchedulingError as exc:
        raise _http_error(exc) from exc
    return SessionResponse.model_validate(summary, from_attributes=True)


@router.post(
    "/sessions/{session_id}/abandon", response_model=SessionResponse, summary="Abandon a session"
)
def abandon_session(
    session_id: int, service: StudyService = Depends(get_study_service)
) -> SessionResponse:
    try:
        summary = service.abandon_session(session_id)
    except SchedulingError as exc:
        raise _http_error(exc) from exc
    return SessionResponse.model_validate(summary, from_attributes=True)


# ========================================
# Grading
# ========================================


@router.post("/cards/{card_id}/grade", response_model=GradeResponse, summary="Grade a card")
def grade_card(
    card_id: int,
    request: GradeRequest,
    service: StudyService = Depends(get_study_service),
) -> GradeResponse:
    """
    Apply a grade (0 Again, 1 Hard, 2 Good, 3 Easy) and return the new schedule.

    A 409 with ``retryable: true`` means the card changed since it was read;
    re-fetch and retry.
    """
    try:
        result = service.grade_card(
            card_id,
            request.grade,
            elapsed_ms=request.elapsed_ms,
            session_id=request.session_id,
            expected_review_count=request.expected_review_count,
            learner_id=request.learner_id,
        )
    except SchedulingError as exc:
        logger.info(f"Grade rejected for card {card_id}: {exc}")
        raise _http_error(exc) from exc
    return GradeResponse.model_validate(result, from_attributes=True)


# ========================================
# Reporting
# ========================================


@router.get("/due", summary="Card counts per state")
def get_due_counts(
    source_id: int | None = None,
    topic_id: int | None = None,
    service: StudyService = Depends(get_study_service),
) -> Dict[str, int]:
    return service.get_due_counts(_scope(source_id, topic_id)).to_dict()


@router.get("/stats", summary="Dashboard statistics")
def get_stats(service: StudyService = Depends(get_study_service)) -> Dict[str, Any]:
    """State counts, today's activity, and the schedule overview."""
    card_stats = service.get_card_stats()
    overview = service.get_schedule_overview()
    return {
        **card_stats.counts.to_dict(),
        "reviews_today": card_stats.reviews_today,
        "correct_today": card_stats.correct_today,
        "schedule_overview": {
            "due_today": overview.due_today,
            "due_this_week": overview.due_this_week,
            "due_this_month": overview.due_this_month,
            "due_later": overview.due_later,
            "new_cards": overview.new_cards,
        },
    }


# ========================================
# Library Reports
# ========================================


class SourceSummaryModel(BaseModel):
    source_id: int
    filename: str
    card_count: int
    due_count: int
    new_count: int
    learning_count: int


class TopicStatsModel(BaseModel):
    topic_id: int
    topic_title: str
    card_count: int
    due_count: int
    new_count: int
    learning_count: int


class TopicPerformanceModel(BaseModel):
    topic_id: int
    topic_title: str
    source_filename: str
    total_reviews: int
    correct_count: int
    accuracy_pct: int
    avg_time_sec: float


class DailyStatsModel(BaseModel):
    review_date: date
    review_count: int
    correct_count: int


class ScheduleOverviewModel(BaseModel):
    due_today: int
    due_this_week: int
    due_this_month: int
    due_later: int
    new_cards: int


class ReviewReportResponse(BaseModel):
    topic_stats: List[TopicPerformanceModel]
    daily_stats: List[DailyStatsModel]
    schedule_overview: ScheduleOverviewModel


@router.get("/sources", response_model=List[SourceSummaryModel], summary="Sources with card counts")
def get_sources(service: StudyService = Depends(get_study_service)) -> List[SourceSummaryModel]:
    """Imported sources, newest first, with card/due/new/learning counts."""
    return [
        SourceSummaryModel.model_validate(s, from_attributes=True)
        for s in service.get_sources_summary()
    ]


@router.get(
    "/sources/{source_id}/topics",
    response_model=List[TopicStatsModel],
    summary="Card counts per topic of a source",
)
def get_source_topics(
    source_id: int, service: StudyService = Depends(get_study_service)
) -> List[TopicStatsModel]:
    return [
        TopicStatsModel.model_validate(t, from_attributes=True)
        for t in service.get_topic_stats(source_id)
    ]


@router.get("/reports", response_model=ReviewReportResponse, summary="Review performance report")
def get_reports(service: StudyService = Depends(get_study_service)) -> ReviewReportResponse:
    """Per-topic accuracy and answer time, daily activity for 30 days, schedule overview."""
    return ReviewReportResponse.model_validate(service.get_review_report(), from_attributes=True)
