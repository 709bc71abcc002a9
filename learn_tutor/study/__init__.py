"""
Study Module: spaced-repetition scheduling engine.

Provides:
- Fixed interval ladders (ladder)
- Card state machine (scheduler)
- Tiered study queue assembly (queue_builder)
- Review ledger and session counters (ledger, session_manager)
- Service boundary used by the CLI and API (study_service)
"""

from learn_tutor.study.queue_builder import StudyScope, assemble_queue
from learn_tutor.study.scheduler import ScheduleResult, transition
from learn_tutor.study.session_manager import SessionManager
from learn_tutor.study.study_service import GradeResult, StudyService

__all__ = [
    "ScheduleResult",
    "transition",
    "StudyScope",
    "assemble_queue",
    "SessionManager",
    "StudyService",
    "GradeResult",
]
