from .study_router import router as study_router

__all__ = ["study_router"]
