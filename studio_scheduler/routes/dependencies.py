"""
Service providers and error mapping shared by the routers.

Routes take services through ``Depends`` so tests can swap them with
``app.dependency_overrides``.
"""

from fastapi import HTTPException, status

from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.domain import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from studio_scheduler.features.matching.service import MatchingService, matching_service
from studio_scheduler.features.pipeline.service import PipelineService, pipeline_service
from studio_scheduler.features.suggestions.service import SuggestionService, suggestion_service
from studio_scheduler.features.waitlist.service import WaitlistService, waitlist_service
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_ERROR: dict[type[SchedulingError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    ExternalServiceError: 502,
}


def get_matching_service() -> MatchingService:
    return matching_service


def get_suggestion_service() -> SuggestionService:
    return suggestion_service


def get_pipeline_service() -> PipelineService:
    return pipeline_service


def get_waitlist_service() -> WaitlistService:
    return waitlist_service


def http_error(error: SchedulingError | DatabaseError) -> HTTPException:
    """Translate a core or persistence error into an HTTPException."""
    if isinstance(error, DatabaseError):
        logger.error("Database failure in request", operation=error.operation, error=str(error))
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database temporarily unavailable",
        )

    status_code = next(
        (code for cls, code in STATUS_BY_ERROR.items() if isinstance(error, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    return HTTPException(
        status_code=status_code,
        detail={"error_code": error.error_code, "message": error.message},
    )
