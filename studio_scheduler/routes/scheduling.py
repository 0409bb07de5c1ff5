"""
Scheduling API Routes
Run the matcher, review suggestions and act on them.
"""

from fastapi import APIRouter, Depends, Query

from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.domain import SchedulingError
from studio_scheduler.features.matching.service import MatchingService
from studio_scheduler.features.suggestions.service import SuggestionOutcome, SuggestionService
from studio_scheduler.infrastructure.observability.logging import get_logger
from studio_scheduler.models.api.scheduling_request import SuggestionActionRequest
from studio_scheduler.models.api.scheduling_response import (
    AnalysisResponse,
    BookingResponse,
    InsightResponse,
    InsightsResponse,
    SuggestionActionResponse,
    SuggestionListResponse,
    SuggestionResponse,
)
from studio_scheduler.routes.dependencies import (
    get_matching_service,
    get_suggestion_service,
    http_error,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


def suggestion_action_response(outcome: SuggestionOutcome) -> SuggestionActionResponse:
    return SuggestionActionResponse(
        success=outcome.success,
        message=outcome.message,
        suggestion=SuggestionResponse.from_domain(outcome.suggestion),
        booking=BookingResponse.from_domain(outcome.booking),
        event_id=outcome.event_id,
        notification_sent=outcome.notification_sent,
        notification_error=outcome.notification_error,
    )


@router.post("/analysis", response_model=AnalysisResponse)
async def run_analysis(service: MatchingService = Depends(get_matching_service)):
    """Regenerate pending suggestions for every unscheduled booking."""
    try:
        result = await service.run_analysis()
    except (SchedulingError, DatabaseError) as e:
        logger.error("Scheduling analysis failed", error=str(e))
        raise http_error(e) from e

    return AnalysisResponse(
        success=result.success,
        message=result.message,
        bookings_considered=result.bookings_considered,
        slots_considered=result.slots_considered,
        replaced=result.replaced,
        suggestions=[SuggestionResponse.from_domain(s) for s in result.suggestions],
        duration_ms=result.duration_ms,
    )


@router.get("/suggestions", response_model=SuggestionListResponse)
async def list_suggestions(
    status_filter: str = Query(default="pending", alias="status"),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """List suggestions in a status, most confident first."""
    try:
        suggestions = await service.list_by_status(status_filter)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e

    return SuggestionListResponse(
        suggestions=[SuggestionResponse.from_domain(s) for s in suggestions],
        total_count=len(suggestions),
    )


@router.get("/insights", response_model=InsightsResponse)
async def get_insights(service: MatchingService = Depends(get_matching_service)):
    try:
        insights = await service.insights()
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e

    return InsightsResponse(insights=[InsightResponse.from_domain(i) for i in insights])


@router.post("/suggestions/{suggestion_id}/send", response_model=SuggestionActionResponse)
async def send_suggestion(
    suggestion_id: str,
    request: SuggestionActionRequest | None = None,
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Email the client the proposed date with confirm/decline links."""
    actor = request.actor if request else None
    try:
        outcome = await service.send_to_client(suggestion_id, actor=actor)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return suggestion_action_response(outcome)


@router.post("/suggestions/{suggestion_id}/accept", response_model=SuggestionActionResponse)
async def accept_suggestion(
    suggestion_id: str,
    request: SuggestionActionRequest | None = None,
    service: SuggestionService = Depends(get_suggestion_service),
):
    """Schedule the booking on the suggested date without asking the client."""
    actor = request.actor if request else None
    try:
        outcome = await service.accept(suggestion_id, actor=actor)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return suggestion_action_response(outcome)


@router.post("/suggestions/{suggestion_id}/dismiss", response_model=SuggestionActionResponse)
async def dismiss_suggestion(
    suggestion_id: str,
    request: SuggestionActionRequest | None = None,
    service: SuggestionService = Depends(get_suggestion_service),
):
    actor = request.actor if request else None
    try:
        outcome = await service.dismiss(suggestion_id, actor=actor)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return suggestion_action_response(outcome)


@router.post("/suggestions/{suggestion_id}/reject", response_model=SuggestionActionResponse)
async def reject_suggestion(
    suggestion_id: str,
    request: SuggestionActionRequest | None = None,
    service: SuggestionService = Depends(get_suggestion_service),
):
    actor = request.actor if request else None
    try:
        outcome = await service.reject(suggestion_id, actor=actor)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return suggestion_action_response(outcome)
