"""
Public booking-status endpoints.

Proposal emails link to the public booking-status page, which POSTs the
client's answer here. POST-only so link prefetchers cannot answer for the
client. The suggestion id is the only credential; an answer can be given
once because the lifecycle refuses to move a suggestion twice.
"""

from fastapi import APIRouter, Depends

from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.domain import SchedulingError
from studio_scheduler.features.suggestions.service import SuggestionService
from studio_scheduler.infrastructure.observability.logging import get_logger
from studio_scheduler.models.api.scheduling_response import SuggestionActionResponse
from studio_scheduler.routes.dependencies import get_suggestion_service, http_error
from studio_scheduler.routes.scheduling import suggestion_action_response

logger = get_logger(__name__)

router = APIRouter(prefix="/booking-status", tags=["booking-status"])


@router.post("/confirm/{suggestion_id}", response_model=SuggestionActionResponse)
async def confirm_schedule(
    suggestion_id: str, service: SuggestionService = Depends(get_suggestion_service)
):
    """Client accepted the proposed date."""
    try:
        outcome = await service.confirm(suggestion_id)
    except (SchedulingError, DatabaseError) as e:
        logger.info("Client confirmation refused", suggestion_id=suggestion_id, error=str(e))
        raise http_error(e) from e
    return suggestion_action_response(outcome)


@router.post("/decline/{suggestion_id}", response_model=SuggestionActionResponse)
async def decline_schedule(
    suggestion_id: str, service: SuggestionService = Depends(get_suggestion_service)
):
    """Client turned the proposed date down."""
    try:
        outcome = await service.decline(suggestion_id)
    except (SchedulingError, DatabaseError) as e:
        logger.info("Client decline refused", suggestion_id=suggestion_id, error=str(e))
        raise http_error(e) from e
    return suggestion_action_response(outcome)
