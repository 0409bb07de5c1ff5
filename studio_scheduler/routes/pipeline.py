"""
Pipeline API Routes
Stage transitions, field edits and the activity timeline for bookings.
"""

from fastapi import APIRouter, Depends

from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.domain import SchedulingError
from studio_scheduler.features.pipeline.service import PipelineOutcome, PipelineService
from studio_scheduler.features.waitlist.service import WaitlistService
from studio_scheduler.infrastructure.observability.logging import get_logger
from studio_scheduler.models.api.scheduling_request import (
    FieldUpdateRequest,
    StageTransitionRequest,
)
from studio_scheduler.models.api.scheduling_response import (
    ActivityListResponse,
    ActivityResponse,
    BookingResponse,
    PipelineActionResponse,
)
from studio_scheduler.routes.dependencies import (
    get_pipeline_service,
    get_waitlist_service,
    http_error,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["pipeline"])


def _action_response(
    outcome: PipelineOutcome, waitlist_offers: int = 0
) -> PipelineActionResponse:
    return PipelineActionResponse(
        success=outcome.success,
        message=outcome.message,
        booking=BookingResponse.from_domain(outcome.booking),
        activity=ActivityResponse.from_domain(outcome.activity),
        freed_slot_id=outcome.freed_slot_id,
        waitlist_offers=waitlist_offers,
    )


@router.post("/{booking_id}/stage", response_model=PipelineActionResponse)
async def move_stage(
    booking_id: str,
    request: StageTransitionRequest,
    service: PipelineService = Depends(get_pipeline_service),
    waitlist: WaitlistService = Depends(get_waitlist_service),
):
    """Move a booking; a cancelled session's slot is offered to the waitlist."""
    try:
        outcome = await service.transition(booking_id, request.target_stage, actor=request.actor)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e

    waitlist_offers = 0
    if outcome.freed_slot_id:
        # The cancellation is committed; a failed offer run is only reported
        try:
            offers = await waitlist.handle_capacity_freed(outcome.freed_slot_id)
            waitlist_offers = len(offers)
        except (SchedulingError, DatabaseError) as e:
            logger.warning(
                "Waitlist offer for freed slot failed",
                booking_id=booking_id,
                slot_id=outcome.freed_slot_id,
                error=str(e),
            )

    return _action_response(outcome, waitlist_offers)


@router.patch("/{booking_id}/fields", response_model=PipelineActionResponse)
async def update_field(
    booking_id: str,
    request: FieldUpdateRequest,
    service: PipelineService = Depends(get_pipeline_service),
):
    try:
        outcome = await service.update_field(
            booking_id, request.field, request.value, actor=request.actor
        )
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return _action_response(outcome)


@router.get("/{booking_id}/activity", response_model=ActivityListResponse)
async def list_activity(
    booking_id: str, service: PipelineService = Depends(get_pipeline_service)
):
    """Activity timeline, newest first."""
    try:
        entries = await service.list_activity(booking_id)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return ActivityListResponse(
        booking_id=booking_id,
        activities=[ActivityResponse.from_domain(entry) for entry in entries],
    )
