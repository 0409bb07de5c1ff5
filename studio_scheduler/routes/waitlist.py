"""
Waitlist API Routes
Offers, conversions and expiry for waitlisted clients.
"""

from fastapi import APIRouter, Depends, Query

from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.domain import SchedulingError
from studio_scheduler.features.waitlist.service import WaitlistOutcome, WaitlistService
from studio_scheduler.models.api.scheduling_request import (
    CapacityFreedRequest,
    WaitlistConvertRequest,
    WaitlistOfferRequest,
)
from studio_scheduler.models.api.scheduling_response import (
    CapacityFreedResponse,
    ExpireStaleResponse,
    WaitlistActionResponse,
    WaitlistEntryResponse,
    WaitlistListResponse,
)
from studio_scheduler.routes.dependencies import get_waitlist_service, http_error

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


def _action_response(outcome: WaitlistOutcome) -> WaitlistActionResponse:
    return WaitlistActionResponse(
        success=outcome.success,
        message=outcome.message,
        entry=WaitlistEntryResponse.from_domain(outcome.entry),
        notification_sent=outcome.notification_sent,
        notification_error=outcome.notification_error,
    )


@router.get("", response_model=WaitlistListResponse)
async def list_entries(
    status_filter: str | None = Query(default=None, alias="status"),
    service: WaitlistService = Depends(get_waitlist_service),
):
    try:
        entries = await service.list_entries(status_filter)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return WaitlistListResponse(
        entries=[WaitlistEntryResponse.from_domain(entry) for entry in entries],
        total_count=len(entries),
    )


@router.post("/{entry_id}/offer", response_model=WaitlistActionResponse)
async def send_offer(
    entry_id: str,
    request: WaitlistOfferRequest | None = None,
    service: WaitlistService = Depends(get_waitlist_service),
):
    request = request or WaitlistOfferRequest()
    try:
        outcome = await service.send_offer(
            entry_id, request.discount_percentage, request.custom_message
        )
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return _action_response(outcome)


@router.post("/{entry_id}/convert", response_model=WaitlistActionResponse)
async def mark_converted(
    entry_id: str,
    request: WaitlistConvertRequest | None = None,
    service: WaitlistService = Depends(get_waitlist_service),
):
    booking_id = request.booking_id if request else None
    try:
        outcome = await service.mark_converted(entry_id, booking_id)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return _action_response(outcome)


@router.post("/{entry_id}/expire", response_model=WaitlistActionResponse)
async def expire_entry(entry_id: str, service: WaitlistService = Depends(get_waitlist_service)):
    try:
        outcome = await service.expire(entry_id)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return _action_response(outcome)


@router.post("/capacity-freed", response_model=CapacityFreedResponse)
async def capacity_freed(
    request: CapacityFreedRequest, service: WaitlistService = Depends(get_waitlist_service)
):
    """Offer a freed slot to the best-matching waitlisted clients."""
    try:
        outcomes = await service.handle_capacity_freed(request.slot_id)
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return CapacityFreedResponse(
        slot_id=request.slot_id, offers=[_action_response(outcome) for outcome in outcomes]
    )


@router.post("/expire-stale", response_model=ExpireStaleResponse)
async def expire_stale(service: WaitlistService = Depends(get_waitlist_service)):
    try:
        expired = await service.expire_stale()
    except (SchedulingError, DatabaseError) as e:
        raise http_error(e) from e
    return ExpireStaleResponse(expired=expired)
