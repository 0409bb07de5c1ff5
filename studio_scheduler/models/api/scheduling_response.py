"""
Scheduling API response models.
Used by routes for output formatting.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from studio_scheduler.domain import ActivityEntry, Booking, Suggestion, WaitlistEntry
from studio_scheduler.features.matching.insights import SchedulingInsight


class SuggestionResponse(BaseModel):
    """Response model for a scheduling suggestion."""

    id: str | None = Field(None, description="Suggestion ID")
    booking_id: str = Field(..., description="Booking the suggestion is for")
    slot_id: str | None = Field(None, description="Availability slot proposed")
    suggested_date: date = Field(..., description="Proposed session date")
    suggested_time: str | None = Field(None, description="Proposed start time")
    suggested_city_id: str | None = Field(None, description="City configuration ID")
    confidence_score: float = Field(..., description="Match confidence (0.70-0.99)")
    reasoning: str = Field(..., description="Why this slot was picked")
    status: str = Field(..., description="Suggestion status")
    conflicts: list[str] = Field(default_factory=list, description="Informational warnings")
    created_at: datetime | None = Field(None, description="When the suggestion was generated")

    @classmethod
    def from_domain(cls, suggestion: Suggestion) -> "SuggestionResponse":
        return cls(
            id=suggestion.id,
            booking_id=suggestion.booking_id,
            slot_id=suggestion.slot_id,
            suggested_date=suggestion.suggested_date,
            suggested_time=suggestion.suggested_time,
            suggested_city_id=suggestion.suggested_city_id,
            confidence_score=suggestion.confidence_score,
            reasoning=suggestion.reasoning,
            status=str(suggestion.status),
            conflicts=list(suggestion.conflicts),
            created_at=suggestion.created_at,
        )


class SuggestionListResponse(BaseModel):
    suggestions: list[SuggestionResponse]
    total_count: int


class AnalysisResponse(BaseModel):
    """Result of a matching run."""

    success: bool
    message: str
    bookings_considered: int
    slots_considered: int
    replaced: int = Field(..., description="Pending suggestions removed by this run")
    suggestions: list[SuggestionResponse]
    duration_ms: float


class InsightResponse(BaseModel):
    type: str
    title: str
    description: str
    priority: int
    action: str | None = None

    @classmethod
    def from_domain(cls, insight: SchedulingInsight) -> "InsightResponse":
        return cls(
            type=insight.type,
            title=insight.title,
            description=insight.description,
            priority=insight.priority,
            action=insight.action,
        )


class InsightsResponse(BaseModel):
    insights: list[InsightResponse]


class BookingResponse(BaseModel):
    """Booking fields relevant to scheduling."""

    id: str
    name: str
    email: str
    requested_city: str | None = None
    pipeline_stage: str
    status: str
    priority: str
    scheduled_date: date | None = None
    scheduled_time: str | None = None
    city_id: str | None = None
    deposit_paid: bool = False
    deposit_amount: float | None = None
    session_rate: float | None = None
    total_paid: float | None = None
    follow_up_date: date | None = None
    admin_notes: str | None = None
    version: int

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            name=booking.name,
            email=booking.email,
            requested_city=booking.requested_city,
            pipeline_stage=str(booking.pipeline_stage),
            status=booking.status,
            priority=str(booking.priority),
            scheduled_date=booking.scheduled_date,
            scheduled_time=booking.scheduled_time,
            city_id=booking.city_id,
            deposit_paid=booking.deposit_paid,
            deposit_amount=booking.deposit_amount,
            session_rate=booking.session_rate,
            total_paid=booking.total_paid,
            follow_up_date=booking.follow_up_date,
            admin_notes=booking.admin_notes,
            version=booking.version,
        )


class SuggestionActionResponse(BaseModel):
    """Outcome of a suggestion transition."""

    success: bool
    message: str
    suggestion: SuggestionResponse
    booking: BookingResponse
    event_id: str | None = Field(None, description="Calendar event created on finalization")
    notification_sent: bool = False
    notification_error: str | None = None


class ActivityResponse(BaseModel):
    id: str | None = None
    booking_id: str
    activity_type: str
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, entry: ActivityEntry) -> "ActivityResponse":
        return cls(
            id=entry.id,
            booking_id=entry.booking_id,
            activity_type=str(entry.activity_type),
            description=entry.description,
            metadata=dict(entry.metadata),
            created_by=entry.created_by,
            created_at=entry.created_at,
        )


class ActivityListResponse(BaseModel):
    booking_id: str
    activities: list[ActivityResponse]


class PipelineActionResponse(BaseModel):
    success: bool
    message: str
    booking: BookingResponse
    activity: ActivityResponse
    freed_slot_id: str | None = Field(None, description="Slot re-opened by a cancellation")
    waitlist_offers: int = Field(0, description="Waitlist offers sent for the freed slot")


class WaitlistEntryResponse(BaseModel):
    id: str
    client_name: str | None = None
    client_email: str
    preferred_cities: list[str] = Field(default_factory=list)
    preferred_dates: list[date] = Field(default_factory=list)
    flexibility_days: int
    match_score: int
    status: str
    offers_sent_count: int
    last_offer_sent_at: datetime | None = None
    discount_eligible: bool
    expires_at: datetime | None = None
    converted_booking_id: str | None = None

    @classmethod
    def from_domain(cls, entry: WaitlistEntry) -> "WaitlistEntryResponse":
        return cls(
            id=entry.id,
            client_name=entry.client_name,
            client_email=entry.client_email,
            preferred_cities=list(entry.preferred_cities),
            preferred_dates=list(entry.preferred_dates),
            flexibility_days=entry.flexibility_days,
            match_score=entry.match_score,
            status=str(entry.status),
            offers_sent_count=entry.offers_sent_count,
            last_offer_sent_at=entry.last_offer_sent_at,
            discount_eligible=entry.discount_eligible,
            expires_at=entry.expires_at,
            converted_booking_id=entry.converted_booking_id,
        )


class WaitlistListResponse(BaseModel):
    entries: list[WaitlistEntryResponse]
    total_count: int


class WaitlistActionResponse(BaseModel):
    success: bool
    message: str
    entry: WaitlistEntryResponse
    notification_sent: bool = False
    notification_error: str | None = None


class CapacityFreedResponse(BaseModel):
    slot_id: str
    offers: list[WaitlistActionResponse]


class ExpireStaleResponse(BaseModel):
    expired: int
