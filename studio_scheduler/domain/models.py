"""
Domain models for the studio scheduling core.

Lightweight dataclasses mirroring the rows the core reads and writes.
State identifiers are closed StrEnums so unknown values are rejected at
the edge instead of travelling around as free-form strings.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any, TypeVar

from .errors import ValidationError

E = TypeVar("E", bound=StrEnum)


def parse_state(enum_cls: type[E], value: str | E | None, *, default: E | None = None) -> E:
    """Coerce a raw identifier into a closed enum, rejecting unknown values."""
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"Missing {enum_cls.__name__} value")
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Unknown {enum_cls.__name__} '{value}'. Expected one of: {allowed}"
        ) from e


class PipelineStage(StrEnum):
    NEW_INQUIRY = "new_inquiry"
    REFERENCES_REQUESTED = "references_requested"
    REFERENCES_RECEIVED = "references_received"
    DEPOSIT_REQUESTED = "deposit_requested"
    DEPOSIT_PAID = "deposit_paid"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SuggestionStatus(StrEnum):
    PENDING = "pending"
    SENT_TO_CLIENT = "sent_to_client"
    CLIENT_CONFIRMED = "client_confirmed"
    CLIENT_DECLINED = "client_declined"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    REJECTED = "rejected"


class WaitlistStatus(StrEnum):
    WAITING = "waiting"
    OFFER_SENT = "offer_sent"
    CONVERTED = "converted"
    EXPIRED = "expired"


class ActivityType(StrEnum):
    STAGE_CHANGE = "stage_change"
    FIELD_UPDATE = "field_update"
    EMAIL_SENT = "email_sent"


class Priority(StrEnum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class SlotType(StrEnum):
    REGULAR = "regular"
    GUEST_SPOT = "guest_spot"


@dataclass(slots=True)
class Booking:
    """A client's tattoo-session request (bookings row)."""

    id: str
    name: str
    email: str
    phone: str | None = None
    tattoo_description: str | None = None
    placement: str | None = None
    size: str | None = None
    requested_city: str | None = None
    pipeline_stage: PipelineStage = PipelineStage.NEW_INQUIRY
    status: str = "pending"
    scheduled_date: date | None = None
    scheduled_time: str | None = None
    city_id: str | None = None
    priority: Priority = Priority.NORMAL
    deposit_paid: bool = False
    deposit_amount: float | None = None
    session_rate: float | None = None
    total_paid: float | None = None
    references_requested_at: datetime | None = None
    references_received_at: datetime | None = None
    deposit_requested_at: datetime | None = None
    deposit_paid_at: datetime | None = None
    follow_up_date: date | None = None
    admin_notes: str | None = None
    created_at: datetime | None = None
    version: int = 1

    def is_scheduled(self) -> bool:
        return self.scheduled_date is not None


@dataclass(slots=True)
class AvailabilitySlot:
    """One offerable (date, city) unit of studio capacity."""

    id: str
    date: date
    city: str
    city_id: str | None = None
    is_available: bool = True
    slot_type: SlotType = SlotType.REGULAR
    notes: str | None = None
    version: int = 1


@dataclass(slots=True)
class CityConfig:
    """Per-city business rules (city_configurations row)."""

    id: str
    city_name: str
    city_type: str = "home_base"
    session_rate: float | None = None
    deposit_amount: float | None = None
    max_sessions_per_day: int | None = None
    travel_buffer_days: int | None = None
    min_sessions_per_trip: int | None = None
    is_active: bool = True
    timezone: str = "America/Chicago"

    @property
    def is_guest_spot(self) -> bool:
        return self.city_type == "guest_spot"


@dataclass(slots=True)
class Suggestion:
    """A proposed (date, city) match for an unscheduled booking."""

    booking_id: str
    suggested_date: date
    confidence_score: float
    reasoning: str
    suggested_time: str | None = None
    suggested_city_id: str | None = None
    slot_id: str | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    conflicts: list[str] = field(default_factory=list)
    id: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class WaitlistEntry:
    """A client waiting for capacity to free up."""

    id: str
    client_email: str
    client_name: str | None = None
    client_phone: str | None = None
    preferred_cities: list[str] = field(default_factory=list)
    preferred_dates: list[date] = field(default_factory=list)
    flexibility_days: int = 7
    max_budget: float | None = None
    size_preference: str | None = None
    style_preference: str | None = None
    tattoo_description: str | None = None
    match_score: int = 0
    status: WaitlistStatus = WaitlistStatus.WAITING
    offers_sent_count: int = 0
    last_offer_sent_at: datetime | None = None
    discount_eligible: bool = False
    expires_at: datetime | None = None
    converted_booking_id: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class ActivityEntry:
    """Immutable audit record for a booking (booking_activities row)."""

    booking_id: str
    activity_type: ActivityType
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_by: str | None = None
    id: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class CalendarEventRecord:
    """Session event written when a booking is finalized (calendar_events row)."""

    booking_id: str
    city_id: str | None
    title: str
    start_time: datetime
    end_time: datetime
    ai_suggested: bool = True
    ai_confidence: float | None = None
    extended_properties: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
