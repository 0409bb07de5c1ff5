"""
Domain subpackage: records, state identifiers and errors.
"""

from .errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from .models import (
    ActivityEntry,
    ActivityType,
    AvailabilitySlot,
    Booking,
    CalendarEventRecord,
    CityConfig,
    PipelineStage,
    Priority,
    SlotType,
    Suggestion,
    SuggestionStatus,
    WaitlistEntry,
    WaitlistStatus,
    parse_state,
)

__all__ = [
    "ActivityEntry",
    "ActivityType",
    "AvailabilitySlot",
    "Booking",
    "CalendarEventRecord",
    "CityConfig",
    "ConflictError",
    "ExternalServiceError",
    "NotFoundError",
    "PipelineStage",
    "Priority",
    "SchedulingError",
    "SlotType",
    "Suggestion",
    "SuggestionStatus",
    "ValidationError",
    "WaitlistEntry",
    "WaitlistStatus",
    "parse_state",
]
