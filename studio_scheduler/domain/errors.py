"""
Error taxonomy shared by every scheduling feature.

ValidationError and NotFoundError are raised before any mutation.
ConflictError means the row moved under the caller, who should re-fetch.
ExternalServiceError is reported for notification failures; it never
rolls back a committed transition.
"""


class SchedulingError(Exception):
    """Base exception for scheduling core operations."""

    error_code = "scheduling_error"

    def __init__(
        self,
        message: str,
        entity_id: str | None = None,
        error_code: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        if error_code:
            self.error_code = error_code
        self.recoverable = recoverable


class ValidationError(SchedulingError):
    """Malformed or unknown identifier, missing required field."""

    error_code = "validation_error"


class NotFoundError(SchedulingError):
    """Referenced booking, suggestion, slot, city or waitlist entry is missing."""

    error_code = "not_found"


class ConflictError(SchedulingError):
    """Concurrent modification or a transition out of a state that already moved."""

    error_code = "conflict"


class ExternalServiceError(SchedulingError):
    """Notification dispatch or another outbound call failed."""

    error_code = "external_service_error"
