"""
Scheduling API request models.
Used by routes for input validation.
"""

from typing import Any

from pydantic import BaseModel, Field


class SuggestionActionRequest(BaseModel):
    """Operator action on a suggestion (send, accept, dismiss, reject)."""

    actor: str | None = Field(default=None, max_length=200, description="Who performed the action")


class StageTransitionRequest(BaseModel):
    """Move a booking to another pipeline stage."""

    target_stage: str = Field(..., min_length=1, description="Pipeline stage identifier")
    actor: str | None = Field(default=None, max_length=200, description="Who moved the booking")


class FieldUpdateRequest(BaseModel):
    """Edit a single booking field outside of stage logic."""

    field: str = Field(..., min_length=1, description="Editable booking field")
    value: Any = Field(default=None, description="New value; null clears the field")
    actor: str | None = Field(default=None, max_length=200, description="Who made the edit")


class WaitlistOfferRequest(BaseModel):
    """Send an opening offer to a waitlisted client."""

    discount_percentage: int | None = Field(
        default=None, ge=0, le=100, description="Discount offered (default from settings)"
    )
    custom_message: str | None = Field(
        default=None, max_length=2000, description="Optional note included in the email"
    )


class WaitlistConvertRequest(BaseModel):
    """Mark a waitlist entry as converted into a booking."""

    booking_id: str | None = Field(default=None, description="Booking created from the offer")


class CapacityFreedRequest(BaseModel):
    """A slot became available again and should be offered to the waitlist."""

    slot_id: str = Field(..., min_length=1, description="Availability slot that opened up")
