"""
Pipeline service: persists planned stage changes and field edits.

Each operation writes the booking update and its activity entry in one
transaction, guarded by the booking's version. Cancelling a scheduled
booking also re-opens the slot its finalized suggestion reserved, and the
outcome reports that slot so the waitlist can be offered the opening.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import psycopg

from studio_scheduler.config import settings
from studio_scheduler.db.pool import db_pool
from studio_scheduler.domain import (
    ActivityEntry,
    Booking,
    ConflictError,
    NotFoundError,
    PipelineStage,
    parse_state,
)
from studio_scheduler.features.activity.repository import (
    ActivityLogRepository,
    activity_log_repository,
)
from studio_scheduler.features.matching.repository import (
    SlotInventoryRepository,
    slot_inventory_repository,
)
from studio_scheduler.features.pipeline.repository import BookingRepository, booking_repository
from studio_scheduler.features.pipeline.state_machine import (
    STAGE_LABELS,
    StageChange,
    plan_field_update,
    plan_stage_change,
)
from studio_scheduler.features.suggestions.repository import (
    SuggestionRepository,
    suggestion_repository,
)
from studio_scheduler.infrastructure.observability.logging import get_logger, log_transition

logger = get_logger(__name__)


@dataclass(slots=True)
class PipelineOutcome:
    success: bool
    message: str
    booking: Booking
    activity: ActivityEntry
    freed_slot_id: str | None = None


class PipelineService:
    """Stage transitions and field updates for bookings."""

    def __init__(
        self,
        bookings: BookingRepository = booking_repository,
        activity_log: ActivityLogRepository = activity_log_repository,
        transaction: Callable = db_pool.transaction,
        strict_ordering: bool | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        suggestions: SuggestionRepository = suggestion_repository,
        inventory: SlotInventoryRepository = slot_inventory_repository,
    ):
        self._bookings = bookings
        self._activity_log = activity_log
        self._suggestions = suggestions
        self._inventory = inventory
        self._transaction = transaction
        self._strict = (
            settings.PIPELINE_STRICT_ORDERING if strict_ordering is None else strict_ordering
        )
        self._clock = clock

    async def transition(
        self, booking_id: str, target_stage: str, *, actor: str | None = None
    ) -> PipelineOutcome:
        """
        Move a booking to ``target_stage`` and record the stage change.

        Raises:
            ValidationError: unknown stage (or forbidden move in strict mode)
            NotFoundError: booking does not exist
            ConflictError: booking changed since it was read
        """
        target = parse_state(PipelineStage, target_stage)
        booking = await self._require_booking(booking_id)

        change = plan_stage_change(
            booking, target, now=self._clock(), strict=self._strict, actor=actor
        )

        freed_slot_id = None
        async with self._transaction() as conn:
            updated, activity = await self.apply_stage_change(booking, change, connection=conn)
            if change.releases_slot:
                freed_slot_id = await self._release_reserved_slot(booking_id, connection=conn)

        log_transition(
            "booking",
            booking_id,
            str(change.from_stage),
            str(change.to_stage),
            freed_slot_id=freed_slot_id,
        )
        message = f"Booking moved to {STAGE_LABELS[change.to_stage]}"
        if freed_slot_id:
            message = f"{message}; its slot is open again"
        return PipelineOutcome(
            success=True,
            message=message,
            booking=updated,
            activity=activity,
            freed_slot_id=freed_slot_id,
        )

    async def apply_stage_change(
        self,
        booking: Booking,
        change: StageChange,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> tuple[Booking, ActivityEntry]:
        """
        Persist a planned change inside the caller's transaction.

        Raises:
            ConflictError: booking version moved since ``booking`` was read
        """
        updated = await self._bookings.apply_update(
            booking.id, booking.version, change.updates, connection=connection
        )
        if updated is None:
            raise ConflictError(
                "Booking was modified by someone else; reload and try again",
                entity_id=booking.id,
            )

        activity = await self._activity_log.append(change.activity, connection=connection)
        return updated, activity

    async def update_field(
        self, booking_id: str, field_name: str, value: Any, *, actor: str | None = None
    ) -> PipelineOutcome:
        """
        Edit a single booking field outside of stage logic.

        Raises:
            ValidationError: field not editable or bad value
            NotFoundError: booking does not exist
            ConflictError: booking changed since it was read
        """
        booking = await self._require_booking(booking_id)
        change = plan_field_update(booking, field_name, value, actor=actor)

        async with self._transaction() as conn:
            updated = await self._bookings.apply_update(
                booking.id, booking.version, change.updates, connection=conn
            )
            if updated is None:
                raise ConflictError(
                    "Booking was modified by someone else; reload and try again",
                    entity_id=booking.id,
                )
            activity = await self._activity_log.append(change.activity, connection=conn)

        logger.info("Booking field updated", booking_id=booking_id, field=field_name)
        return PipelineOutcome(
            success=True,
            message=f"Updated {field_name.replace('_', ' ')}",
            booking=updated,
            activity=activity,
        )

    async def list_activity(self, booking_id: str) -> list[ActivityEntry]:
        await self._require_booking(booking_id)
        return await self._activity_log.list_for_booking(booking_id)

    async def _release_reserved_slot(
        self, booking_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> str | None:
        """
        Re-open the slot taken by the booking's finalized suggestion.

        Bookings scheduled by hand have no reserved slot; nothing is released.

        Raises:
            ConflictError: the slot changed since it was read
        """
        suggestion = await self._suggestions.get_finalized_for_booking(
            booking_id, connection=connection
        )
        if suggestion is None or not suggestion.slot_id:
            return None

        slot = await self._inventory.get_slot(suggestion.slot_id, connection=connection)
        if slot is None or slot.is_available:
            return None

        released = await self._inventory.release_slot(
            slot.id, slot.version, connection=connection
        )
        if released is None:
            raise ConflictError(
                f"Slot {slot.id} was modified by someone else; reload and try again",
                entity_id=slot.id,
            )
        return released.id

    async def _require_booking(self, booking_id: str) -> Booking:
        booking = await self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", entity_id=booking_id)
        return booking


pipeline_service = PipelineService()
