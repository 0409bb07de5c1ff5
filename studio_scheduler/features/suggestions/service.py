"""
Suggestion service: executes lifecycle plans.

Status compare-and-swap, booking stage change, slot reservation, calendar
event and activity entry are written in one transaction. Notifications go
out only after that transaction commits; a failed dispatch is reported on
the outcome and leaves the committed state alone.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from studio_scheduler.config import settings
from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.db.pool import db_pool
from studio_scheduler.domain import (
    Booking,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    Suggestion,
    SuggestionStatus,
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
from studio_scheduler.features.pipeline.service import PipelineService, pipeline_service
from studio_scheduler.features.suggestions.lifecycle import (
    FINALIZING,
    CreateCalendarEvent,
    ReserveSlot,
    SuggestionTransition,
    email_sent_activity,
    plan_transition,
)
from studio_scheduler.features.suggestions.repository import (
    CalendarEventRepository,
    SuggestionRepository,
    calendar_event_repository,
    suggestion_repository,
)
from studio_scheduler.infrastructure.observability.logging import get_logger, log_transition
from studio_scheduler.integrations.notifications import (
    NotificationDispatcher,
    SendNotification,
    notification_dispatcher,
)

logger = get_logger(__name__)

CLIENT_ACTOR = "client"


@dataclass(slots=True)
class SuggestionOutcome:
    success: bool
    message: str
    suggestion: Suggestion
    booking: Booking
    event_id: str | None = None
    notification_sent: bool = False
    notification_error: str | None = None


class SuggestionService:
    """Operator and client actions on scheduling suggestions."""

    def __init__(
        self,
        suggestions: SuggestionRepository = suggestion_repository,
        bookings: BookingRepository = booking_repository,
        inventory: SlotInventoryRepository = slot_inventory_repository,
        calendar: CalendarEventRepository = calendar_event_repository,
        activity_log: ActivityLogRepository = activity_log_repository,
        pipeline: PipelineService = pipeline_service,
        notifier: NotificationDispatcher = notification_dispatcher,
        transaction: Callable = db_pool.transaction,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        link_builder: Callable[[str, str], str] = settings.booking_status_url,
        session_length_hours: int | None = None,
    ):
        self._suggestions = suggestions
        self._bookings = bookings
        self._inventory = inventory
        self._calendar = calendar
        self._activity_log = activity_log
        self._pipeline = pipeline
        self._notifier = notifier
        self._transaction = transaction
        self._clock = clock
        self._link_builder = link_builder
        self._session_length_hours = session_length_hours or settings.SESSION_LENGTH_HOURS

    async def list_pending(self) -> list[Suggestion]:
        return await self._suggestions.list_by_status(SuggestionStatus.PENDING)

    async def list_by_status(self, status: str) -> list[Suggestion]:
        return await self._suggestions.list_by_status(parse_state(SuggestionStatus, status))

    async def send_to_client(
        self, suggestion_id: str, *, actor: str | None = None
    ) -> SuggestionOutcome:
        """pending -> sent_to_client, then email the client confirm/decline links."""
        return await self._transition(suggestion_id, SuggestionStatus.SENT_TO_CLIENT, actor)

    async def confirm(self, suggestion_id: str) -> SuggestionOutcome:
        """Client confirmed the proposed date: the booking is scheduled."""
        return await self._transition(
            suggestion_id, SuggestionStatus.CLIENT_CONFIRMED, CLIENT_ACTOR
        )

    async def decline(self, suggestion_id: str) -> SuggestionOutcome:
        return await self._transition(
            suggestion_id, SuggestionStatus.CLIENT_DECLINED, CLIENT_ACTOR
        )

    async def accept(self, suggestion_id: str, *, actor: str | None = None) -> SuggestionOutcome:
        """Operator accepted without a client round-trip: the booking is scheduled."""
        return await self._transition(suggestion_id, SuggestionStatus.ACCEPTED, actor)

    async def dismiss(self, suggestion_id: str, *, actor: str | None = None) -> SuggestionOutcome:
        return await self._transition(suggestion_id, SuggestionStatus.DISMISSED, actor)

    async def reject(self, suggestion_id: str, *, actor: str | None = None) -> SuggestionOutcome:
        return await self._transition(suggestion_id, SuggestionStatus.REJECTED, actor)

    async def _transition(
        self, suggestion_id: str, target: SuggestionStatus, actor: str | None
    ) -> SuggestionOutcome:
        suggestion = await self._suggestions.get(suggestion_id)
        if suggestion is None:
            raise NotFoundError(f"Suggestion {suggestion_id} not found", entity_id=suggestion_id)

        booking = await self._bookings.get(suggestion.booking_id)
        if booking is None:
            raise NotFoundError(
                f"Booking {suggestion.booking_id} for suggestion {suggestion_id} not found",
                entity_id=suggestion.booking_id,
            )

        slot = None
        if target in FINALIZING and suggestion.slot_id:
            slot = await self._inventory.get_slot(suggestion.slot_id)
        city = None
        needs_city = target in FINALIZING or target == SuggestionStatus.SENT_TO_CLIENT
        if suggestion.suggested_city_id and needs_city:
            city = await self._inventory.get_city(suggestion.suggested_city_id)

        plan = plan_transition(
            suggestion,
            booking,
            target,
            now=self._clock(),
            slot=slot,
            city=city,
            link_builder=self._link_builder,
            session_length_hours=self._session_length_hours,
            actor=actor,
        )

        updated_suggestion, updated_booking, event_id = await self._execute(plan, booking)

        log_transition(
            "suggestion",
            suggestion_id,
            str(plan.from_status),
            str(plan.to_status),
            booking_id=booking.id,
            event_id=event_id,
        )

        outcome = SuggestionOutcome(
            success=True,
            message=self._describe(plan, updated_booking, city),
            suggestion=updated_suggestion,
            booking=updated_booking,
            event_id=event_id,
        )

        for effect in plan.effects:
            if isinstance(effect, SendNotification):
                await self._dispatch(effect, updated_suggestion, updated_booking, actor, outcome)

        return outcome

    async def _execute(
        self, plan: SuggestionTransition, booking: Booking
    ) -> tuple[Suggestion, Booking, str | None]:
        event_id = None
        updated_booking = booking

        async with self._transaction() as conn:
            updated_suggestion = await self._suggestions.compare_and_set_status(
                plan.suggestion_id, plan.from_status, plan.to_status, connection=conn
            )
            if updated_suggestion is None:
                raise ConflictError(
                    f"Suggestion {plan.suggestion_id} is no longer {plan.from_status}",
                    entity_id=plan.suggestion_id,
                )

            if plan.stage_change is not None:
                updated_booking, _ = await self._pipeline.apply_stage_change(
                    booking, plan.stage_change, connection=conn
                )

            for effect in plan.effects:
                if isinstance(effect, ReserveSlot):
                    reserved = await self._inventory.reserve_slot(
                        effect.slot_id, effect.expected_version, connection=conn
                    )
                    if reserved is None:
                        raise ConflictError(
                            f"Slot {effect.slot_id} is no longer available",
                            entity_id=effect.slot_id,
                            error_code="slot_taken",
                        )
                elif isinstance(effect, CreateCalendarEvent):
                    event_id = await self._calendar.create_event(effect.record, connection=conn)

            if plan.activity is not None:
                await self._activity_log.append(plan.activity, connection=conn)

        return updated_suggestion, updated_booking, event_id

    async def _dispatch(
        self,
        notification: SendNotification,
        suggestion: Suggestion,
        booking: Booking,
        actor: str | None,
        outcome: SuggestionOutcome,
    ) -> None:
        try:
            await self._notifier.send(
                notification.kind, notification.recipient, notification.payload
            )
        except ExternalServiceError as e:
            logger.warning(
                "Suggestion notification failed",
                suggestion_id=suggestion.id,
                booking_id=booking.id,
                error=e.message,
            )
            outcome.notification_error = e.message
            outcome.message = f"{outcome.message} (email not sent: {e.message})"
            return

        outcome.notification_sent = True
        try:
            await self._activity_log.append(email_sent_activity(suggestion, booking, actor=actor))
        except DatabaseError as e:
            logger.error(
                "Failed to record email activity",
                suggestion_id=suggestion.id,
                booking_id=booking.id,
                error=str(e),
            )

    @staticmethod
    def _describe(plan: SuggestionTransition, booking: Booking, city) -> str:
        if plan.finalizes:
            where = city.city_name if city else "the suggested city"
            return f"Booking scheduled in {where} on {booking.scheduled_date}"
        if plan.to_status == SuggestionStatus.SENT_TO_CLIENT:
            return "Suggestion sent to client"
        return f"Suggestion {str(plan.to_status).replace('_', ' ')}"


suggestion_service = SuggestionService()
