"""
Waitlist service: offers, conversions and expiry.

Status writes commit before any offer email is dispatched; a failed
dispatch is reported on the outcome and the entry stays ``offer_sent``.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from studio_scheduler.config import settings
from studio_scheduler.db.pool import db_pool
from studio_scheduler.domain import (
    AvailabilitySlot,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    WaitlistEntry,
    WaitlistStatus,
    parse_state,
)
from studio_scheduler.features.matching.repository import (
    SlotInventoryRepository,
    slot_inventory_repository,
)
from studio_scheduler.features.waitlist.matcher import (
    WaitlistChange,
    is_stale,
    plan_offer,
    plan_status_change,
    rank_candidates,
)
from studio_scheduler.features.waitlist.repository import WaitlistRepository, waitlist_repository
from studio_scheduler.infrastructure.observability.logging import get_logger, log_transition
from studio_scheduler.integrations.notifications import (
    NotificationDispatcher,
    notification_dispatcher,
)

logger = get_logger(__name__)


@dataclass(slots=True)
class WaitlistOutcome:
    success: bool
    message: str
    entry: WaitlistEntry
    notification_sent: bool = False
    notification_error: str | None = None


class WaitlistService:
    def __init__(
        self,
        entries: WaitlistRepository = waitlist_repository,
        inventory: SlotInventoryRepository = slot_inventory_repository,
        notifier: NotificationDispatcher = notification_dispatcher,
        transaction: Callable = db_pool.transaction,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        default_discount: int | None = None,
        offers_per_opening: int | None = None,
    ):
        self._entries = entries
        self._inventory = inventory
        self._notifier = notifier
        self._transaction = transaction
        self._clock = clock
        self._default_discount = (
            settings.WAITLIST_DEFAULT_DISCOUNT if default_discount is None else default_discount
        )
        self._offers_per_opening = (
            settings.WAITLIST_OFFERS_PER_OPENING
            if offers_per_opening is None
            else offers_per_opening
        )

    async def list_entries(self, status: str | None = None) -> list[WaitlistEntry]:
        wanted = parse_state(WaitlistStatus, status) if status else None
        return await self._entries.list_by_status(wanted)

    async def send_offer(
        self,
        entry_id: str,
        discount_percentage: int | None = None,
        custom_message: str | None = None,
        *,
        slot: AvailabilitySlot | None = None,
    ) -> WaitlistOutcome:
        """
        Offer an opening to a waitlisted client.

        Raises:
            NotFoundError: entry does not exist
            ConflictError: entry converted, expired or changed concurrently
            ValidationError: discount outside 0-100
        """
        entry = await self._require_entry(entry_id)
        discount = self._default_discount if discount_percentage is None else discount_percentage

        change = plan_offer(
            entry,
            now=self._clock(),
            discount_percentage=discount,
            custom_message=custom_message,
            slot=slot,
        )
        updated = await self._apply(change)

        outcome = WaitlistOutcome(
            success=True,
            message=f"Offer sent to {updated.client_name or updated.client_email}",
            entry=updated,
        )

        notification = change.notification
        try:
            await self._notifier.send(
                notification.kind, notification.recipient, notification.payload
            )
            outcome.notification_sent = True
        except ExternalServiceError as e:
            logger.warning("Waitlist offer email failed", entry_id=entry_id, error=e.message)
            outcome.notification_error = e.message
            outcome.message = f"Offer recorded but email not sent: {e.message}"

        return outcome

    async def mark_converted(
        self, entry_id: str, booking_id: str | None = None
    ) -> WaitlistOutcome:
        entry = await self._require_entry(entry_id)
        change = plan_status_change(
            entry, WaitlistStatus.CONVERTED, converted_booking_id=booking_id
        )
        updated = await self._apply(change)
        return WaitlistOutcome(success=True, message="Waitlist entry converted", entry=updated)

    async def expire(self, entry_id: str) -> WaitlistOutcome:
        entry = await self._require_entry(entry_id)
        updated = await self._apply(plan_status_change(entry, WaitlistStatus.EXPIRED))
        return WaitlistOutcome(success=True, message="Waitlist entry expired", entry=updated)

    async def handle_capacity_freed(self, slot_id: str) -> list[WaitlistOutcome]:
        """
        Offer a freed slot to the best-ranked waiting clients.

        Candidates that moved concurrently are skipped in favour of the
        next one in rank order.
        """
        slot = await self._inventory.get_slot(slot_id)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found", entity_id=slot_id)

        waiting = await self._entries.list_by_status(WaitlistStatus.WAITING)
        ranked = rank_candidates(waiting, slot, today=self._clock().date())

        outcomes: list[WaitlistOutcome] = []
        for candidate in ranked:
            if len(outcomes) >= self._offers_per_opening:
                break
            try:
                outcomes.append(await self.send_offer(candidate.id, slot=slot))
            except ConflictError as e:
                logger.info(
                    "Skipping waitlist candidate", entry_id=candidate.id, reason=e.message
                )

        logger.info(
            "Capacity freed processed",
            slot_id=slot_id,
            candidates=len(ranked),
            offers=len(outcomes),
        )
        return outcomes

    async def expire_stale(self) -> int:
        """Expire entries whose ``expires_at`` has passed. Returns how many moved."""
        now = self._clock()
        expired = 0
        for entry in await self._entries.list_expirable(now):
            if not is_stale(entry, now):
                continue
            try:
                await self._apply(plan_status_change(entry, WaitlistStatus.EXPIRED))
                expired += 1
            except ConflictError as e:
                logger.info("Waitlist entry not expired", entry_id=entry.id, reason=e.message)

        logger.info("Stale waitlist entries expired", expired=expired)
        return expired

    async def _apply(self, change: WaitlistChange) -> WaitlistEntry:
        async with self._transaction() as conn:
            updated = await self._entries.compare_and_set(
                change.entry_id,
                change.from_status,
                change.expected_offers_count,
                change.updates,
                connection=conn,
            )
            if updated is None:
                raise ConflictError(
                    "Waitlist entry was modified by someone else; reload and try again",
                    entity_id=change.entry_id,
                )

        log_transition(
            "waitlist_entry", change.entry_id, str(change.from_status), str(change.to_status)
        )
        return updated

    async def _require_entry(self, entry_id: str) -> WaitlistEntry:
        entry = await self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Waitlist entry {entry_id} not found", entity_id=entry_id)
        return entry


waitlist_service = WaitlistService()
