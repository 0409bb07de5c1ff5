"""
Matching service: the "run analysis" entry point.

Loads unscheduled bookings, open slots and active cities, runs the matcher
and replaces every pending suggestion with the new set in one transaction.
Suggestions already sent or acted on are never touched.
"""

import calendar
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from studio_scheduler.config import settings
from studio_scheduler.db.pool import db_pool
from studio_scheduler.domain import Suggestion
from studio_scheduler.features.matching.engine import generate_suggestions
from studio_scheduler.features.matching.insights import SchedulingInsight, generate_insights
from studio_scheduler.features.matching.repository import (
    SlotInventoryRepository,
    slot_inventory_repository,
)
from studio_scheduler.features.pipeline.repository import BookingRepository, booking_repository
from studio_scheduler.features.suggestions.repository import (
    SuggestionRepository,
    suggestion_repository,
)
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class MatchingRunResult:
    success: bool
    message: str
    bookings_considered: int = 0
    slots_considered: int = 0
    replaced: int = 0
    suggestions: list[Suggestion] = field(default_factory=list)
    duration_ms: float = 0.0


class MatchingService:
    def __init__(
        self,
        bookings: BookingRepository = booking_repository,
        inventory: SlotInventoryRepository = slot_inventory_repository,
        suggestions: SuggestionRepository = suggestion_repository,
        transaction: Callable = db_pool.transaction,
        today: Callable[[], date] = date.today,
        suggested_time: str | None = None,
    ):
        self._bookings = bookings
        self._inventory = inventory
        self._suggestions = suggestions
        self._transaction = transaction
        self._today = today
        self._suggested_time = suggested_time or settings.DEFAULT_SUGGESTED_TIME

    async def run_analysis(self) -> MatchingRunResult:
        """
        Regenerate pending suggestions.

        Running twice over unchanged inputs leaves the same pending set.
        A persistence failure rolls back the whole run and propagates.
        """
        start = time.perf_counter()
        today = self._today()

        bookings = await self._bookings.list_unscheduled_candidates()
        slots = await self._inventory.list_open_slots(today)
        cities = await self._inventory.list_active_cities()

        proposed = generate_suggestions(
            bookings, slots, cities, today=today, suggested_time=self._suggested_time
        )

        async with self._transaction() as conn:
            replaced = await self._suggestions.delete_pending(connection=conn)
            stored = await self._suggestions.insert_many(proposed, connection=conn)

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "Scheduling analysis complete",
            bookings=len(bookings),
            slots=len(slots),
            suggestions=len(stored),
            replaced=replaced,
            duration_ms=duration_ms,
        )

        if not bookings:
            message = "No unscheduled bookings to match"
        elif not slots:
            message = "No open availability to match against"
        else:
            message = f"Generated {len(stored)} suggestions for {len(bookings)} bookings"

        return MatchingRunResult(
            success=True,
            message=message,
            bookings_considered=len(bookings),
            slots_considered=len(slots),
            replaced=replaced,
            suggestions=stored,
            duration_ms=duration_ms,
        )

    async def insights(self) -> list[SchedulingInsight]:
        """Heuristic insights over current demand, open slots and this month's sessions."""
        today = self._today()
        month_start = today.replace(day=1)
        month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])

        waiting = await self._bookings.list_unscheduled_candidates()
        scheduled = await self._bookings.list_scheduled_between(month_start, month_end)
        slots = await self._inventory.list_open_slots(today)
        cities = await self._inventory.list_active_cities()

        return generate_insights([*waiting, *scheduled], slots, cities, today=today)


matching_service = MatchingService()
