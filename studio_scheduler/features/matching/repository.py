"""
Slot inventory: open availability slots and per-city rules.

Read-only for the matcher. The writes are ``reserve_slot``, the
compare-and-swap that consumes a slot when a suggestion is finalized,
and ``release_slot``, which gives it back when the booking is cancelled.
"""

from datetime import date

import psycopg

from studio_scheduler.db.helpers import fetch_all, fetch_one, with_db_retry
from studio_scheduler.domain import AvailabilitySlot, CityConfig, SlotType, parse_state
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SlotInventoryRepository:
    """Availability slots and city configurations."""

    SLOT_COLUMNS = "id, date, city, city_id, is_available, slot_type, notes, version"
    CITY_COLUMNS = """
        id, city_name, city_type, session_rate, deposit_amount, max_sessions_per_day,
        travel_buffer_days, min_sessions_per_trip, is_active, timezone
    """

    @classmethod
    def _row_to_slot(cls, row: dict | None) -> AvailabilitySlot | None:
        if not row:
            return None

        return AvailabilitySlot(
            id=str(row["id"]),
            date=row["date"],
            city=row["city"],
            city_id=str(row["city_id"]) if row.get("city_id") else None,
            is_available=bool(row["is_available"]),
            slot_type=parse_state(SlotType, row.get("slot_type"), default=SlotType.REGULAR),
            notes=row.get("notes"),
            version=row.get("version") or 1,
        )

    @classmethod
    def _row_to_city(cls, row: dict | None) -> CityConfig | None:
        if not row:
            return None

        return CityConfig(
            id=str(row["id"]),
            city_name=row["city_name"],
            city_type=row.get("city_type") or "home_base",
            session_rate=(
                float(row["session_rate"]) if row.get("session_rate") is not None else None
            ),
            deposit_amount=(
                float(row["deposit_amount"]) if row.get("deposit_amount") is not None else None
            ),
            max_sessions_per_day=row.get("max_sessions_per_day"),
            travel_buffer_days=row.get("travel_buffer_days"),
            min_sessions_per_trip=row.get("min_sessions_per_trip"),
            is_active=bool(row.get("is_active")),
            timezone=row.get("timezone") or "America/Chicago",
        )

    @with_db_retry()
    async def list_open_slots(self, from_date: date) -> list[AvailabilitySlot]:
        """Open slots on or after ``from_date``, in insertion order."""
        query = f"""
            SELECT {self.SLOT_COLUMNS}
            FROM availability
            WHERE is_available = true AND date >= %s
            ORDER BY created_at ASC
        """
        rows = await fetch_all(query, (from_date,))
        return [self._row_to_slot(row) for row in rows]

    async def get_slot(
        self, slot_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> AvailabilitySlot | None:
        query = f"SELECT {self.SLOT_COLUMNS} FROM availability WHERE id = %s"
        row = await fetch_one(query, (slot_id,), connection=connection)
        return self._row_to_slot(row)

    async def reserve_slot(
        self,
        slot_id: str,
        expected_version: int,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> AvailabilitySlot | None:
        """
        Mark an open slot as consumed if nobody touched it since it was read.

        Returns:
            The reserved slot, or None if it was already taken or changed
        """
        query = f"""
            UPDATE availability
            SET is_available = false,
                version = version + 1,
                updated_at = NOW()
            WHERE id = %s AND version = %s AND is_available = true
            RETURNING {self.SLOT_COLUMNS}
        """
        row = await fetch_one(query, (slot_id, expected_version), connection=connection)
        if not row:
            logger.warning(
                "Slot reservation lost", slot_id=slot_id, expected_version=expected_version
            )
            return None

        logger.info("Slot reserved", slot_id=slot_id, date=str(row["date"]), city=row["city"])
        return self._row_to_slot(row)

    async def release_slot(
        self,
        slot_id: str,
        expected_version: int,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> AvailabilitySlot | None:
        """
        Re-open a consumed slot after its booking was cancelled.

        Returns:
            The re-opened slot, or None if it changed since it was read
        """
        query = f"""
            UPDATE availability
            SET is_available = true,
                version = version + 1,
                updated_at = NOW()
            WHERE id = %s AND version = %s AND is_available = false
            RETURNING {self.SLOT_COLUMNS}
        """
        row = await fetch_one(query, (slot_id, expected_version), connection=connection)
        if not row:
            logger.warning(
                "Slot release lost", slot_id=slot_id, expected_version=expected_version
            )
            return None

        logger.info("Slot released", slot_id=slot_id, date=str(row["date"]), city=row["city"])
        return self._row_to_slot(row)

    @with_db_retry()
    async def list_active_cities(self) -> list[CityConfig]:
        query = f"SELECT {self.CITY_COLUMNS} FROM city_configurations WHERE is_active = true"
        rows = await fetch_all(query)
        return [self._row_to_city(row) for row in rows]

    async def get_city(
        self, city_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> CityConfig | None:
        query = f"SELECT {self.CITY_COLUMNS} FROM city_configurations WHERE id = %s"
        row = await fetch_one(query, (city_id,), connection=connection)
        return self._row_to_city(row)


slot_inventory_repository = SlotInventoryRepository()
