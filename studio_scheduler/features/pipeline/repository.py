"""
Persistence for bookings.

Every write goes through ``apply_update`` which bumps ``version`` and only
succeeds when the caller's expected version is still current.
"""

from datetime import date
from typing import Any

import psycopg
from psycopg import sql

from studio_scheduler.db.helpers import DatabaseError, fetch_all, fetch_one, with_db_retry
from studio_scheduler.db.updates import build_set_clause
from studio_scheduler.domain import Booking, PipelineStage, Priority, parse_state
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MATCHABLE_STAGES = (
    PipelineStage.NEW_INQUIRY,
    PipelineStage.REFERENCES_RECEIVED,
    PipelineStage.DEPOSIT_PAID,
)

UPDATABLE_COLUMNS = {
    "pipeline_stage",
    "status",
    "scheduled_date",
    "scheduled_time",
    "city_id",
    "priority",
    "deposit_paid",
    "deposit_amount",
    "session_rate",
    "total_paid",
    "references_requested_at",
    "references_received_at",
    "deposit_requested_at",
    "deposit_paid_at",
    "follow_up_date",
    "admin_notes",
    "tattoo_description",
    "placement",
    "size",
    "requested_city",
}


class BookingRepositoryError(DatabaseError):
    """More specific exception for booking persistence failures."""


class BookingRepository:
    """Reads and version-guarded writes against the bookings table."""

    SELECT_COLUMNS = """
        id, name, email, phone, tattoo_description, placement, size,
        requested_city, pipeline_stage, status, scheduled_date, scheduled_time,
        city_id, priority, deposit_paid, deposit_amount, session_rate, total_paid,
        references_requested_at, references_received_at, deposit_requested_at,
        deposit_paid_at, follow_up_date, admin_notes, created_at, version
    """

    @classmethod
    def _row_to_booking(cls, row: dict | None) -> Booking | None:
        if not row:
            return None

        return Booking(
            id=str(row["id"]),
            name=row["name"],
            email=row["email"],
            phone=row.get("phone"),
            tattoo_description=row.get("tattoo_description"),
            placement=row.get("placement"),
            size=row.get("size"),
            requested_city=row.get("requested_city"),
            pipeline_stage=parse_state(
                PipelineStage, row.get("pipeline_stage"), default=PipelineStage.NEW_INQUIRY
            ),
            status=row.get("status") or "pending",
            scheduled_date=row.get("scheduled_date"),
            scheduled_time=row.get("scheduled_time"),
            city_id=str(row["city_id"]) if row.get("city_id") else None,
            priority=parse_state(Priority, row.get("priority"), default=Priority.NORMAL),
            deposit_paid=bool(row.get("deposit_paid")),
            deposit_amount=_to_float(row.get("deposit_amount")),
            session_rate=_to_float(row.get("session_rate")),
            total_paid=_to_float(row.get("total_paid")),
            references_requested_at=row.get("references_requested_at"),
            references_received_at=row.get("references_received_at"),
            deposit_requested_at=row.get("deposit_requested_at"),
            deposit_paid_at=row.get("deposit_paid_at"),
            follow_up_date=row.get("follow_up_date"),
            admin_notes=row.get("admin_notes"),
            created_at=row.get("created_at"),
            version=row.get("version") or 1,
        )

    async def get(
        self, booking_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> Booking | None:
        query = f"SELECT {self.SELECT_COLUMNS} FROM bookings WHERE id = %s"
        row = await fetch_one(query, (booking_id,), connection=connection)
        return self._row_to_booking(row)

    @with_db_retry()
    async def list_unscheduled_candidates(self) -> list[Booking]:
        """Bookings the matcher should place, oldest first."""
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM bookings
            WHERE pipeline_stage = ANY(%s)
              AND scheduled_date IS NULL
            ORDER BY created_at ASC
        """
        rows = await fetch_all(query, ([str(stage) for stage in MATCHABLE_STAGES],))
        return [self._row_to_booking(row) for row in rows]

    @with_db_retry()
    async def list_scheduled_between(self, start: date, end: date) -> list[Booking]:
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM bookings
            WHERE scheduled_date >= %s AND scheduled_date <= %s
        """
        rows = await fetch_all(query, (start, end))
        return [self._row_to_booking(row) for row in rows]

    async def apply_update(
        self,
        booking_id: str,
        expected_version: int,
        updates: dict[str, Any],
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Booking | None:
        """
        Write ``updates`` if the row is still at ``expected_version``.

        Returns:
            The updated booking, or None when another writer got there first
        """
        set_clause, params = build_set_clause(updates, UPDATABLE_COLUMNS)
        query = sql.SQL(
            "UPDATE bookings SET {set_clause}, version = version + 1, updated_at = NOW() "
            "WHERE id = %s AND version = %s RETURNING {columns}"
        ).format(set_clause=set_clause, columns=sql.SQL(self.SELECT_COLUMNS))

        row = await fetch_one(query, (*params, booking_id, expected_version), connection=connection)
        if not row:
            logger.warning(
                "Booking version check failed",
                booking_id=booking_id,
                expected_version=expected_version,
            )
            return None
        return self._row_to_booking(row)


def _to_float(value) -> float | None:
    return float(value) if value is not None else None


booking_repository = BookingRepository()
