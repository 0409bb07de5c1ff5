"""
Append-only activity log for bookings.

Entries are written in the same transaction as the change they describe
and are never updated or deleted.
"""

import psycopg
from psycopg.types.json import Jsonb

from studio_scheduler.db.helpers import DatabaseError, fetch_all, fetch_one
from studio_scheduler.domain import ActivityEntry, ActivityType, parse_state
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ActivityLogRepository:
    """booking_activities table access."""

    SELECT_COLUMNS = "id, booking_id, activity_type, description, metadata, created_by, created_at"

    @classmethod
    def _row_to_entry(cls, row: dict | None) -> ActivityEntry | None:
        if not row:
            return None

        return ActivityEntry(
            id=str(row["id"]),
            booking_id=str(row["booking_id"]),
            activity_type=parse_state(ActivityType, row["activity_type"]),
            description=row["description"],
            metadata=dict(row.get("metadata") or {}),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
        )

    async def append(
        self, entry: ActivityEntry, *, connection: psycopg.AsyncConnection | None = None
    ) -> ActivityEntry:
        query = f"""
            INSERT INTO booking_activities (
                booking_id, activity_type, description, metadata, created_by
            )
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {self.SELECT_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                entry.booking_id,
                str(entry.activity_type),
                entry.description,
                Jsonb(entry.metadata),
                entry.created_by,
            ),
            connection=connection,
        )
        if not row:
            raise DatabaseError("Failed to append activity entry", operation="append_activity")

        logger.debug(
            "Activity recorded",
            booking_id=entry.booking_id,
            activity_type=str(entry.activity_type),
        )
        return self._row_to_entry(row)

    async def list_for_booking(self, booking_id: str, limit: int = 100) -> list[ActivityEntry]:
        """Newest first, as the timeline renders them."""
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM booking_activities
            WHERE booking_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (booking_id, limit))
        return [self._row_to_entry(row) for row in rows]


activity_log_repository = ActivityLogRepository()
