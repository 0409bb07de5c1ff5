"""
Persistence for scheduling suggestions and the calendar events written
when one is finalized.
"""

import psycopg
from psycopg.types.json import Jsonb

from studio_scheduler.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from studio_scheduler.domain import CalendarEventRecord, Suggestion, SuggestionStatus, parse_state
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SuggestionRepositoryError(DatabaseError):
    """More specific exception for suggestion persistence failures."""


class SuggestionRepository:
    """ai_scheduling_suggestions table access."""

    SELECT_COLUMNS = """
        id, booking_id, slot_id, suggested_date, suggested_time, suggested_city_id,
        confidence_score, reasoning, status, conflicts, created_at
    """

    @classmethod
    def _row_to_suggestion(cls, row: dict | None) -> Suggestion | None:
        if not row:
            return None

        return Suggestion(
            id=str(row["id"]),
            booking_id=str(row["booking_id"]),
            slot_id=str(row["slot_id"]) if row.get("slot_id") else None,
            suggested_date=row["suggested_date"],
            suggested_time=row.get("suggested_time"),
            suggested_city_id=(
                str(row["suggested_city_id"]) if row.get("suggested_city_id") else None
            ),
            confidence_score=float(row.get("confidence_score") or 0.0),
            reasoning=row.get("reasoning") or "",
            status=parse_state(
                SuggestionStatus, row.get("status"), default=SuggestionStatus.PENDING
            ),
            conflicts=list(row.get("conflicts") or []),
            created_at=row.get("created_at"),
        )

    async def get(
        self, suggestion_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> Suggestion | None:
        query = f"SELECT {self.SELECT_COLUMNS} FROM ai_scheduling_suggestions WHERE id = %s"
        row = await fetch_one(query, (suggestion_id,), connection=connection)
        return self._row_to_suggestion(row)

    async def list_by_status(self, status: SuggestionStatus) -> list[Suggestion]:
        """Suggestions in ``status``, most confident first."""
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM ai_scheduling_suggestions
            WHERE status = %s
            ORDER BY confidence_score DESC, created_at ASC
        """
        rows = await fetch_all(query, (str(status),))
        return [self._row_to_suggestion(row) for row in rows]

    async def delete_pending(self, *, connection: psycopg.AsyncConnection | None = None) -> int:
        query = "DELETE FROM ai_scheduling_suggestions WHERE status = %s"
        deleted = await execute_query(
            query, (str(SuggestionStatus.PENDING),), connection=connection
        )
        logger.info("Cleared pending suggestions", deleted=deleted)
        return deleted

    async def insert_many(
        self,
        suggestions: list[Suggestion],
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> list[Suggestion]:
        """Insert suggestions and return them with ids and timestamps filled in."""
        query = f"""
            INSERT INTO ai_scheduling_suggestions (
                booking_id, slot_id, suggested_date, suggested_time, suggested_city_id,
                confidence_score, reasoning, status, conflicts
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {self.SELECT_COLUMNS}
        """

        stored = []
        for suggestion in suggestions:
            row = await fetch_one(
                query,
                (
                    suggestion.booking_id,
                    suggestion.slot_id,
                    suggestion.suggested_date,
                    suggestion.suggested_time,
                    suggestion.suggested_city_id,
                    suggestion.confidence_score,
                    suggestion.reasoning,
                    str(suggestion.status),
                    suggestion.conflicts,
                ),
                connection=connection,
            )
            if not row:
                raise SuggestionRepositoryError(
                    "Failed to insert suggestion", operation="insert_many"
                )
            stored.append(self._row_to_suggestion(row))

        return stored

    async def compare_and_set_status(
        self,
        suggestion_id: str,
        expected: SuggestionStatus,
        new: SuggestionStatus,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Suggestion | None:
        """
        Move a suggestion from ``expected`` to ``new``.

        Returns:
            The updated suggestion, or None when its status had already moved
        """
        query = f"""
            UPDATE ai_scheduling_suggestions
            SET status = %s
            WHERE id = %s AND status = %s
            RETURNING {self.SELECT_COLUMNS}
        """
        row = await fetch_one(
            query, (str(new), suggestion_id, str(expected)), connection=connection
        )
        return self._row_to_suggestion(row)

    async def get_finalized_for_booking(
        self, booking_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> Suggestion | None:
        """The suggestion that scheduled ``booking_id``, if any."""
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM ai_scheduling_suggestions
            WHERE booking_id = %s AND status IN (%s, %s)
            ORDER BY created_at DESC
            LIMIT 1
        """
        row = await fetch_one(
            query,
            (
                booking_id,
                str(SuggestionStatus.CLIENT_CONFIRMED),
                str(SuggestionStatus.ACCEPTED),
            ),
            connection=connection,
        )
        return self._row_to_suggestion(row)


class CalendarEventRepository:
    """Session events created when a booking gets a confirmed date."""

    async def create_event(
        self,
        record: CalendarEventRecord,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> str:
        query = """
            INSERT INTO calendar_events (
                booking_id, city_id, title, event_type, start_time, end_time,
                ai_suggested, ai_confidence, extended_properties
            )
            VALUES (%s, %s, %s, 'session', %s, %s, %s, %s, %s)
            RETURNING id
        """
        row = await fetch_one(
            query,
            (
                record.booking_id,
                record.city_id,
                record.title,
                record.start_time,
                record.end_time,
                record.ai_suggested,
                record.ai_confidence,
                Jsonb(record.extended_properties),
            ),
            connection=connection,
        )
        if not row:
            raise SuggestionRepositoryError(
                "Failed to create calendar event", operation="create_event"
            )

        event_id = str(row["id"])
        logger.info("Calendar event created", event_id=event_id, booking_id=record.booking_id)
        return event_id


suggestion_repository = SuggestionRepository()
calendar_event_repository = CalendarEventRepository()
