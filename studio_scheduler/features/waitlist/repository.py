"""
Persistence for the booking waitlist.

Writes are compare-and-swap on (status, offers_sent_count) so two offers
racing for the same entry cannot both land.
"""

from datetime import date, datetime
from typing import Any

import psycopg
from psycopg import sql

from studio_scheduler.db.helpers import fetch_all, fetch_one, with_db_retry
from studio_scheduler.db.updates import build_set_clause
from studio_scheduler.domain import WaitlistEntry, WaitlistStatus, parse_state
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

UPDATABLE_COLUMNS = {
    "status",
    "offers_sent_count",
    "last_offer_sent_at",
    "discount_eligible",
    "converted_booking_id",
}


class WaitlistRepository:
    """booking_waitlist table access."""

    SELECT_COLUMNS = """
        id, client_name, client_email, client_phone, preferred_cities, preferred_dates,
        flexibility_days, max_budget, size_preference, style_preference, tattoo_description,
        match_score, status, offers_sent_count, last_offer_sent_at, discount_eligible,
        expires_at, converted_booking_id, created_at
    """

    @classmethod
    def _row_to_entry(cls, row: dict | None) -> WaitlistEntry | None:
        if not row:
            return None

        return WaitlistEntry(
            id=str(row["id"]),
            client_email=row["client_email"],
            client_name=row.get("client_name"),
            client_phone=row.get("client_phone"),
            preferred_cities=list(row.get("preferred_cities") or []),
            preferred_dates=_parse_dates(row.get("preferred_dates")),
            flexibility_days=row.get("flexibility_days") or 0,
            max_budget=float(row["max_budget"]) if row.get("max_budget") is not None else None,
            size_preference=row.get("size_preference"),
            style_preference=row.get("style_preference"),
            tattoo_description=row.get("tattoo_description"),
            match_score=row.get("match_score") or 0,
            status=parse_state(WaitlistStatus, row.get("status"), default=WaitlistStatus.WAITING),
            offers_sent_count=row.get("offers_sent_count") or 0,
            last_offer_sent_at=row.get("last_offer_sent_at"),
            discount_eligible=bool(row.get("discount_eligible")),
            expires_at=row.get("expires_at"),
            converted_booking_id=(
                str(row["converted_booking_id"]) if row.get("converted_booking_id") else None
            ),
            created_at=row.get("created_at"),
        )

    async def get(
        self, entry_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> WaitlistEntry | None:
        query = f"SELECT {self.SELECT_COLUMNS} FROM booking_waitlist WHERE id = %s"
        row = await fetch_one(query, (entry_id,), connection=connection)
        return self._row_to_entry(row)

    @with_db_retry()
    async def list_by_status(self, status: WaitlistStatus | None = None) -> list[WaitlistEntry]:
        """Entries in ``status`` (all entries when None), highest score first."""
        if status is None:
            query = f"""
                SELECT {self.SELECT_COLUMNS}
                FROM booking_waitlist
                ORDER BY match_score DESC, created_at ASC
            """
            rows = await fetch_all(query)
        else:
            query = f"""
                SELECT {self.SELECT_COLUMNS}
                FROM booking_waitlist
                WHERE status = %s
                ORDER BY match_score DESC, created_at ASC
            """
            rows = await fetch_all(query, (str(status),))
        return [self._row_to_entry(row) for row in rows]

    @with_db_retry()
    async def list_expirable(self, now: datetime) -> list[WaitlistEntry]:
        """Entries whose expiry passed but are not expired yet."""
        query = f"""
            SELECT {self.SELECT_COLUMNS}
            FROM booking_waitlist
            WHERE status <> %s
              AND expires_at IS NOT NULL
              AND expires_at <= %s
            ORDER BY expires_at ASC
        """
        rows = await fetch_all(query, (str(WaitlistStatus.EXPIRED), now))
        return [self._row_to_entry(row) for row in rows]

    async def compare_and_set(
        self,
        entry_id: str,
        expected_status: WaitlistStatus,
        expected_offers_count: int,
        updates: dict[str, Any],
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> WaitlistEntry | None:
        """
        Apply ``updates`` if the entry still has the expected status and offer count.

        Returns:
            The updated entry, or None when another writer moved it first
        """
        set_clause, params = build_set_clause(updates, UPDATABLE_COLUMNS)
        query = sql.SQL(
            "UPDATE booking_waitlist SET {set_clause}, updated_at = NOW() "
            "WHERE id = %s AND status = %s AND offers_sent_count = %s "
            "RETURNING {columns}"
        ).format(set_clause=set_clause, columns=sql.SQL(self.SELECT_COLUMNS))

        row = await fetch_one(
            query,
            (*params, entry_id, str(expected_status), expected_offers_count),
            connection=connection,
        )
        if not row:
            logger.warning(
                "Waitlist entry changed concurrently",
                entry_id=entry_id,
                expected_status=str(expected_status),
            )
            return None
        return self._row_to_entry(row)


def _parse_dates(values) -> list[date]:
    """
    Coerce the preferred_dates JSON column into dates.

    Intake stores plain ISO strings; anything that does not parse is dropped.
    """
    parsed: list[date] = []
    for value in values or []:
        if isinstance(value, datetime):
            parsed.append(value.date())
        elif isinstance(value, date):
            parsed.append(value)
        else:
            try:
                parsed.append(date.fromisoformat(str(value).strip()[:10]))
            except ValueError:
                logger.debug("Skipping unparseable preferred date", value=value)
    return parsed


waitlist_repository = WaitlistRepository()
