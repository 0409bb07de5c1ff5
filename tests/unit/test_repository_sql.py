"""
Tests for the compare-and-swap SQL the repositories send to Postgres.

A recording connection stands in for psycopg's AsyncConnection, so the
statements and parameters are exactly what the driver would receive.
"""

from datetime import date

import pytest
from psycopg import sql

from studio_scheduler.domain import PipelineStage, SuggestionStatus, WaitlistStatus
from studio_scheduler.features.matching.repository import SlotInventoryRepository
from studio_scheduler.features.pipeline.repository import BookingRepository
from studio_scheduler.features.suggestions.repository import SuggestionRepository
from studio_scheduler.features.waitlist.repository import WaitlistRepository


class RecordingCursor:
    def __init__(self, connection):
        self.connection = connection

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query, params=()):
        self.connection.executed.append((query, params))

    async def fetchone(self):
        return self.connection.row


class RecordingConnection:
    def __init__(self, row=None):
        self.row = row
        self.executed = []

    def cursor(self):
        return RecordingCursor(self)

    def statement(self) -> tuple[str, tuple]:
        query, params = self.executed[-1]
        if isinstance(query, sql.Composable):
            query = query.as_string()
        return " ".join(query.split()), params


def slot_row(**overrides) -> dict:
    row = {
        "id": "s1",
        "date": date(2026, 3, 12),
        "city": "Austin",
        "city_id": "city-austin",
        "is_available": True,
        "slot_type": "regular",
        "notes": None,
        "version": 5,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_reserve_slot_guards_on_version_and_availability():
    conn = RecordingConnection(row=None)

    reserved = await SlotInventoryRepository().reserve_slot("s1", 4, connection=conn)

    query, params = conn.statement()
    assert reserved is None
    assert "SET is_available = false, version = version + 1" in query
    assert "WHERE id = %s AND version = %s AND is_available = true" in query
    assert params == ("s1", 4)


@pytest.mark.asyncio
async def test_release_slot_only_reopens_consumed_slot():
    conn = RecordingConnection(row=slot_row(is_available=True, version=5))

    released = await SlotInventoryRepository().release_slot("s1", 4, connection=conn)

    query, params = conn.statement()
    assert "SET is_available = true, version = version + 1" in query
    assert "WHERE id = %s AND version = %s AND is_available = false" in query
    assert params == ("s1", 4)
    assert released.is_available is True
    assert released.version == 5


@pytest.mark.asyncio
async def test_suggestion_status_swap_requires_expected_status():
    conn = RecordingConnection(row=None)

    moved = await SuggestionRepository().compare_and_set_status(
        "sug-a",
        SuggestionStatus.SENT_TO_CLIENT,
        SuggestionStatus.CLIENT_CONFIRMED,
        connection=conn,
    )

    query, params = conn.statement()
    assert moved is None
    assert "SET status = %s WHERE id = %s AND status = %s" in query
    assert params == ("client_confirmed", "sug-a", "sent_to_client")


@pytest.mark.asyncio
async def test_finalized_lookup_filters_on_finalizing_statuses():
    conn = RecordingConnection(row=None)

    found = await SuggestionRepository().get_finalized_for_booking("b1", connection=conn)

    query, params = conn.statement()
    assert found is None
    assert "WHERE booking_id = %s AND status IN (%s, %s)" in query
    assert params == ("b1", "client_confirmed", "accepted")


@pytest.mark.asyncio
async def test_booking_update_is_versioned():
    conn = RecordingConnection(row=None)

    updated = await BookingRepository().apply_update(
        "b1",
        3,
        {"pipeline_stage": PipelineStage.CANCELLED, "status": "cancelled"},
        connection=conn,
    )

    query, params = conn.statement()
    assert updated is None
    assert query.startswith('UPDATE bookings SET "pipeline_stage" = %s, "status" = %s')
    assert "version = version + 1" in query
    assert "WHERE id = %s AND version = %s" in query
    assert params == ("cancelled", "cancelled", "b1", 3)


@pytest.mark.asyncio
async def test_booking_update_rejects_columns_outside_whitelist():
    with pytest.raises(ValueError):
        await BookingRepository().apply_update(
            "b1", 3, {"email": "x@example.com"}, connection=RecordingConnection()
        )


@pytest.mark.asyncio
async def test_waitlist_swap_guards_on_status_and_offer_count():
    conn = RecordingConnection(row=None)

    updated = await WaitlistRepository().compare_and_set(
        "w1",
        WaitlistStatus.WAITING,
        2,
        {"status": WaitlistStatus.OFFER_SENT, "offers_sent_count": 3},
        connection=conn,
    )

    query, params = conn.statement()
    assert updated is None
    assert 'SET "status" = %s, "offers_sent_count" = %s' in query
    assert "WHERE id = %s AND status = %s AND offers_sent_count = %s" in query
    assert params == ("offer_sent", 3, "w1", "waiting", 2)
