import asyncio
import copy
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime

import pytest

from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.domain import (
    ActivityEntry,
    AvailabilitySlot,
    Booking,
    CalendarEventRecord,
    CityConfig,
    ExternalServiceError,
    Suggestion,
    SuggestionStatus,
    WaitlistEntry,
    WaitlistStatus,
)
from studio_scheduler.features.matching.service import MatchingService
from studio_scheduler.features.pipeline.repository import MATCHABLE_STAGES
from studio_scheduler.features.pipeline.service import PipelineService
from studio_scheduler.features.suggestions.lifecycle import FINALIZING
from studio_scheduler.features.suggestions.service import SuggestionService
from studio_scheduler.features.waitlist.service import WaitlistService
from studio_scheduler.integrations.notifications import NotificationResult

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
TODAY = NOW.date()
SITE = "https://studio.test"


def status_link(action: str, suggestion_id: str) -> str:
    return f"{SITE}/booking-status?action={action}&suggestion={suggestion_id}"


@dataclass
class FakeStore:
    """In-memory tables shared by the fake repositories."""

    bookings: dict[str, Booking] = field(default_factory=dict)
    slots: dict[str, AvailabilitySlot] = field(default_factory=dict)
    cities: dict[str, CityConfig] = field(default_factory=dict)
    suggestions: dict[str, Suggestion] = field(default_factory=dict)
    events: list[CalendarEventRecord] = field(default_factory=list)
    activities: list[ActivityEntry] = field(default_factory=list)
    waitlist: dict[str, WaitlistEntry] = field(default_factory=dict)
    fail_on: set[str] = field(default_factory=set)

    def __post_init__(self):
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    @asynccontextmanager
    async def transaction(self):
        """Serialised transaction: every table is restored if the block raises."""
        async with self._lock:
            snapshot = copy.deepcopy(
                (
                    self.bookings,
                    self.slots,
                    self.suggestions,
                    self.events,
                    self.activities,
                    self.waitlist,
                )
            )
            try:
                yield "fake-connection"
            except BaseException:
                (
                    self.bookings,
                    self.slots,
                    self.suggestions,
                    self.events,
                    self.activities,
                    self.waitlist,
                ) = snapshot
                raise

    def stage_changes_for(self, booking_id: str) -> list[ActivityEntry]:
        return [
            entry
            for entry in self.activities
            if entry.booking_id == booking_id and entry.activity_type == "stage_change"
        ]


class FakeBookingRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get(self, booking_id, *, connection=None):
        await asyncio.sleep(0)
        booking = self.store.bookings.get(booking_id)
        return replace(booking) if booking else None

    async def list_unscheduled_candidates(self):
        return [
            replace(b)
            for b in self.store.bookings.values()
            if b.pipeline_stage in MATCHABLE_STAGES and b.scheduled_date is None
        ]

    async def list_scheduled_between(self, start, end):
        return [
            replace(b)
            for b in self.store.bookings.values()
            if b.scheduled_date is not None and start <= b.scheduled_date <= end
        ]

    async def apply_update(self, booking_id, expected_version, updates, *, connection=None):
        current = self.store.bookings.get(booking_id)
        if current is None or current.version != expected_version:
            return None
        updated = replace(current, **updates, version=current.version + 1)
        self.store.bookings[booking_id] = updated
        return replace(updated)


class FakeSlotInventory:
    def __init__(self, store: FakeStore):
        self.store = store

    async def list_open_slots(self, from_date):
        return [
            replace(s)
            for s in self.store.slots.values()
            if s.is_available and s.date >= from_date
        ]

    async def get_slot(self, slot_id, *, connection=None):
        await asyncio.sleep(0)
        slot = self.store.slots.get(slot_id)
        return replace(slot) if slot else None

    async def reserve_slot(self, slot_id, expected_version, *, connection=None):
        slot = self.store.slots.get(slot_id)
        if slot is None or not slot.is_available or slot.version != expected_version:
            return None
        reserved = replace(slot, is_available=False, version=slot.version + 1)
        self.store.slots[slot_id] = reserved
        return replace(reserved)

    async def release_slot(self, slot_id, expected_version, *, connection=None):
        slot = self.store.slots.get(slot_id)
        if slot is None or slot.is_available or slot.version != expected_version:
            return None
        released = replace(slot, is_available=True, version=slot.version + 1)
        self.store.slots[slot_id] = released
        return replace(released)

    async def list_active_cities(self):
        return [replace(c) for c in self.store.cities.values() if c.is_active]

    async def get_city(self, city_id, *, connection=None):
        city = self.store.cities.get(city_id)
        return replace(city) if city else None


class FakeSuggestionRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get(self, suggestion_id, *, connection=None):
        await asyncio.sleep(0)
        suggestion = self.store.suggestions.get(suggestion_id)
        return replace(suggestion) if suggestion else None

    async def list_by_status(self, status):
        matching = [s for s in self.store.suggestions.values() if s.status == status]
        return [replace(s) for s in sorted(matching, key=lambda s: -s.confidence_score)]

    async def delete_pending(self, *, connection=None):
        pending = [
            key
            for key, s in self.store.suggestions.items()
            if s.status == SuggestionStatus.PENDING
        ]
        for key in pending:
            del self.store.suggestions[key]
        return len(pending)

    async def insert_many(self, suggestions, *, connection=None):
        if "insert_suggestions" in self.store.fail_on:
            raise DatabaseError("insert failed", operation="insert_many")
        stored = []
        for suggestion in suggestions:
            row = replace(suggestion, id=self.store.next_id("sug"), created_at=NOW)
            self.store.suggestions[row.id] = row
            stored.append(replace(row))
        return stored

    async def compare_and_set_status(self, suggestion_id, expected, new, *, connection=None):
        current = self.store.suggestions.get(suggestion_id)
        if current is None or current.status != expected:
            return None
        updated = replace(current, status=new)
        self.store.suggestions[suggestion_id] = updated
        return replace(updated)

    async def get_finalized_for_booking(self, booking_id, *, connection=None):
        finalized = [
            s
            for s in self.store.suggestions.values()
            if s.booking_id == booking_id and s.status in FINALIZING
        ]
        return replace(finalized[-1]) if finalized else None


class FakeCalendarEvents:
    def __init__(self, store: FakeStore):
        self.store = store

    async def create_event(self, record, *, connection=None):
        event = replace(record, id=self.store.next_id("evt"))
        self.store.events.append(event)
        return event.id


class FakeActivityLog:
    def __init__(self, store: FakeStore):
        self.store = store

    async def append(self, entry, *, connection=None):
        stored = replace(entry, id=self.store.next_id("act"), created_at=NOW)
        self.store.activities.append(stored)
        return stored

    async def list_for_booking(self, booking_id, limit=100):
        entries = [e for e in self.store.activities if e.booking_id == booking_id]
        return list(reversed(entries))[:limit]


class FakeWaitlistRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get(self, entry_id, *, connection=None):
        entry = self.store.waitlist.get(entry_id)
        return replace(entry) if entry else None

    async def list_by_status(self, status=None):
        return [
            replace(e) for e in self.store.waitlist.values() if status is None or e.status == status
        ]

    async def list_expirable(self, now):
        return [
            replace(e)
            for e in self.store.waitlist.values()
            if e.status != WaitlistStatus.EXPIRED and e.expires_at and e.expires_at <= now
        ]

    async def compare_and_set(
        self, entry_id, expected_status, expected_offers_count, updates, *, connection=None
    ):
        current = self.store.waitlist.get(entry_id)
        if (
            current is None
            or current.status != expected_status
            or current.offers_sent_count != expected_offers_count
        ):
            return None
        updated = replace(current, **updates)
        self.store.waitlist[entry_id] = updated
        return replace(updated)


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple] = []
        self.fail = False

    async def send(self, kind, recipient, payload):
        if self.fail:
            raise ExternalServiceError("booking-notification returned HTTP 500")
        self.sent.append((kind, recipient, payload))
        return NotificationResult(kind=kind, recipient=recipient, success=True)


def make_booking(booking_id="b1", **overrides) -> Booking:
    values = {
        "id": booking_id,
        "name": "Alex Rivera",
        "email": f"{booking_id}@example.com",
        "requested_city": "Austin",
        "created_at": NOW,
    }
    values.update(overrides)
    return Booking(**values)


def make_slot(slot_id="s1", slot_date=None, city="Austin", **overrides) -> AvailabilitySlot:
    return AvailabilitySlot(
        id=slot_id,
        date=slot_date or date(2026, 3, 12),
        city=city,
        city_id=overrides.pop("city_id", f"city-{city.lower()}"),
        **overrides,
    )


def make_suggestion(suggestion_id="sug-a", booking_id="b1", **overrides) -> Suggestion:
    values = {
        "id": suggestion_id,
        "booking_id": booking_id,
        "slot_id": "s1",
        "suggested_date": date(2026, 3, 12),
        "suggested_time": "10:00 AM",
        "suggested_city_id": "city-austin",
        "confidence_score": 0.99,
        "reasoning": "Best match: Austin on Mar 12.",
        "status": SuggestionStatus.PENDING,
    }
    values.update(overrides)
    return Suggestion(**values)


def make_waitlist_entry(entry_id="w1", **overrides) -> WaitlistEntry:
    values = {
        "id": entry_id,
        "client_email": f"{entry_id}@example.com",
        "client_name": "Sam Lee",
        "match_score": 50,
        "created_at": NOW,
    }
    values.update(overrides)
    return WaitlistEntry(**values)


@pytest.fixture
def store():
    store = FakeStore()
    store.cities["city-austin"] = CityConfig(id="city-austin", city_name="Austin")
    store.cities["city-denver"] = CityConfig(
        id="city-denver", city_name="Denver", city_type="guest_spot"
    )
    return store


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def pipeline(store):
    return PipelineService(
        bookings=FakeBookingRepository(store),
        activity_log=FakeActivityLog(store),
        transaction=store.transaction,
        strict_ordering=False,
        clock=lambda: NOW,
        suggestions=FakeSuggestionRepository(store),
        inventory=FakeSlotInventory(store),
    )


@pytest.fixture
def suggestions(store, pipeline, notifier):
    return SuggestionService(
        suggestions=FakeSuggestionRepository(store),
        bookings=FakeBookingRepository(store),
        inventory=FakeSlotInventory(store),
        calendar=FakeCalendarEvents(store),
        activity_log=FakeActivityLog(store),
        pipeline=pipeline,
        notifier=notifier,
        transaction=store.transaction,
        clock=lambda: NOW,
        link_builder=status_link,
        session_length_hours=8,
    )


@pytest.fixture
def matching(store):
    return MatchingService(
        bookings=FakeBookingRepository(store),
        inventory=FakeSlotInventory(store),
        suggestions=FakeSuggestionRepository(store),
        transaction=store.transaction,
        today=lambda: TODAY,
    )


@pytest.fixture
def waitlist(store, notifier):
    return WaitlistService(
        entries=FakeWaitlistRepository(store),
        inventory=FakeSlotInventory(store),
        notifier=notifier,
        transaction=store.transaction,
        clock=lambda: NOW,
        default_discount=15,
        offers_per_opening=1,
    )
