"""
Tests for scheduling insights.
"""

from datetime import date, timedelta

import pytest
from conftest import NOW, TODAY, make_booking, make_slot

from studio_scheduler.domain import CityConfig, Priority
from studio_scheduler.features.matching.insights import generate_insights

CITIES = [
    CityConfig(id="city-austin", city_name="Austin"),
    CityConfig(id="city-denver", city_name="Denver", city_type="guest_spot"),
]


def test_all_rules_fire_in_priority_order():
    bookings = [
        make_booking("b1", priority=Priority.HIGH),
        make_booking("b2"),
        make_booking("b3"),
    ]
    slots = [make_slot(f"s{i}", TODAY + timedelta(days=i)) for i in range(5)]

    insights = generate_insights(bookings, slots, CITIES, today=TODAY)

    assert [i.priority for i in insights] == [1, 2, 3, 4]
    assert insights[0].title == "1 Urgent Bookings Need Scheduling"
    assert insights[1].title == "Low Guest Spot Availability"
    assert insights[2].title == "Cluster Opportunity: Austin"
    assert insights[2].description == "3 clients want Austin with 5 slots available"
    assert insights[3].title == "Revenue Opportunity"


def test_long_wait_counts_as_urgent():
    waited = make_booking("b1", created_at=NOW - timedelta(days=8))

    [urgent, *_] = generate_insights([waited], [], CITIES, today=TODAY)

    assert urgent.type == "warning"


def test_quiet_calendar_only_flags_what_applies():
    scheduled = [
        make_booking(f"b{i}", scheduled_date=date(2026, 3, 20)) for i in range(15)
    ]
    guest_slots = [make_slot(f"g{i}", city="Denver") for i in range(5)]

    insights = generate_insights(scheduled, guest_slots, CITIES, today=TODAY)

    assert insights == []


@pytest.mark.asyncio
async def test_service_combines_waiting_and_this_months_sessions(store, matching):
    for i in range(15):
        store.bookings[f"done{i}"] = make_booking(f"done{i}", scheduled_date=date(2026, 3, 20))
    for i in range(5):
        store.slots[f"g{i}"] = make_slot(f"g{i}", city="Denver")

    insights = await matching.insights()

    assert insights == []
