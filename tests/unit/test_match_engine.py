"""
Tests for the greedy booking-to-slot matcher.
"""

from datetime import timedelta

from conftest import TODAY, make_booking, make_slot

from studio_scheduler.domain import CityConfig, Priority, SuggestionStatus
from studio_scheduler.features.matching.engine import (
    build_reasoning,
    generate_suggestions,
    score_match,
)

CITIES = [
    CityConfig(id="city-austin", city_name="Austin"),
    CityConfig(id="city-la", city_name="LA", city_type="guest_spot"),
]


def day(offset: int):
    return TODAY + timedelta(days=offset)


def la_and_austin():
    return [
        make_slot("s-la", day(3), "LA", city_id=None),
        make_slot("s-austin", day(10), "Austin", city_id=None),
    ]


def test_requested_city_wins_over_earlier_slot_elsewhere():
    booking = make_booking(requested_city="Austin", priority=Priority.HIGH)

    [suggestion] = generate_suggestions([booking], la_and_austin(), CITIES, today=TODAY)

    assert suggestion.slot_id == "s-austin"
    assert suggestion.suggested_date == day(10)
    assert suggestion.suggested_city_id == "city-austin"
    # day+10 falls inside the 14-day window, so every bonus applies and the cap kicks in
    assert suggestion.confidence_score == 0.99
    assert suggestion.status == SuggestionStatus.PENDING
    assert suggestion.conflicts == []


def test_no_requested_city_takes_earliest_slot_overall():
    booking = make_booking(requested_city="")

    [suggestion] = generate_suggestions([booking], la_and_austin(), CITIES, today=TODAY)

    assert suggestion.slot_id == "s-la"
    assert suggestion.suggested_date == day(3)
    assert suggestion.suggested_city_id == "city-la"
    assert suggestion.confidence_score == 0.75
    assert suggestion.conflicts == []


def test_fallback_to_earliest_slot_when_requested_city_has_none():
    booking = make_booking(requested_city="Denver")

    [suggestion] = generate_suggestions([booking], la_and_austin(), CITIES, today=TODAY)

    assert suggestion.slot_id == "s-la"
    assert suggestion.confidence_score == 0.75
    assert suggestion.conflicts == ["No open slots in requested city Denver"]


def test_confidence_without_any_bonus():
    booking = make_booking(requested_city="Denver")
    far_slot = make_slot("s-far", day(30), "LA")

    assert score_match(booking, far_slot, TODAY) == 0.70


def test_confidence_always_within_bounds():
    slots = [make_slot(f"s{i}", day(i * 5), city) for i, city in enumerate(["LA", "Austin"] * 4)]
    bookings = [
        make_booking(f"b{i}", requested_city=city, priority=priority)
        for i, (city, priority) in enumerate(
            [
                ("Austin", Priority.HIGH),
                ("LA", Priority.LOW),
                ("", Priority.HIGH),
                ("Nowhere", Priority.NORMAL),
            ]
        )
    ]

    suggestions = generate_suggestions(bookings, slots, CITIES, today=TODAY)

    assert len(suggestions) == 4
    assert all(0.70 <= s.confidence_score <= 0.99 for s in suggestions)


def test_equal_dates_keep_input_order():
    first = make_slot("s-first", day(5), "Austin")
    second = make_slot("s-second", day(5), "Austin")

    [suggestion] = generate_suggestions([make_booking()], [first, second], CITIES, today=TODAY)

    assert suggestion.slot_id == "s-first"


def test_no_slots_skips_booking():
    assert generate_suggestions([make_booking()], [], CITIES, today=TODAY) == []


def test_same_slot_proposed_to_several_bookings_is_flagged():
    slot = make_slot("s1", day(4), "Austin")
    bookings = [make_booking("b1"), make_booking("b2")]

    suggestions = generate_suggestions(bookings, [slot], CITIES, today=TODAY)

    assert [s.booking_id for s in suggestions] == ["b1", "b2"]
    assert all(s.slot_id == "s1" for s in suggestions)
    expected = "Slot also proposed to 1 other booking(s) in this run"
    assert all(expected in s.conflicts for s in suggestions)


def test_reasoning_names_city_date_and_bonuses():
    booking = make_booking(priority=Priority.HIGH)
    slot = make_slot("s1", day(10), "Austin")

    reasoning = build_reasoning(booking, slot, TODAY)

    assert reasoning.startswith("Best match: Austin on Mar 12.")
    assert "Matches requested city." in reasoning
    assert "High priority client." in reasoning
    assert "Available within 14 days." in reasoning


def test_suggested_time_is_configurable():
    [suggestion] = generate_suggestions(
        [make_booking()], [make_slot()], CITIES, today=TODAY, suggested_time="11:30 AM"
    )

    assert suggestion.suggested_time == "11:30 AM"
