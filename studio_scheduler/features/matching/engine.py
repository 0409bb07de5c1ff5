"""
Greedy booking-to-slot matcher.

Each booking is matched independently, in input order, to the earliest
open slot in its requested city, falling back to the earliest slot in any
city. Slots are not reserved here; the same slot can be proposed to several
bookings in one run, which is surfaced in ``Suggestion.conflicts``.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date

from studio_scheduler.domain import (
    AvailabilitySlot,
    Booking,
    CityConfig,
    Priority,
    Suggestion,
    SuggestionStatus,
)

BASE_CONFIDENCE = 0.70
CITY_MATCH_BONUS = 0.20
HIGH_PRIORITY_BONUS = 0.05
SOON_BONUS = 0.05
SOON_WINDOW_DAYS = 14
MAX_CONFIDENCE = 0.99

DEFAULT_SUGGESTED_TIME = "10:00 AM"


def candidate_slots(booking: Booking, slots: Sequence[AvailabilitySlot]) -> list[AvailabilitySlot]:
    """Slots in the requested city, or every slot when there are none."""
    requested = (booking.requested_city or "").strip()
    candidates = list(slots)
    if requested:
        in_city = [slot for slot in slots if slot.city == requested]
        if in_city:
            candidates = in_city
    # sorted() is stable, so equal dates keep their input order
    return sorted(candidates, key=lambda slot: slot.date)


def score_match(booking: Booking, slot: AvailabilitySlot, today: date) -> float:
    confidence = BASE_CONFIDENCE
    if _matches_requested_city(booking, slot):
        confidence += CITY_MATCH_BONUS
    if booking.priority == Priority.HIGH:
        confidence += HIGH_PRIORITY_BONUS
    if (slot.date - today).days <= SOON_WINDOW_DAYS:
        confidence += SOON_BONUS
    return round(min(confidence, MAX_CONFIDENCE), 2)


def build_reasoning(booking: Booking, slot: AvailabilitySlot, today: date) -> str:
    parts = [f"Best match: {slot.city} on {slot.date:%b} {slot.date.day}."]
    if _matches_requested_city(booking, slot):
        parts.append("Matches requested city.")
    if booking.priority == Priority.HIGH:
        parts.append("High priority client.")
    if (slot.date - today).days <= SOON_WINDOW_DAYS:
        parts.append(f"Available within {SOON_WINDOW_DAYS} days.")
    return " ".join(parts)


def generate_suggestions(
    bookings: Iterable[Booking],
    slots: Sequence[AvailabilitySlot],
    cities: Sequence[CityConfig],
    *,
    today: date,
    suggested_time: str = DEFAULT_SUGGESTED_TIME,
) -> list[Suggestion]:
    """
    Produce one pending Suggestion per booking that has any slot to offer.

    Args:
        bookings: Unscheduled bookings, matched in the given order
        slots: Open availability slots
        cities: Active city configurations, used to resolve city ids
        today: Reference date for the "soon" bonus
        suggested_time: Session start time written on every suggestion

    Returns:
        Suggestions in booking order; bookings without a slot are skipped
    """
    city_ids = {city.city_name: city.id for city in cities}
    matches: list[tuple[Booking, AvailabilitySlot, bool]] = []

    for booking in bookings:
        ranked = candidate_slots(booking, slots)
        if not ranked:
            continue
        slot = ranked[0]
        fell_back = bool((booking.requested_city or "").strip()) and not _matches_requested_city(
            booking, slot
        )
        matches.append((booking, slot, fell_back))

    proposals_per_slot = Counter(_slot_key(slot) for _, slot, _ in matches)

    suggestions = []
    for booking, slot, fell_back in matches:
        conflicts = []
        if fell_back:
            conflicts.append(f"No open slots in requested city {booking.requested_city}")
        others = proposals_per_slot[_slot_key(slot)] - 1
        if others:
            conflicts.append(f"Slot also proposed to {others} other booking(s) in this run")

        suggestions.append(
            Suggestion(
                booking_id=booking.id,
                suggested_date=slot.date,
                suggested_time=suggested_time,
                suggested_city_id=slot.city_id or city_ids.get(slot.city),
                slot_id=slot.id,
                confidence_score=score_match(booking, slot, today),
                reasoning=build_reasoning(booking, slot, today),
                status=SuggestionStatus.PENDING,
                conflicts=conflicts,
            )
        )

    return suggestions


def _matches_requested_city(booking: Booking, slot: AvailabilitySlot) -> bool:
    requested = (booking.requested_city or "").strip()
    return bool(requested) and slot.city == requested


def _slot_key(slot: AvailabilitySlot) -> str:
    return slot.id or f"{slot.city}:{slot.date.isoformat()}"
