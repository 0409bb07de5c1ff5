"""
Waitlist matching and offer planning.

Pure functions: ranking candidates for a freed slot and planning status
changes. The match score on each entry is computed elsewhere and taken
as given.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from studio_scheduler.domain import (
    AvailabilitySlot,
    ConflictError,
    ValidationError,
    WaitlistEntry,
    WaitlistStatus,
    parse_state,
)
from studio_scheduler.integrations.notifications import NotificationKind, SendNotification

WAITLIST_TRANSITIONS: dict[WaitlistStatus, frozenset[WaitlistStatus]] = {
    WaitlistStatus.WAITING: frozenset({WaitlistStatus.OFFER_SENT, WaitlistStatus.EXPIRED}),
    # repeat offers are allowed
    WaitlistStatus.OFFER_SENT: frozenset(
        {WaitlistStatus.OFFER_SENT, WaitlistStatus.CONVERTED, WaitlistStatus.EXPIRED}
    ),
    WaitlistStatus.CONVERTED: frozenset({WaitlistStatus.EXPIRED}),
    WaitlistStatus.EXPIRED: frozenset(),
}


@dataclass(slots=True)
class WaitlistChange:
    entry_id: str
    from_status: WaitlistStatus
    to_status: WaitlistStatus
    expected_offers_count: int
    updates: dict[str, Any] = field(default_factory=dict)
    notification: SendNotification | None = None


def rank_candidates(
    entries: Iterable[WaitlistEntry], slot: AvailabilitySlot, *, today: date
) -> list[WaitlistEntry]:
    """
    Waiting entries that fit ``slot``, best first.

    An entry fits when it has not expired, its preferred cities include the
    slot's city (or are empty) and its preferred dates, widened by
    ``flexibility_days`` either side, cover the slot's date (or are empty).
    Ties on match score go to fewer offers received, then to the oldest entry.
    """
    fitting = [
        entry
        for entry in entries
        if entry.status == WaitlistStatus.WAITING
        and not _is_past_expiry(entry, today)
        and _city_fits(entry, slot)
        and _date_fits(entry, slot)
    ]
    return sorted(fitting, key=_rank_key)


def plan_offer(
    entry: WaitlistEntry,
    *,
    now: datetime,
    discount_percentage: int,
    custom_message: str | None = None,
    slot: AvailabilitySlot | None = None,
) -> WaitlistChange:
    """
    Plan sending (or re-sending) an offer to ``entry``.

    Raises:
        ValidationError: discount outside 0-100
        ConflictError: entry already converted or expired
    """
    if not 0 <= discount_percentage <= 100:
        raise ValidationError(
            f"Discount must be between 0 and 100, got {discount_percentage}",
            entity_id=entry.id,
        )

    change = plan_status_change(entry, WaitlistStatus.OFFER_SENT)
    change.updates.update(
        {
            "offers_sent_count": entry.offers_sent_count + 1,
            "last_offer_sent_at": now,
            "discount_eligible": discount_percentage > 0,
        }
    )

    payload: dict[str, Any] = {
        "waitlist_id": entry.id,
        "client_name": entry.client_name,
        "discount_percentage": discount_percentage,
        "custom_message": custom_message,
    }
    if slot is not None:
        payload["slot_date"] = slot.date.isoformat()
        payload["slot_city"] = slot.city

    change.notification = SendNotification(
        kind=NotificationKind.WAITLIST_OFFER,
        recipient=entry.client_email,
        payload=payload,
    )
    return change


def plan_status_change(
    entry: WaitlistEntry,
    target: str | WaitlistStatus,
    *,
    converted_booking_id: str | None = None,
) -> WaitlistChange:
    """
    Plan a status move for ``entry``.

    Raises:
        ValidationError: unknown status
        ConflictError: move not allowed from the entry's current status
    """
    target_status = parse_state(WaitlistStatus, target)
    if target_status not in WAITLIST_TRANSITIONS[entry.status]:
        raise ConflictError(
            f"Waitlist entry is {entry.status}; it cannot move to {target_status}",
            entity_id=entry.id,
            error_code="invalid_transition",
        )

    updates: dict[str, Any] = {"status": target_status}
    if target_status == WaitlistStatus.CONVERTED and converted_booking_id:
        updates["converted_booking_id"] = converted_booking_id

    return WaitlistChange(
        entry_id=entry.id,
        from_status=entry.status,
        to_status=target_status,
        expected_offers_count=entry.offers_sent_count,
        updates=updates,
    )


def is_stale(entry: WaitlistEntry, now: datetime) -> bool:
    """True when the entry's expiry passed and it is not expired yet."""
    return (
        entry.status != WaitlistStatus.EXPIRED
        and entry.expires_at is not None
        and entry.expires_at <= now
    )


def _is_past_expiry(entry: WaitlistEntry, today: date) -> bool:
    return entry.expires_at is not None and entry.expires_at.date() < today


def _city_fits(entry: WaitlistEntry, slot: AvailabilitySlot) -> bool:
    if not entry.preferred_cities:
        return True
    wanted = {city.strip().lower() for city in entry.preferred_cities}
    return slot.city.strip().lower() in wanted


def _date_fits(entry: WaitlistEntry, slot: AvailabilitySlot) -> bool:
    if not entry.preferred_dates:
        return True
    window = timedelta(days=max(entry.flexibility_days, 0))
    return any(
        preferred - window <= slot.date <= preferred + window
        for preferred in entry.preferred_dates
    )


def _rank_key(entry: WaitlistEntry) -> tuple:
    created = entry.created_at.timestamp() if entry.created_at else float("inf")
    return (-entry.match_score, entry.offers_sent_count, created)
