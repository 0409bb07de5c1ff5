"""
Scheduling insights shown next to the suggestion list.

Plain heuristics over the same inputs the matcher sees; lower priority
numbers sort first.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from studio_scheduler.domain import AvailabilitySlot, Booking, CityConfig, Priority

URGENT_WAIT_DAYS = 7
LOW_GUEST_SPOT_THRESHOLD = 5
CLUSTER_MIN_SLOTS = 5
CLUSTER_MIN_BOOKINGS = 3
MONTHLY_SESSION_TARGET = 15


@dataclass(slots=True)
class SchedulingInsight:
    type: str  # "warning", "opportunity" or "optimization"
    title: str
    description: str
    priority: int
    action: str | None = None


def generate_insights(
    bookings: Sequence[Booking],
    slots: Sequence[AvailabilitySlot],
    cities: Sequence[CityConfig],
    *,
    today: date,
) -> list[SchedulingInsight]:
    insights: list[SchedulingInsight] = []
    waiting = [booking for booking in bookings if not booking.is_scheduled()]

    urgent = [
        booking
        for booking in waiting
        if booking.priority == Priority.HIGH
        or (
            booking.created_at is not None
            and (today - booking.created_at.date()).days > URGENT_WAIT_DAYS
        )
    ]
    if urgent:
        insights.append(
            SchedulingInsight(
                type="warning",
                title=f"{len(urgent)} Urgent Bookings Need Scheduling",
                description="These clients have been waiting or are marked as high priority",
                action="Review and schedule",
                priority=1,
            )
        )

    guest_spot_cities = {city.city_name for city in cities if city.is_guest_spot}
    guest_spot_slots = [slot for slot in slots if slot.city in guest_spot_cities]
    if len(guest_spot_slots) < LOW_GUEST_SPOT_THRESHOLD:
        insights.append(
            SchedulingInsight(
                type="opportunity",
                title="Low Guest Spot Availability",
                description=(
                    "Consider opening more dates for guest spots to maximize travel efficiency"
                ),
                action="Add availability",
                priority=2,
            )
        )

    slots_by_city = Counter(slot.city for slot in slots)
    for city, count in slots_by_city.items():
        if count < CLUSTER_MIN_SLOTS:
            continue
        wanting = sum(1 for booking in waiting if booking.requested_city == city)
        if wanting >= CLUSTER_MIN_BOOKINGS:
            insights.append(
                SchedulingInsight(
                    type="optimization",
                    title=f"Cluster Opportunity: {city}",
                    description=f"{wanting} clients want {city} with {count} slots available",
                    action="Schedule batch",
                    priority=3,
                )
            )

    scheduled = sum(1 for booking in bookings if booking.is_scheduled())
    if scheduled < MONTHLY_SESSION_TARGET:
        insights.append(
            SchedulingInsight(
                type="opportunity",
                title="Revenue Opportunity",
                description="Calendar has capacity for more sessions this month",
                priority=4,
            )
        )

    return sorted(insights, key=lambda insight: insight.priority)
