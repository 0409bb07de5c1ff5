"""
Suggestion lifecycle.

``plan_transition`` validates a status move against SUGGESTION_TRANSITIONS
and returns everything the move implies: the booking stage change for
finalizing moves, the activity entry for the others, and the effects the
service carries out (slot reservation, calendar event, notification).
Nothing here performs I/O.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

from studio_scheduler.domain import (
    ActivityEntry,
    ActivityType,
    AvailabilitySlot,
    Booking,
    CalendarEventRecord,
    CityConfig,
    ConflictError,
    NotFoundError,
    PipelineStage,
    Suggestion,
    SuggestionStatus,
    parse_state,
)
from studio_scheduler.features.pipeline.state_machine import StageChange, plan_stage_change
from studio_scheduler.integrations.notifications import NotificationKind, SendNotification

SUGGESTION_TRANSITIONS: dict[SuggestionStatus, frozenset[SuggestionStatus]] = {
    SuggestionStatus.PENDING: frozenset(
        {
            SuggestionStatus.SENT_TO_CLIENT,
            SuggestionStatus.ACCEPTED,
            SuggestionStatus.DISMISSED,
            SuggestionStatus.REJECTED,
        }
    ),
    SuggestionStatus.SENT_TO_CLIENT: frozenset(
        {
            SuggestionStatus.CLIENT_CONFIRMED,
            SuggestionStatus.CLIENT_DECLINED,
            SuggestionStatus.REJECTED,
        }
    ),
    SuggestionStatus.CLIENT_CONFIRMED: frozenset(),
    SuggestionStatus.CLIENT_DECLINED: frozenset(),
    SuggestionStatus.ACCEPTED: frozenset(),
    SuggestionStatus.DISMISSED: frozenset(),
    SuggestionStatus.REJECTED: frozenset(),
}

# Moves that commit the booking to the suggested date
FINALIZING = frozenset({SuggestionStatus.CLIENT_CONFIRMED, SuggestionStatus.ACCEPTED})

CONFIRM_ACTION = "confirm_schedule"
DECLINE_ACTION = "decline_schedule"

DEFAULT_SESSION_START = time(10, 0)
SESSION_TIME_FORMATS = ("%I:%M %p", "%H:%M", "%I %p")

STATUS_DESCRIPTIONS: dict[SuggestionStatus, str] = {
    SuggestionStatus.SENT_TO_CLIENT: "Schedule proposal sent to client",
    SuggestionStatus.CLIENT_DECLINED: "Client declined proposed date",
    SuggestionStatus.DISMISSED: "Scheduling suggestion dismissed",
    SuggestionStatus.REJECTED: "Scheduling suggestion rejected",
}


@dataclass(slots=True)
class CreateCalendarEvent:
    record: CalendarEventRecord


@dataclass(slots=True)
class ReserveSlot:
    slot_id: str
    expected_version: int


Effect = SendNotification | CreateCalendarEvent | ReserveSlot


@dataclass(slots=True)
class SuggestionTransition:
    suggestion_id: str
    from_status: SuggestionStatus
    to_status: SuggestionStatus
    stage_change: StageChange | None = None
    activity: ActivityEntry | None = None
    effects: list[Effect] = field(default_factory=list)

    @property
    def finalizes(self) -> bool:
        return self.to_status in FINALIZING


def allowed_transitions(current: SuggestionStatus) -> frozenset[SuggestionStatus]:
    return SUGGESTION_TRANSITIONS.get(current, frozenset())


def parse_session_time(value: str | None) -> time:
    """Parse "10:00 AM", "14:30" or "9 AM"; anything else starts at 10:00."""
    if not value:
        return DEFAULT_SESSION_START
    cleaned = value.strip().upper()
    for fmt in SESSION_TIME_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).time()
        except ValueError:
            continue
    return DEFAULT_SESSION_START


def plan_transition(
    suggestion: Suggestion,
    booking: Booking,
    target: str | SuggestionStatus,
    *,
    now: datetime,
    slot: AvailabilitySlot | None = None,
    city: CityConfig | None = None,
    link_builder: Callable[[str, str], str] | None = None,
    session_length_hours: int = 8,
    actor: str | None = None,
) -> SuggestionTransition:
    """
    Plan moving ``suggestion`` to ``target``.

    Args:
        suggestion: Suggestion as currently stored
        booking: The suggestion's booking
        target: Requested status
        now: Timestamp used for stage side-effect columns
        slot: Slot the suggestion points at (required when finalizing)
        city: City the suggestion points at (required when finalizing)
        link_builder: ``(action, suggestion_id) -> url`` for client links
        session_length_hours: Length of the calendar event written on finalize
        actor: Who triggered the move, recorded on the activity entry

    Raises:
        ValidationError: unknown status identifier
        ConflictError: move not allowed from the current status, or the
            booking is already scheduled
        NotFoundError: slot or city missing for a finalizing move
    """
    target_status = parse_state(SuggestionStatus, target)
    current = suggestion.status

    if target_status not in allowed_transitions(current):
        raise ConflictError(
            f"Suggestion is {current}; it cannot move to {target_status}",
            entity_id=suggestion.id,
            error_code="invalid_transition",
        )

    transition = SuggestionTransition(
        suggestion_id=suggestion.id,
        from_status=current,
        to_status=target_status,
    )

    if target_status in FINALIZING:
        _plan_finalize(
            transition, suggestion, booking, now, slot, city, session_length_hours, actor
        )
        return transition

    transition.activity = ActivityEntry(
        booking_id=booking.id,
        activity_type=ActivityType.FIELD_UPDATE,
        description=STATUS_DESCRIPTIONS[target_status],
        metadata={
            "field": "suggestion_status",
            "suggestion_id": suggestion.id,
            "old_value": str(current),
            "new_value": str(target_status),
        },
        created_by=actor,
    )

    if target_status == SuggestionStatus.SENT_TO_CLIENT:
        transition.effects.append(
            _schedule_proposal(suggestion, booking, city, link_builder)
        )

    return transition


def email_sent_activity(
    suggestion: Suggestion, booking: Booking, *, actor: str | None = None
) -> ActivityEntry:
    """Activity recorded once a schedule proposal email went out."""
    return ActivityEntry(
        booking_id=booking.id,
        activity_type=ActivityType.EMAIL_SENT,
        description=f"Schedule proposal emailed to {booking.email}",
        metadata={
            "suggestion_id": suggestion.id,
            "notification": str(NotificationKind.SCHEDULE_PROPOSAL),
            "suggested_date": suggestion.suggested_date.isoformat(),
        },
        created_by=actor,
    )


def _plan_finalize(
    transition: SuggestionTransition,
    suggestion: Suggestion,
    booking: Booking,
    now: datetime,
    slot: AvailabilitySlot | None,
    city: CityConfig | None,
    session_length_hours: int,
    actor: str | None,
) -> None:
    if booking.is_scheduled():
        raise ConflictError(
            f"Booking {booking.id} is already scheduled for {booking.scheduled_date}",
            entity_id=booking.id,
            error_code="already_scheduled",
        )
    if slot is None:
        raise NotFoundError(
            f"Slot {suggestion.slot_id} for suggestion {suggestion.id} not found",
            entity_id=suggestion.slot_id,
        )
    if city is None:
        raise NotFoundError(
            f"City {suggestion.suggested_city_id} for suggestion {suggestion.id} not found",
            entity_id=suggestion.suggested_city_id,
        )

    start_time = parse_session_time(suggestion.suggested_time)
    start = datetime.combine(suggestion.suggested_date, start_time)
    end = start + timedelta(hours=session_length_hours)

    transition.stage_change = plan_stage_change(
        booking,
        PipelineStage.SCHEDULED,
        now=now,
        extra_updates={
            "scheduled_date": suggestion.suggested_date,
            "scheduled_time": suggestion.suggested_time,
            "city_id": city.id,
            "status": "confirmed",
        },
        description=(
            f"Scheduled for {city.city_name} on {_format_date(suggestion.suggested_date)}"
        ),
        metadata={
            "suggestion_id": suggestion.id,
            "suggestion_status": str(transition.to_status),
            "confidence_score": suggestion.confidence_score,
        },
        actor=actor,
    )

    transition.effects.append(ReserveSlot(slot_id=slot.id, expected_version=slot.version))
    transition.effects.append(
        CreateCalendarEvent(
            record=CalendarEventRecord(
                booking_id=booking.id,
                city_id=city.id,
                title=f"Tattoo Session - {booking.name}",
                start_time=start,
                end_time=end,
                ai_suggested=True,
                ai_confidence=suggestion.confidence_score,
                extended_properties={
                    "suggestion_id": suggestion.id,
                    "slot_id": slot.id,
                    "reasoning": suggestion.reasoning,
                },
            )
        )
    )


def _schedule_proposal(
    suggestion: Suggestion,
    booking: Booking,
    city: CityConfig | None,
    link_builder: Callable[[str, str], str] | None,
) -> SendNotification:
    payload: dict[str, Any] = {
        "booking_id": booking.id,
        "client_name": booking.name,
        "suggestion_id": suggestion.id,
        "suggested_date": suggestion.suggested_date.isoformat(),
        "suggested_time": suggestion.suggested_time,
        "city": city.city_name if city else None,
        "reasoning": suggestion.reasoning,
    }
    if link_builder is not None:
        payload["confirm_url"] = link_builder(CONFIRM_ACTION, suggestion.id)
        payload["decline_url"] = link_builder(DECLINE_ACTION, suggestion.id)

    return SendNotification(
        kind=NotificationKind.SCHEDULE_PROPOSAL,
        recipient=booking.email,
        payload=payload,
    )


def _format_date(value: date) -> str:
    return f"{value:%b} {value.day}, {value.year}"
