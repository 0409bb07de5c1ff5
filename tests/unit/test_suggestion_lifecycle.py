"""
Tests for suggestion transition planning (no I/O).
"""

from datetime import date, time

import pytest
from conftest import NOW, make_booking, make_slot, make_suggestion, status_link

from studio_scheduler.domain import (
    ActivityType,
    CityConfig,
    ConflictError,
    NotFoundError,
    PipelineStage,
    SuggestionStatus,
    ValidationError,
)
from studio_scheduler.features.suggestions.lifecycle import (
    SUGGESTION_TRANSITIONS,
    CreateCalendarEvent,
    ReserveSlot,
    parse_session_time,
    plan_transition,
)
from studio_scheduler.integrations.notifications import NotificationKind, SendNotification

AUSTIN = CityConfig(id="city-austin", city_name="Austin")


def test_terminal_statuses_have_no_exits():
    for terminal in (
        SuggestionStatus.CLIENT_CONFIRMED,
        SuggestionStatus.CLIENT_DECLINED,
        SuggestionStatus.ACCEPTED,
        SuggestionStatus.DISMISSED,
        SuggestionStatus.REJECTED,
    ):
        assert SUGGESTION_TRANSITIONS[terminal] == frozenset()


def test_send_plans_proposal_with_scoped_links():
    suggestion = make_suggestion()

    plan = plan_transition(
        suggestion,
        make_booking(),
        "sent_to_client",
        now=NOW,
        city=AUSTIN,
        link_builder=status_link,
    )

    assert plan.stage_change is None
    assert plan.activity.activity_type == ActivityType.FIELD_UPDATE
    [notification] = plan.effects
    assert isinstance(notification, SendNotification)
    assert notification.kind == NotificationKind.SCHEDULE_PROPOSAL
    assert notification.recipient == "b1@example.com"
    assert notification.payload["city"] == "Austin"
    assert notification.payload["confirm_url"].endswith(
        "action=confirm_schedule&suggestion=sug-a"
    )
    assert notification.payload["decline_url"].endswith(
        "action=decline_schedule&suggestion=sug-a"
    )


def test_accept_plans_stage_change_reservation_and_event():
    slot = make_slot(version=3)

    plan = plan_transition(
        make_suggestion(), make_booking(), "accepted", now=NOW, slot=slot, city=AUSTIN
    )

    assert plan.finalizes is True
    assert plan.activity is None
    change = plan.stage_change
    assert change.to_stage == PipelineStage.SCHEDULED
    assert change.updates["scheduled_date"] == date(2026, 3, 12)
    assert change.updates["city_id"] == "city-austin"
    assert change.activity.metadata["to_stage"] == "scheduled"

    reserve, event = plan.effects
    assert reserve == ReserveSlot(slot_id="s1", expected_version=3)
    assert isinstance(event, CreateCalendarEvent)
    assert event.record.ai_confidence == 0.99
    assert event.record.start_time.time() == time(10, 0)
    assert (event.record.end_time - event.record.start_time).total_seconds() == 8 * 3600


def test_finalize_is_permissive_about_pipeline_order():
    booking = make_booking(pipeline_stage=PipelineStage.NEW_INQUIRY)

    plan = plan_transition(
        make_suggestion(), booking, "accepted", now=NOW, slot=make_slot(), city=AUSTIN
    )

    assert plan.stage_change.from_stage == PipelineStage.NEW_INQUIRY


def test_confirm_requires_sent_status():
    with pytest.raises(ConflictError):
        plan_transition(
            make_suggestion(),
            make_booking(),
            "client_confirmed",
            now=NOW,
            slot=make_slot(),
            city=AUSTIN,
        )


def test_already_scheduled_booking_is_a_conflict():
    booking = make_booking(scheduled_date=date(2026, 4, 1))

    with pytest.raises(ConflictError) as exc_info:
        plan_transition(
            make_suggestion(), booking, "accepted", now=NOW, slot=make_slot(), city=AUSTIN
        )

    assert exc_info.value.error_code == "already_scheduled"


def test_missing_slot_or_city_is_not_found():
    with pytest.raises(NotFoundError):
        plan_transition(make_suggestion(), make_booking(), "accepted", now=NOW, city=AUSTIN)
    with pytest.raises(NotFoundError):
        plan_transition(make_suggestion(), make_booking(), "accepted", now=NOW, slot=make_slot())


def test_unknown_status_is_validation_error():
    with pytest.raises(ValidationError):
        plan_transition(make_suggestion(), make_booking(), "maybe", now=NOW)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("10:00 AM", time(10, 0)),
        ("2:30 pm", time(14, 30)),
        ("14:30", time(14, 30)),
        ("9 AM", time(9, 0)),
        ("whenever", time(10, 0)),
        (None, time(10, 0)),
    ],
)
def test_parse_session_time(raw, expected):
    assert parse_session_time(raw) == expected
