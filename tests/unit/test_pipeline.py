"""
Tests for booking pipeline transitions and field edits.
"""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from conftest import (
    NOW,
    FakeActivityLog,
    FakeBookingRepository,
    make_booking,
    make_slot,
    make_suggestion,
)

from studio_scheduler.domain import (
    ActivityType,
    ConflictError,
    NotFoundError,
    PipelineStage,
    Priority,
    ValidationError,
)
from studio_scheduler.features.pipeline.service import PipelineService
from studio_scheduler.features.pipeline.state_machine import (
    allowed_targets,
    plan_field_update,
    plan_stage_change,
)


@pytest.mark.asyncio
async def test_deposit_paid_sets_flag_and_timestamp(store, pipeline):
    store.bookings["b1"] = make_booking("b1", pipeline_stage=PipelineStage.DEPOSIT_REQUESTED)

    outcome = await pipeline.transition("b1", "deposit_paid", actor="admin")

    booking = store.bookings["b1"]
    assert booking.pipeline_stage == PipelineStage.DEPOSIT_PAID
    assert booking.deposit_paid is True
    assert booking.deposit_paid_at == NOW
    assert outcome.message == "Booking moved to Deposit Paid"
    assert outcome.activity.activity_type == ActivityType.STAGE_CHANGE
    assert outcome.activity.metadata == {
        "from_stage": "deposit_requested",
        "to_stage": "deposit_paid",
    }


@pytest.mark.asyncio
async def test_permissive_mode_allows_jumps(store, pipeline):
    store.bookings["b1"] = make_booking("b1")

    await pipeline.transition("b1", "scheduled")

    assert store.bookings["b1"].pipeline_stage == PipelineStage.SCHEDULED


@pytest.mark.asyncio
async def test_strict_mode_rejects_skipping(store):
    store.bookings["b1"] = make_booking("b1")
    strict = PipelineService(
        bookings=FakeBookingRepository(store),
        activity_log=FakeActivityLog(store),
        transaction=store.transaction,
        strict_ordering=True,
        clock=lambda: NOW,
    )

    with pytest.raises(ValidationError) as exc_info:
        await strict.transition("b1", "scheduled")

    assert exc_info.value.error_code == "stage_order"
    assert store.bookings["b1"].version == 1

    await strict.transition("b1", "references_requested")
    assert store.bookings["b1"].references_requested_at == NOW


def test_strict_targets():
    assert allowed_targets(PipelineStage.DEPOSIT_PAID, strict=True) == {
        PipelineStage.SCHEDULED,
        PipelineStage.CANCELLED,
    }
    assert allowed_targets(PipelineStage.COMPLETED, strict=True) == frozenset()
    assert allowed_targets(PipelineStage.COMPLETED) == frozenset(PipelineStage)


def test_terminal_stages_mirror_status():
    booking = make_booking()

    change = plan_stage_change(booking, "cancelled", now=NOW)

    assert change.updates["status"] == "cancelled"


@pytest.mark.asyncio
async def test_unknown_stage_is_validation_error(store, pipeline):
    store.bookings["b1"] = make_booking("b1")

    with pytest.raises(ValidationError):
        await pipeline.transition("b1", "tattooed")

    assert store.activities == []


@pytest.mark.asyncio
async def test_missing_booking_is_not_found(pipeline):
    with pytest.raises(NotFoundError):
        await pipeline.transition("nope", "scheduled")


@pytest.mark.asyncio
async def test_stale_version_is_conflict(store, pipeline):
    store.bookings["b1"] = make_booking("b1")
    booking = make_booking("b1", version=7)
    change = plan_stage_change(booking, "deposit_paid", now=NOW)

    with pytest.raises(ConflictError):
        async with store.transaction() as conn:
            await pipeline.apply_stage_change(booking, change, connection=conn)

    assert store.bookings["b1"].pipeline_stage == PipelineStage.NEW_INQUIRY
    assert store.activities == []


@pytest.mark.asyncio
async def test_update_field_records_old_and_new(store, pipeline):
    store.bookings["b1"] = make_booking("b1", admin_notes="call back")

    outcome = await pipeline.update_field("b1", "admin_notes", "prefers mornings")

    assert store.bookings["b1"].admin_notes == "prefers mornings"
    assert store.bookings["b1"].pipeline_stage == PipelineStage.NEW_INQUIRY
    assert outcome.activity.activity_type == ActivityType.FIELD_UPDATE
    assert outcome.activity.metadata["old_value"] == "call back"
    assert outcome.activity.metadata["new_value"] == "prefers mornings"


def test_field_update_coerces_values():
    booking = make_booking()

    assert plan_field_update(booking, "priority", "high").new_value == Priority.HIGH
    assert plan_field_update(booking, "follow_up_date", "2026-04-01").new_value == date(2026, 4, 1)
    assert plan_field_update(booking, "deposit_amount", "150").new_value == 150.0
    assert plan_field_update(booking, "admin_notes", "").new_value is None


@pytest.mark.parametrize(
    "field_name,value",
    [
        ("priority", "urgent"),
        ("priority", None),
        ("pipeline_stage", "scheduled"),
        ("follow_up_date", "next week"),
        ("session_rate", -5),
    ],
)
def test_field_update_rejects_bad_input(field_name, value):
    with pytest.raises(ValidationError):
        plan_field_update(make_booking(), field_name, value)


@pytest.mark.asyncio
async def test_activity_timeline_newest_first(store, pipeline):
    store.bookings["b1"] = make_booking("b1")
    await pipeline.transition("b1", "references_requested")
    await pipeline.update_field("b1", "priority", "high")

    timeline = await pipeline.list_activity("b1")

    assert [entry.activity_type for entry in timeline] == [
        ActivityType.FIELD_UPDATE,
        ActivityType.STAGE_CHANGE,
    ]


@pytest.mark.asyncio
async def test_cancelling_scheduled_booking_reopens_its_slot(
    store, pipeline, suggestions, matching
):
    store.bookings["b1"] = make_booking("b1")
    store.slots["s1"] = make_slot("s1")
    store.suggestions["sug-a"] = make_suggestion("sug-a")
    await suggestions.accept("sug-a", actor="admin")
    assert store.slots["s1"].is_available is False

    outcome = await pipeline.transition("b1", "cancelled", actor="admin")

    assert outcome.freed_slot_id == "s1"
    assert store.slots["s1"].is_available is True
    assert store.slots["s1"].version == 3
    assert store.bookings["b1"].status == "cancelled"

    store.bookings["b2"] = make_booking("b2")
    result = await matching.run_analysis()

    assert [(s.booking_id, s.slot_id) for s in result.suggestions] == [("b2", "s1")]


@pytest.mark.asyncio
async def test_cancelling_unscheduled_booking_frees_nothing(store, pipeline):
    store.bookings["b1"] = make_booking("b1", pipeline_stage=PipelineStage.DEPOSIT_PAID)
    store.slots["s1"] = make_slot("s1", is_available=False)

    outcome = await pipeline.transition("b1", "cancelled")

    assert outcome.freed_slot_id is None
    assert store.slots["s1"].is_available is False


@pytest.mark.asyncio
async def test_cancelling_hand_scheduled_booking_frees_nothing(store, pipeline):
    store.bookings["b1"] = make_booking(
        "b1", pipeline_stage=PipelineStage.SCHEDULED, scheduled_date=date(2026, 3, 12)
    )

    outcome = await pipeline.transition("b1", "cancelled")

    assert outcome.freed_slot_id is None
    assert store.bookings["b1"].pipeline_stage == PipelineStage.CANCELLED


@pytest.mark.asyncio
async def test_lost_slot_release_rolls_back_cancellation(store, pipeline, suggestions):
    store.bookings["b1"] = make_booking("b1")
    store.slots["s1"] = make_slot("s1")
    store.suggestions["sug-a"] = make_suggestion("sug-a")
    await suggestions.accept("sug-a")
    activities_before = len(store.activities)

    with patch.object(pipeline._inventory, "release_slot", AsyncMock(return_value=None)):
        with pytest.raises(ConflictError):
            await pipeline.transition("b1", "cancelled")

    assert store.bookings["b1"].pipeline_stage == PipelineStage.SCHEDULED
    assert store.slots["s1"].is_available is False
    assert len(store.activities) == activities_before
