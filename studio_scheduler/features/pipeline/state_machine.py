"""
Booking pipeline state machine.

Planning is pure: ``plan_stage_change`` and ``plan_field_update`` return
the column updates plus the activity entry to write, and the service
persists both in one transaction.

By default any known stage can be entered from any stage, backwards and
skipping included. Strict mode only allows the next stage in order, or
``cancelled`` from a non-terminal stage.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from studio_scheduler.domain import (
    ActivityEntry,
    ActivityType,
    Booking,
    PipelineStage,
    Priority,
    ValidationError,
    parse_state,
)

PIPELINE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.NEW_INQUIRY,
    PipelineStage.REFERENCES_REQUESTED,
    PipelineStage.REFERENCES_RECEIVED,
    PipelineStage.DEPOSIT_REQUESTED,
    PipelineStage.DEPOSIT_PAID,
    PipelineStage.SCHEDULED,
    PipelineStage.COMPLETED,
)

TERMINAL_STAGES = frozenset({PipelineStage.COMPLETED, PipelineStage.CANCELLED})

# Timestamp column stamped on entering a stage
STAGE_TIMESTAMPS: dict[PipelineStage, str] = {
    PipelineStage.REFERENCES_REQUESTED: "references_requested_at",
    PipelineStage.REFERENCES_RECEIVED: "references_received_at",
    PipelineStage.DEPOSIT_REQUESTED: "deposit_requested_at",
    PipelineStage.DEPOSIT_PAID: "deposit_paid_at",
}

# Coarse booking status mirrored from terminal stages
STAGE_STATUS: dict[PipelineStage, str] = {
    PipelineStage.COMPLETED: "completed",
    PipelineStage.CANCELLED: "cancelled",
}

STAGE_LABELS: dict[PipelineStage, str] = {
    PipelineStage.NEW_INQUIRY: "New Inquiry",
    PipelineStage.REFERENCES_REQUESTED: "References Requested",
    PipelineStage.REFERENCES_RECEIVED: "References Received",
    PipelineStage.DEPOSIT_REQUESTED: "Deposit Requested",
    PipelineStage.DEPOSIT_PAID: "Deposit Paid",
    PipelineStage.SCHEDULED: "Scheduled",
    PipelineStage.COMPLETED: "Completed",
    PipelineStage.CANCELLED: "Cancelled",
}

TEXT_FIELDS = {"admin_notes", "tattoo_description", "placement", "size", "requested_city"}
MONEY_FIELDS = {"deposit_amount", "session_rate", "total_paid"}
EDITABLE_FIELDS = TEXT_FIELDS | MONEY_FIELDS | {"priority", "follow_up_date"}


@dataclass(slots=True)
class StageChange:
    booking_id: str
    from_stage: PipelineStage
    to_stage: PipelineStage
    updates: dict[str, Any]
    activity: ActivityEntry

    @property
    def releases_slot(self) -> bool:
        """Cancelling a scheduled booking hands its slot back to inventory."""
        return (
            self.from_stage == PipelineStage.SCHEDULED
            and self.to_stage == PipelineStage.CANCELLED
        )


@dataclass(slots=True)
class FieldChange:
    booking_id: str
    field: str
    old_value: Any
    new_value: Any
    updates: dict[str, Any] = field(default_factory=dict)
    activity: ActivityEntry | None = None


def allowed_targets(current: PipelineStage, *, strict: bool = False) -> frozenset[PipelineStage]:
    """Stages reachable from ``current``."""
    if not strict:
        return frozenset(PipelineStage)
    if current in TERMINAL_STAGES:
        return frozenset()

    index = PIPELINE_ORDER.index(current)
    targets = {PipelineStage.CANCELLED}
    if index + 1 < len(PIPELINE_ORDER):
        targets.add(PIPELINE_ORDER[index + 1])
    return frozenset(targets)


def plan_stage_change(
    booking: Booking,
    target_stage: str | PipelineStage,
    *,
    now: datetime,
    strict: bool = False,
    extra_updates: dict[str, Any] | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    actor: str | None = None,
) -> StageChange:
    """
    Plan moving ``booking`` to ``target_stage``.

    Raises:
        ValidationError: unknown stage, or a move strict mode forbids
    """
    target = parse_state(PipelineStage, target_stage)
    current = booking.pipeline_stage or PipelineStage.NEW_INQUIRY

    if target not in allowed_targets(current, strict=strict):
        raise ValidationError(
            f"Cannot move booking from {current} to {target} with strict ordering enabled",
            entity_id=booking.id,
            error_code="stage_order",
        )

    updates: dict[str, Any] = {"pipeline_stage": target}
    if target in STAGE_TIMESTAMPS:
        updates[STAGE_TIMESTAMPS[target]] = now
    if target == PipelineStage.DEPOSIT_PAID:
        updates["deposit_paid"] = True
    if target in STAGE_STATUS:
        updates["status"] = STAGE_STATUS[target]
    if extra_updates:
        updates.update(extra_updates)

    activity = ActivityEntry(
        booking_id=booking.id,
        activity_type=ActivityType.STAGE_CHANGE,
        description=description or f"Stage changed to {STAGE_LABELS[target]}",
        metadata={"from_stage": str(current), "to_stage": str(target), **(metadata or {})},
        created_by=actor,
    )
    return StageChange(
        booking_id=booking.id,
        from_stage=current,
        to_stage=target,
        updates=updates,
        activity=activity,
    )


def plan_field_update(
    booking: Booking, field_name: str, value: Any, *, actor: str | None = None
) -> FieldChange:
    """
    Plan a non-stage edit (notes, priority, follow-up date, financials).

    Raises:
        ValidationError: field not editable or value of the wrong shape
    """
    if field_name not in EDITABLE_FIELDS:
        raise ValidationError(
            f"Field '{field_name}' cannot be edited here. "
            f"Editable fields: {', '.join(sorted(EDITABLE_FIELDS))}",
            entity_id=booking.id,
        )

    new_value = _coerce_field_value(field_name, value)
    old_value = getattr(booking, field_name)

    activity = ActivityEntry(
        booking_id=booking.id,
        activity_type=ActivityType.FIELD_UPDATE,
        description=f"Updated {field_name.replace('_', ' ')}",
        metadata={
            "field": field_name,
            "old_value": _jsonable(old_value),
            "new_value": _jsonable(new_value),
        },
        created_by=actor,
    )
    return FieldChange(
        booking_id=booking.id,
        field=field_name,
        old_value=old_value,
        new_value=new_value,
        updates={field_name: new_value},
        activity=activity,
    )


def _coerce_field_value(field_name: str, value: Any) -> Any:
    if value is None or value == "":
        if field_name == "priority":
            raise ValidationError("Priority cannot be empty")
        return None

    if field_name == "priority":
        return parse_state(Priority, value)

    if field_name == "follow_up_date":
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value))
        except ValueError as e:
            raise ValidationError(f"Invalid follow-up date '{value}', expected YYYY-MM-DD") from e

    if field_name in MONEY_FIELDS:
        try:
            amount = float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid amount for {field_name}: {value!r}") from e
        if amount < 0:
            raise ValidationError(f"{field_name} cannot be negative")
        return amount

    return str(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
