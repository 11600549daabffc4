# src/line_planner/scheduling/errors.py
"""Typed failures raised by the scheduling engine.

Every failure the engine can produce is one of these; the HTTP layer maps
``kind`` to a status code and ``to_payload()`` to the response body.
"""
from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .models import Allocation, Order


class SchedulingError(Exception):
    kind = "scheduling_error"

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.kind, "msg": str(self)}


class InvalidIntent(SchedulingError):
    """Unknown/retired records, inactive line, missing ramp-up inputs, bad split."""

    kind = "invalid_intent"


class InvalidDate(SchedulingError):
    kind = "invalid_date"

    def __init__(self, day: dt.date, line_id: str | None = None, msg: str | None = None):
        self.day = day
        self.line_id = line_id
        super().__init__(msg or f"{day.isoformat()} is not a working day for line {line_id!r}")

    def to_payload(self) -> dict[str, Any]:
        out = super().to_payload()
        out.update(date=self.day.isoformat(), line_id=self.line_id)
        return out


class NoAvailableCapacity(SchedulingError):
    kind = "no_available_capacity"

    def __init__(self, order_id: str, line_id: str, start_date: dt.date):
        self.order_id = order_id
        self.line_id = line_id
        self.start_date = start_date
        super().__init__(
            f"order {order_id!r}: no free capacity on line {line_id!r} "
            f"within the planning horizon from {start_date.isoformat()}"
        )

    def to_payload(self) -> dict[str, Any]:
        out = super().to_payload()
        out.update(order_id=self.order_id, line_id=self.line_id, start_date=self.start_date.isoformat())
        return out


class PlanningHorizonExceeded(SchedulingError):
    """Quantity not exhausted within the horizon; ``partial`` holds what fit."""

    kind = "planning_horizon_exceeded"

    def __init__(self, order_id: str, line_id: str, partial: "Allocation"):
        self.order_id = order_id
        self.line_id = line_id
        self.partial = partial
        super().__init__(
            f"order {order_id!r}: {partial.shortfall} of {partial.requested} units "
            f"do not fit on line {line_id!r} within the planning horizon"
        )

    def to_payload(self) -> dict[str, Any]:
        out = super().to_payload()
        out.update(
            order_id=self.order_id,
            line_id=self.line_id,
            planned=self.partial.planned,
            shortfall=self.partial.shortfall,
            daily_plan={d.isoformat(): q for d, q in self.partial.daily_plan.items()},
        )
        return out


class AllocationConflict(SchedulingError):
    """Optimistic concurrency check failed at commit time."""

    kind = "allocation_conflict"

    def __init__(
        self,
        msg: str,
        *,
        line_id: str | None = None,
        work_date: dt.date | None = None,
        order_id: str | None = None,
    ):
        self.line_id = line_id
        self.work_date = work_date
        self.order_id = order_id
        super().__init__(msg)

    def to_payload(self) -> dict[str, Any]:
        out = super().to_payload()
        out.update(
            line_id=self.line_id,
            work_date=self.work_date.isoformat() if self.work_date else None,
            order_id=self.order_id,
        )
        return out


class CascadeAborted(SchedulingError):
    kind = "cascade_aborted"

    def __init__(self, order_id: str, reason: SchedulingError):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"cascade aborted while re-placing order {order_id!r}: {reason}")

    def to_payload(self) -> dict[str, Any]:
        out = super().to_payload()
        out.update(order_id=self.order_id, reason=self.reason.to_payload())
        return out


class PlacementChoiceRequired(SchedulingError):
    """The drop overlaps scheduled work and the caller supplied no policy."""

    kind = "placement_choice_required"

    def __init__(
        self,
        order_id: str,
        line_id: str,
        target_date: dt.date,
        conflicts: Sequence["Order"],
        position: int | None = None,
    ):
        self.order_id = order_id
        self.line_id = line_id
        self.target_date = target_date
        self.conflicts = list(conflicts)
        self.position = position
        super().__init__(
            f"order {order_id!r} overlaps {len(self.conflicts)} scheduled order(s) "
            f"on line {line_id!r}; choose 'before' or 'after'"
        )

    def to_payload(self) -> dict[str, Any]:
        out = super().to_payload()
        out.update(
            order_id=self.order_id,
            line_id=self.line_id,
            target_date=self.target_date.isoformat(),
            position=self.position,
            conflicts=[
                {
                    "order_id": o.id,
                    "po_number": o.po_number,
                    "plan_start_date": o.plan_start_date.isoformat() if o.plan_start_date else None,
                    "plan_end_date": o.plan_end_date.isoformat() if o.plan_end_date else None,
                }
                for o in self.conflicts
            ],
        )
        return out


__all__ = [
    "SchedulingError",
    "InvalidIntent",
    "InvalidDate",
    "NoAvailableCapacity",
    "PlanningHorizonExceeded",
    "AllocationConflict",
    "CascadeAborted",
    "PlacementChoiceRequired",
]
