# src/line_planner/scheduling/conflicts.py
from __future__ import annotations

import datetime as dt

from .allocator import allocate
from .calendar import PLANNING_HORIZON_DAYS
from .capacity import CapacityContext
from .errors import NoAvailableCapacity
from .models import Order, PlanningMethod, RampUpPlan
from .snapshot import AllocationSnapshot


def estimate_end(
    snapshot: AllocationSnapshot,
    order: Order,
    line_id: str,
    start_date: dt.date,
    method: PlanningMethod = PlanningMethod.FLAT,
    ramp_up_plan: RampUpPlan | None = None,
    first_day_cap: int | None = None,
) -> dt.date:
    """Dry-run the allocator with ``order`` lifted off the snapshot."""
    staged = snapshot.with_orders(order.as_pending())
    try:
        allocation = allocate(
            staged,
            order.order_quantity,
            start_date,
            staged.line(line_id),
            method,
            CapacityContext(order=order, ramp_up_plan=ramp_up_plan),
            first_day_cap,
            accept_partial=True,
        )
    except NoAvailableCapacity:
        return start_date + dt.timedelta(days=PLANNING_HORIZON_DAYS)
    return allocation.end_date or start_date


def find_overlaps(
    snapshot: AllocationSnapshot,
    order: Order,
    line_id: str,
    start_date: dt.date,
    estimated_end: dt.date | None = None,
    *,
    method: PlanningMethod = PlanningMethod.FLAT,
    ramp_up_plan: RampUpPlan | None = None,
) -> list[Order]:
    """Scheduled orders on ``line_id`` intersecting the candidate's span, by start date."""
    if estimated_end is None:
        estimated_end = estimate_end(snapshot, order, line_id, start_date, method, ramp_up_plan)
    return [
        other
        for other in snapshot.scheduled_on(line_id)
        if other.id != order.id and other.overlaps(start_date, estimated_end)
    ]
