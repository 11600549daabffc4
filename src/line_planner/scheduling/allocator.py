# src/line_planner/scheduling/allocator.py
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import replace

from .calendar import PLANNING_HORIZON_DAYS
from .capacity import CapacityContext, effective_capacity
from .errors import InvalidIntent, NoAvailableCapacity, PlanningHorizonExceeded
from .models import Allocation, PlanningMethod, ProductionLine
from .snapshot import AllocationSnapshot

logger = logging.getLogger("line_planner.allocator")


def allocate(
    snapshot: AllocationSnapshot,
    quantity: int,
    start_date: dt.date,
    line: ProductionLine,
    method: PlanningMethod,
    context: CapacityContext,
    first_day_cap: int | None = None,
    *,
    accept_partial: bool = False,
) -> Allocation:
    """Fill working days forward from ``start_date`` until ``quantity`` is placed.

    The first working day is additionally capped by ``first_day_cap`` when
    given (leftover capacity behind another order on that exact day).
    Allocation stops once the cursor is more than ``PLANNING_HORIZON_DAYS``
    past ``start_date``; then nothing placed -> ``NoAvailableCapacity``,
    something placed -> ``PlanningHorizonExceeded`` unless ``accept_partial``.
    """
    if quantity <= 0:
        raise InvalidIntent(f"order {context.order.id!r}: quantity to allocate must be positive")

    remaining = int(quantity)
    cursor = start_date
    plan: dict[dt.date, int] = {}
    first_working_day = True
    while remaining > 0:
        if (cursor - start_date).days > PLANNING_HORIZON_DAYS:
            break
        if not snapshot.is_working_day(line.id, cursor):
            cursor += dt.timedelta(days=1)
            continue
        ctx = replace(context, working_day_number=len(plan) + 1)
        day_cap = effective_capacity(snapshot, line, cursor, method, ctx)
        if first_working_day:
            first_working_day = False
            if first_day_cap is not None:
                day_cap = min(day_cap, max(0, int(first_day_cap)))
        planned = min(remaining, day_cap)
        if planned > 0:
            plan[cursor] = planned
            remaining -= planned
        cursor += dt.timedelta(days=1)

    allocation = Allocation(requested=int(quantity), start_date=start_date, daily_plan=plan)
    if remaining > 0:
        if not plan:
            raise NoAvailableCapacity(context.order.id, line.id, start_date)
        logger.info(
            "order %s: horizon reached on line %s with %s of %s units placed",
            context.order.id, line.id, allocation.planned, quantity,
        )
        if not accept_partial:
            raise PlanningHorizonExceeded(context.order.id, line.id, allocation)
    return allocation
