# src/line_planner/scheduling/capacity.py
from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass

from .errors import InvalidIntent
from .models import Order, PlanningMethod, ProductionLine, RampUpPlan
from .snapshot import AllocationSnapshot

STANDARD_MINUTES_PER_DAY = 540


@dataclass(frozen=True)
class CapacityContext:
    order: Order
    ramp_up_plan: RampUpPlan | None = None
    # 1-based count of working days this order has produced on the line
    working_day_number: int = 1


def base_daily_capacity(order: Order, line: ProductionLine) -> int:
    """Theoretical daily output: floor(540 * operators / smv)."""
    operators = order.mo_count if order.mo_count is not None else line.operator_count
    if not operators or operators <= 0:
        raise InvalidIntent(
            f"ramp-up planning of order {order.id!r} needs an operator count (order mo_count or line operator_count)"
        )
    if not order.smv or order.smv <= 0:
        raise InvalidIntent(f"ramp-up planning of order {order.id!r} needs a positive smv")
    return math.floor(STANDARD_MINUTES_PER_DAY * operators / order.smv)


def available_capacity(snapshot: AllocationSnapshot, line: ProductionLine, day: dt.date, order_id: str | None = None) -> int:
    exclude = (order_id,) if order_id else ()
    return max(0, line.daily_capacity - snapshot.used(line.id, day, exclude=exclude))


def effective_capacity(
    snapshot: AllocationSnapshot,
    line: ProductionLine,
    day: dt.date,
    method: PlanningMethod,
    context: CapacityContext,
) -> int:
    if not snapshot.is_working_day(line.id, day):
        return 0
    available = available_capacity(snapshot, line, day, context.order.id)
    if method == PlanningMethod.FLAT:
        return available
    if context.ramp_up_plan is None:
        raise InvalidIntent(f"ramp-up planning of order {context.order.id!r} needs a ramp-up plan")
    base = base_daily_capacity(context.order, line)
    efficiency = context.ramp_up_plan.efficiency_for(context.working_day_number)
    return max(0, min(available, math.floor(base * efficiency / 100)))
