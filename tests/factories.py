"""Builders for engine-level tests that never touch the database."""
from __future__ import annotations

import datetime as dt

from line_planner.scheduling.calendar import WorkingCalendar
from line_planner.scheduling.models import (
    Holiday,
    Order,
    OrderStatus,
    PlanningMethod,
    ProductionLine,
    RampUpPlan,
)
from line_planner.scheduling.snapshot import AllocationSnapshot

# 2025-06-02 is a Monday
MON = dt.date(2025, 6, 2)
TUE = MON + dt.timedelta(days=1)
WED = MON + dt.timedelta(days=2)
THU = MON + dt.timedelta(days=3)
FRI = MON + dt.timedelta(days=4)
SAT = MON + dt.timedelta(days=5)
NEXT_MON = MON + dt.timedelta(days=7)


def d(month: int, day: int) -> dt.date:
    return dt.date(2025, month, day)


def line(line_id: str = "L1", capacity: int = 100, operators: int | None = None, active: bool = True) -> ProductionLine:
    return ProductionLine(id=line_id, name=f"Line {line_id}", daily_capacity=capacity, operator_count=operators, active=active)


def order(order_id: str, qty: int, **kw) -> Order:
    kw.setdefault("po_number", f"PO-{order_id}")
    return Order(id=order_id, order_quantity=qty, **kw)


def scheduled(order_id: str, plan: dict[dt.date, int], line_id: str = "L1", qty: int | None = None, **kw) -> Order:
    kw.setdefault("po_number", f"PO-{order_id}")
    kw.setdefault("planning_method", PlanningMethod.FLAT)
    return Order(
        id=order_id,
        order_quantity=qty if qty is not None else sum(plan.values()),
        status=OrderStatus.SCHEDULED,
        assigned_line_id=line_id,
        plan_start_date=min(plan),
        plan_end_date=max(plan),
        daily_production=dict(plan),
        **kw,
    )


def ramp_plan(plan_id: str = "R1") -> RampUpPlan:
    return RampUpPlan(id=plan_id, name="standard", steps=((1, 50.0), (2, 70.0)), final_efficiency=90.0)


def snapshot(lines=None, orders=(), holidays=(), plans=(), revisions=None) -> AllocationSnapshot:
    lines = list(lines) if lines is not None else [line()]
    return AllocationSnapshot(
        lines=lines,
        orders=orders,
        calendar=WorkingCalendar(holidays),
        ramp_up_plans=plans,
        line_revisions=revisions if revisions is not None else {l.id: 0 for l in lines},
    )


def global_holiday(day: dt.date, name: str = "holiday") -> Holiday:
    return Holiday(day=day, name=name)
