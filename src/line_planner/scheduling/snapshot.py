# src/line_planner/scheduling/snapshot.py
"""Explicit allocation state handed to every capacity / allocation call.

A snapshot is never mutated; ``with_orders`` returns a new one so a cascade
can stage intermediate placements without touching the committed view.
"""
from __future__ import annotations

import datetime as dt
from collections import defaultdict
from typing import Iterable, Mapping

from .calendar import WorkingCalendar
from .errors import InvalidIntent
from .models import Order, ProductionLine, RampUpPlan


class AllocationSnapshot:
    def __init__(
        self,
        lines: Iterable[ProductionLine],
        orders: Iterable[Order] = (),
        calendar: WorkingCalendar | None = None,
        ramp_up_plans: Iterable[RampUpPlan] = (),
        line_revisions: Mapping[str, int] | None = None,
    ):
        self.lines: dict[str, ProductionLine] = {l.id: l for l in lines}
        self.orders: dict[str, Order] = {o.id: o for o in orders}
        self.calendar = calendar or WorkingCalendar()
        self.ramp_up_plans: dict[str, RampUpPlan] = {p.id: p for p in ramp_up_plans}
        self.line_revisions: dict[str, int] = dict(line_revisions or {})
        # line_id -> date -> qty, over scheduled orders only
        self._used: dict[str, dict[dt.date, int]] = defaultdict(lambda: defaultdict(int))
        for o in self.orders.values():
            if o.is_scheduled and o.assigned_line_id:
                per_day = self._used[o.assigned_line_id]
                for day, qty in o.daily_production.items():
                    per_day[day] += qty

    # ---- lookups ----------------------------------------------------------
    def line(self, line_id: str) -> ProductionLine:
        try:
            return self.lines[line_id]
        except KeyError:
            raise InvalidIntent(f"unknown production line {line_id!r}") from None

    def order(self, order_id: str) -> Order:
        try:
            return self.orders[order_id]
        except KeyError:
            raise InvalidIntent(f"unknown order {order_id!r}") from None

    def ramp_up_plan(self, plan_id: str | None) -> RampUpPlan:
        if plan_id is None:
            raise InvalidIntent("ramp-up planning requires a ramp-up plan")
        try:
            return self.ramp_up_plans[plan_id]
        except KeyError:
            raise InvalidIntent(f"unknown ramp-up plan {plan_id!r}") from None

    def is_working_day(self, line_id: str, day: dt.date) -> bool:
        return self.calendar.is_working_day(day, line_id)

    # ---- allocation view --------------------------------------------------
    def used(self, line_id: str, day: dt.date, exclude: Iterable[str] = ()) -> int:
        total = self._used.get(line_id, {}).get(day, 0)
        for oid in exclude:
            o = self.orders.get(oid)
            if o is not None and o.is_scheduled and o.assigned_line_id == line_id:
                total -= o.daily_production.get(day, 0)
        return max(0, total)

    def scheduled_on(self, line_id: str) -> list[Order]:
        out = [o for o in self.orders.values() if o.is_scheduled and o.assigned_line_id == line_id]
        out.sort(key=lambda o: (o.plan_start_date, o.id))
        return out

    def used_by_day(self, line_id: str) -> dict[dt.date, int]:
        return dict(sorted(self._used.get(line_id, {}).items()))

    def with_orders(self, *orders: Order) -> "AllocationSnapshot":
        merged = dict(self.orders)
        for o in orders:
            merged[o.id] = o
        return AllocationSnapshot(
            self.lines.values(),
            merged.values(),
            self.calendar,
            self.ramp_up_plans.values(),
            self.line_revisions,
        )
