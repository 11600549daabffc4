# src/line_planner/scheduling/models.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping

from .errors import InvalidIntent


class PlanningMethod(str, Enum):
    FLAT = "capacity"
    RAMP_UP = "rampup"


class OrderStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"


class PlacementPolicy(str, Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class ProductionLine:
    id: str
    name: str
    daily_capacity: int
    operator_count: int | None = None
    active: bool = True


@dataclass(frozen=True)
class Holiday:
    day: dt.date
    name: str = ""
    is_global: bool = True
    line_ids: frozenset[str] = frozenset()
    is_recurring: bool = False

    def applies_to(self, line_id: str | None) -> bool:
        if self.is_global:
            return True
        return line_id is not None and line_id in self.line_ids


@dataclass(frozen=True)
class RampUpPlan:
    id: str
    name: str
    steps: tuple[tuple[int, float], ...] = ()
    final_efficiency: float = 100.0

    def efficiency_for(self, working_day: int) -> float:
        for day_number, efficiency in self.steps:
            if day_number == working_day:
                return float(efficiency)
        return float(self.final_efficiency)


@dataclass(frozen=True)
class Order:
    id: str
    po_number: str
    order_quantity: int
    style_id: str = ""
    smv: float = 0.0
    mo_count: int | None = None
    cut_quantity: int | None = None
    issue_quantity: int | None = None
    status: OrderStatus = OrderStatus.PENDING
    assigned_line_id: str | None = None
    plan_start_date: dt.date | None = None
    plan_end_date: dt.date | None = None
    daily_production: Mapping[dt.date, int] = field(default_factory=dict)
    planning_method: PlanningMethod | None = None
    ramp_up_plan_id: str | None = None
    # row version read from persistence; 0 for orders not stored yet
    version: int = 0

    @property
    def is_scheduled(self) -> bool:
        return self.status == OrderStatus.SCHEDULED

    @property
    def planned_quantity(self) -> int:
        return sum(self.daily_production.values())

    def overlaps(self, start: dt.date, end: dt.date) -> bool:
        if not self.is_scheduled or self.plan_start_date is None or self.plan_end_date is None:
            return False
        return start <= self.plan_end_date and end >= self.plan_start_date

    def validate(self) -> None:
        """Check the closed shape: schedule fields present iff scheduled."""
        if self.order_quantity <= 0:
            raise InvalidIntent(f"order {self.id!r}: order_quantity must be positive")
        if self.status == OrderStatus.PENDING:
            if (
                self.assigned_line_id is not None
                or self.plan_start_date is not None
                or self.plan_end_date is not None
                or self.daily_production
            ):
                raise InvalidIntent(f"order {self.id!r}: pending order carries schedule fields")
            return
        if self.assigned_line_id is None or self.plan_start_date is None or self.plan_end_date is None:
            raise InvalidIntent(f"order {self.id!r}: scheduled order without line or dates")
        if self.plan_start_date > self.plan_end_date:
            raise InvalidIntent(f"order {self.id!r}: plan starts after it ends")
        if not self.daily_production:
            raise InvalidIntent(f"order {self.id!r}: scheduled order without daily production")
        if self.planned_quantity > self.order_quantity:
            raise InvalidIntent(
                f"order {self.id!r}: planned {self.planned_quantity} exceeds quantity {self.order_quantity}"
            )
        for day, qty in self.daily_production.items():
            if qty <= 0:
                raise InvalidIntent(f"order {self.id!r}: non-positive quantity on {day.isoformat()}")
            if not (self.plan_start_date <= day <= self.plan_end_date):
                raise InvalidIntent(f"order {self.id!r}: {day.isoformat()} lies outside the plan range")

    def as_pending(self) -> "Order":
        return replace(
            self,
            status=OrderStatus.PENDING,
            assigned_line_id=None,
            plan_start_date=None,
            plan_end_date=None,
            daily_production={},
            planning_method=None,
            ramp_up_plan_id=None,
        )

    def scheduled_as(
        self,
        line_id: str,
        allocation: "Allocation",
        method: PlanningMethod,
        ramp_up_plan_id: str | None = None,
    ) -> "Order":
        return replace(
            self,
            status=OrderStatus.SCHEDULED,
            assigned_line_id=line_id,
            plan_start_date=allocation.first_date,
            plan_end_date=allocation.end_date,
            daily_production=dict(allocation.daily_plan),
            planning_method=method,
            ramp_up_plan_id=ramp_up_plan_id if method == PlanningMethod.RAMP_UP else None,
        )


@dataclass(frozen=True)
class Allocation:
    """Result of one contiguous fill: date -> quantity, in date order."""

    requested: int
    start_date: dt.date
    daily_plan: Mapping[dt.date, int] = field(default_factory=dict)

    @property
    def planned(self) -> int:
        return sum(self.daily_plan.values())

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.planned)

    @property
    def complete(self) -> bool:
        return self.shortfall == 0

    @property
    def first_date(self) -> dt.date | None:
        return min(self.daily_plan) if self.daily_plan else None

    @property
    def end_date(self) -> dt.date | None:
        return max(self.daily_plan) if self.daily_plan else None


@dataclass(frozen=True)
class ScheduleIntent:
    order_id: str
    line_id: str
    target_date: dt.date
    planning_method: PlanningMethod = PlanningMethod.FLAT
    ramp_up_plan_id: str | None = None
    placement_policy: PlacementPolicy | None = None
    roll_forward: bool = False
    accept_partial: bool = False


@dataclass(frozen=True)
class BatchIntent:
    order_ids: tuple[str, ...]
    line_id: str
    target_date: dt.date
    planning_method: PlanningMethod = PlanningMethod.FLAT
    ramp_up_plan_id: str | None = None
    policies: Mapping[str, PlacementPolicy] = field(default_factory=dict)
    roll_forward: bool = False
    accept_partial: bool = False


@dataclass
class ChangeSet:
    """Proposed final state of every order touched by one logical operation.

    ``line_revisions`` holds the ``schedule_revision`` each touched line had
    in the snapshot the proposal was computed from.
    """

    orders: dict[str, Order] = field(default_factory=dict)
    displaced_order_ids: list[str] = field(default_factory=list)
    line_revisions: dict[str, int] = field(default_factory=dict)

    def put(self, order: Order) -> None:
        self.orders.pop(order.id, None)
        self.orders[order.id] = order

    def merge(self, other: "ChangeSet") -> "ChangeSet":
        for order in other.orders.values():
            self.put(order)
        for oid in other.displaced_order_ids:
            if oid not in self.displaced_order_ids:
                self.displaced_order_ids.append(oid)
        for line_id, rev in other.line_revisions.items():
            self.line_revisions.setdefault(line_id, rev)
        return self

    @property
    def touched_line_ids(self) -> set[str]:
        return {o.assigned_line_id for o in self.orders.values() if o.assigned_line_id}

    def scheduled(self) -> list[Order]:
        return [o for o in self.orders.values() if o.is_scheduled]

