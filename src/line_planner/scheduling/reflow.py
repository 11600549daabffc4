# src/line_planner/scheduling/reflow.py
"""Placement of one order onto a line, resolving overlaps with scheduled work.

State of a single decision::

    IDLE -> CONFLICT_FOUND -> AWAITING_PLACEMENT_CHOICE -> RESOLVING -> COMMITTED | ABORTED

insert-before ("magnetic"): the incoming order takes the requested start,
every overlapping order goes back to pending and is re-placed behind it,
back-to-back, in its original sequence.
insert-after: the incoming order starts on the last overlapping end date
(using whatever capacity is left there) or the day after; nobody moves.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .allocator import allocate
from .capacity import CapacityContext, effective_capacity
from .conflicts import find_overlaps
from .errors import CascadeAborted, PlacementChoiceRequired, SchedulingError
from .models import ChangeSet, Order, PlacementPolicy, PlanningMethod, RampUpPlan
from .snapshot import AllocationSnapshot

if TYPE_CHECKING:  # pragma: no cover
    from .lifecycle import OrderLifecycle

logger = logging.getLogger("line_planner.reflow")


class ReflowState(str, Enum):
    IDLE = "idle"
    CONFLICT_FOUND = "conflict_found"
    AWAITING_PLACEMENT_CHOICE = "awaiting_placement_choice"
    RESOLVING = "resolving"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Placement:
    order: Order
    line_id: str
    start_date: dt.date
    method: PlanningMethod = PlanningMethod.FLAT
    ramp_up_plan: RampUpPlan | None = None
    accept_partial: bool = False


def place_order(
    snapshot: AllocationSnapshot,
    placement: Placement,
    first_day_cap: int | None = None,
    start_date: dt.date | None = None,
) -> Order:
    """Allocate ``placement.order`` in full and return it in scheduled shape."""
    order = placement.order
    line = snapshot.line(placement.line_id)
    allocation = allocate(
        snapshot,
        order.order_quantity,
        start_date or placement.start_date,
        line,
        placement.method,
        CapacityContext(order=order, ramp_up_plan=placement.ramp_up_plan),
        first_day_cap,
        accept_partial=placement.accept_partial,
    )
    return order.scheduled_as(
        line.id,
        allocation,
        placement.method,
        placement.ramp_up_plan.id if placement.ramp_up_plan else None,
    )


class ReflowResolver:
    def __init__(self, snapshot: AllocationSnapshot):
        self.snapshot = snapshot
        self.state = ReflowState.IDLE
        self.conflicts: list[Order] = []
        self.change_set: ChangeSet | None = None
        self.error: SchedulingError | None = None

    def detect(self, placement: Placement) -> list[Order]:
        self.conflicts = find_overlaps(
            self.snapshot,
            placement.order,
            placement.line_id,
            placement.start_date,
            method=placement.method,
            ramp_up_plan=placement.ramp_up_plan,
        )
        self.state = ReflowState.CONFLICT_FOUND if self.conflicts else ReflowState.IDLE
        return self.conflicts

    def resolve(self, placement: Placement, policy: PlacementPolicy | None = None) -> ChangeSet:
        try:
            conflicts = self.detect(placement)
        except SchedulingError as exc:
            self._abort(exc)
            raise
        if conflicts and policy is None:
            self.state = ReflowState.AWAITING_PLACEMENT_CHOICE
            raise PlacementChoiceRequired(
                placement.order.id, placement.line_id, placement.start_date, conflicts
            )

        self.state = ReflowState.RESOLVING
        try:
            if not conflicts:
                change_set = self._place_direct(placement)
            elif PlacementPolicy(policy) == PlacementPolicy.BEFORE:
                change_set = self._insert_before(placement, conflicts)
            else:
                change_set = self._insert_after(placement, conflicts)
        except SchedulingError as exc:
            self._abort(exc)
            raise
        change_set.line_revisions.setdefault(
            placement.line_id, self.snapshot.line_revisions.get(placement.line_id, 0)
        )
        self.change_set = change_set
        return change_set

    def commit(self, lifecycle: "OrderLifecycle") -> list[Order]:
        if self.state != ReflowState.RESOLVING or self.change_set is None:
            raise RuntimeError(f"nothing to commit in state {self.state.value}")
        try:
            saved = lifecycle.commit(self.change_set)
        except SchedulingError as exc:
            self._abort(exc)
            raise
        self.state = ReflowState.COMMITTED
        return saved

    # ------------------------------------------------------------------
    def _abort(self, exc: SchedulingError) -> None:
        self.state = ReflowState.ABORTED
        self.error = exc
        logger.info("placement aborted: %s", exc)

    def _place_direct(self, placement: Placement) -> ChangeSet:
        staged = self.snapshot.with_orders(placement.order.as_pending())
        change_set = ChangeSet()
        change_set.put(place_order(staged, placement))
        return change_set

    def _insert_before(self, placement: Placement, conflicts: list[Order]) -> ChangeSet:
        staged = self.snapshot.with_orders(
            placement.order.as_pending(), *(c.as_pending() for c in conflicts)
        )
        incoming = place_order(staged, placement)
        staged = staged.with_orders(incoming)
        change_set = ChangeSet()
        change_set.put(incoming)

        cursor = incoming.plan_end_date + dt.timedelta(days=1)
        for displaced in conflicts:
            try:
                moved = place_order(staged, self._replacement_for(displaced, placement.line_id, cursor))
            except SchedulingError as exc:
                raise CascadeAborted(displaced.id, exc) from exc
            staged = staged.with_orders(moved)
            change_set.put(moved)
            change_set.displaced_order_ids.append(displaced.id)
            logger.info(
                "order %s displaced by %s: %s..%s",
                displaced.id, incoming.id, moved.plan_start_date, moved.plan_end_date,
            )
            cursor = moved.plan_end_date + dt.timedelta(days=1)
        return change_set

    def _insert_after(self, placement: Placement, conflicts: list[Order]) -> ChangeSet:
        latest_end = max(c.plan_end_date for c in conflicts)
        staged = self.snapshot.with_orders(placement.order.as_pending())
        line = staged.line(placement.line_id)
        leftover = effective_capacity(
            staged,
            line,
            latest_end,
            placement.method,
            CapacityContext(order=placement.order, ramp_up_plan=placement.ramp_up_plan),
        )
        if leftover > 0:
            incoming = place_order(staged, placement, first_day_cap=leftover, start_date=latest_end)
        else:
            incoming = place_order(staged, placement, start_date=latest_end + dt.timedelta(days=1))
        change_set = ChangeSet()
        change_set.put(incoming)
        return change_set

    def _replacement_for(self, displaced: Order, line_id: str, start_date: dt.date) -> Placement:
        method = displaced.planning_method or PlanningMethod.FLAT
        plan = None
        if method == PlanningMethod.RAMP_UP:
            plan = self.snapshot.ramp_up_plan(displaced.ramp_up_plan_id)
        return Placement(
            order=displaced.as_pending(),
            line_id=line_id,
            start_date=start_date,
            method=method,
            ramp_up_plan=plan,
        )
