# src/line_planner/scheduling/service.py
"""Transaction-level entry points used by the API and the CLI.

Each call opens its own session, reads a fresh snapshot, computes a change
set with the pure engine and hands it to ``OrderLifecycle``. An
``AllocationConflict`` at commit re-reads and retries once.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from ..db import session_scope
from ..db.models import DimHoliday, DimLine
from ..records import add_holiday, load_snapshot, upsert_line
from .batch import BatchScheduler
from .errors import AllocationConflict, CascadeAborted, InvalidDate, InvalidIntent, SchedulingError
from .lifecycle import OrderLifecycle
from .models import (
    BatchIntent,
    ChangeSet,
    Order,
    PlanningMethod,
    RampUpPlan,
    ScheduleIntent,
)
from .reflow import Placement, ReflowResolver, place_order
from .snapshot import AllocationSnapshot

logger = logging.getLogger("line_planner.service")

T = TypeVar("T")

MAX_COMMIT_ATTEMPTS = 2


@dataclass(frozen=True)
class CommittedSchedule:
    order_id: str
    line_id: str | None
    plan_start_date: dt.date | None
    plan_end_date: dt.date | None
    daily_plan: dict[dt.date, int]
    complete: bool

    @classmethod
    def from_order(cls, order: Order) -> "CommittedSchedule":
        return cls(
            order_id=order.id,
            line_id=order.assigned_line_id,
            plan_start_date=order.plan_start_date,
            plan_end_date=order.plan_end_date,
            daily_plan=dict(sorted(order.daily_production.items())),
            complete=order.planned_quantity >= order.order_quantity,
        )


@dataclass
class ScheduleOutcome:
    orders: list[CommittedSchedule] = field(default_factory=list)
    displaced_order_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_change_set(cls, change_set: ChangeSet, orders: list[Order] | None = None) -> "ScheduleOutcome":
        source = orders if orders is not None else list(change_set.orders.values())
        return cls(
            orders=[CommittedSchedule.from_order(o) for o in source],
            displaced_order_ids=list(change_set.displaced_order_ids),
        )


class PlanningService:
    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    # ---- public operations --------------------------------------------
    def preview(self, intent: ScheduleIntent) -> ScheduleOutcome:
        """Proposed result of ``intent`` without writing anything."""
        with session_scope(self.session_factory) as db:
            snapshot = load_snapshot(db)
            change_set = self._resolve(snapshot, intent)
            db.rollback()
        return ScheduleOutcome.from_change_set(change_set)

    def schedule(self, intent: ScheduleIntent) -> ScheduleOutcome:
        def attempt(db: Session) -> ScheduleOutcome:
            snapshot = load_snapshot(db)
            change_set = self._resolve(snapshot, intent)
            saved = OrderLifecycle(db).commit(change_set)
            return ScheduleOutcome.from_change_set(change_set, saved)

        outcome = self._with_retry(attempt)
        logger.info(
            "scheduled %s on %s from %s (displaced=%s)",
            intent.order_id, intent.line_id, intent.target_date, outcome.displaced_order_ids,
        )
        return outcome

    def schedule_batch(self, batch: BatchIntent) -> ScheduleOutcome:
        if not batch.order_ids:
            raise InvalidIntent("batch contains no orders")
        if len(set(batch.order_ids)) != len(batch.order_ids):
            raise InvalidIntent("batch lists an order more than once")

        def attempt(db: Session) -> ScheduleOutcome:
            snapshot = load_snapshot(db)
            orders = [snapshot.order(oid) for oid in batch.order_ids]
            start, plan = self._validate_target(
                snapshot, batch.line_id, batch.target_date, batch.planning_method,
                batch.ramp_up_plan_id, batch.roll_forward,
            )
            change_set = BatchScheduler(snapshot).plan(
                orders,
                batch.line_id,
                start,
                batch.planning_method,
                plan,
                batch.policies,
                accept_partial=batch.accept_partial,
            )
            saved = OrderLifecycle(db).commit(change_set)
            return ScheduleOutcome.from_change_set(change_set, saved)

        outcome = self._with_retry(attempt)
        logger.info("batch of %s placed on %s", len(batch.order_ids), batch.line_id)
        return outcome

    def move_to_pending(self, order_id: str) -> Order:
        return self._with_retry(lambda db: OrderLifecycle(db).move_to_pending(order_id))

    def split(self, order_id: str, quantity: int) -> tuple[Order, Order]:
        with session_scope(self.session_factory) as db:
            return OrderLifecycle(db).split(order_id, quantity)

    def replan_line(self, line_id: str) -> ScheduleOutcome:
        """Re-place every scheduled order on ``line_id`` from its current start date."""

        def attempt(db: Session) -> ScheduleOutcome:
            load_snapshot(db).line(line_id)
            return replan_lines(db, [line_id])

        outcome = self._with_retry(attempt)
        logger.info("replanned %s order(s) on line %s", len(outcome.orders), line_id)
        return outcome

    # ---- internals -----------------------------------------------------
    def _with_retry(self, fn: Callable[[Session], T]) -> T:
        for attempt_no in range(1, MAX_COMMIT_ATTEMPTS + 1):
            try:
                with session_scope(self.session_factory) as db:
                    return fn(db)
            except AllocationConflict as exc:
                if attempt_no >= MAX_COMMIT_ATTEMPTS:
                    raise
                logger.warning("commit conflict (%s); re-reading snapshot and retrying", exc)
        raise AssertionError("unreachable")

    def _resolve(self, snapshot: AllocationSnapshot, intent: ScheduleIntent) -> ChangeSet:
        order = snapshot.order(intent.order_id)
        start, plan = self._validate_target(
            snapshot, intent.line_id, intent.target_date, intent.planning_method,
            intent.ramp_up_plan_id, intent.roll_forward,
        )
        placement = Placement(
            order=order,
            line_id=intent.line_id,
            start_date=start,
            method=intent.planning_method,
            ramp_up_plan=plan,
            accept_partial=intent.accept_partial,
        )
        return ReflowResolver(snapshot).resolve(placement, intent.placement_policy)

    @staticmethod
    def _validate_target(
        snapshot: AllocationSnapshot,
        line_id: str,
        target_date: dt.date,
        method: PlanningMethod,
        ramp_up_plan_id: str | None,
        roll_forward: bool,
    ) -> tuple[dt.date, RampUpPlan | None]:
        line = snapshot.line(line_id)
        if not line.active:
            raise InvalidIntent(f"production line {line_id!r} is inactive")
        plan = snapshot.ramp_up_plan(ramp_up_plan_id) if method == PlanningMethod.RAMP_UP else None
        if snapshot.is_working_day(line_id, target_date):
            return target_date, plan
        if not roll_forward:
            raise InvalidDate(target_date, line_id)
        return snapshot.calendar.next_working_day(target_date, line_id), plan


# ---- master-data changes that move committed work ---------------------------
def replan_lines(db: Session, line_ids: Iterable[str]) -> ScheduleOutcome:
    """Re-place the scheduled orders of ``line_ids`` as one change set in ``db``.

    Each order restarts on the first working day from its current start date
    with its own method and ramp-up plan, in start order. An order that no
    longer fits raises ``CascadeAborted`` and nothing is written.
    """
    snapshot = load_snapshot(db)
    staged = snapshot
    change_set = ChangeSet()
    for line_id in sorted(set(line_ids)):
        current = snapshot.scheduled_on(line_id)
        change_set.line_revisions[line_id] = snapshot.line_revisions.get(line_id, 0)
        staged = staged.with_orders(*(o.as_pending() for o in current))
        for order in current:
            method = order.planning_method or PlanningMethod.FLAT
            try:
                plan = snapshot.ramp_up_plan(order.ramp_up_plan_id) if method == PlanningMethod.RAMP_UP else None
                start = staged.calendar.next_working_day(order.plan_start_date, line_id)
                placed = place_order(
                    staged,
                    Placement(order=order.as_pending(), line_id=line_id, start_date=start, method=method, ramp_up_plan=plan),
                )
            except SchedulingError as exc:
                raise CascadeAborted(order.id, exc) from exc
            staged = staged.with_orders(placed)
            change_set.put(placed)
    if not change_set.orders:
        return ScheduleOutcome()
    saved = OrderLifecycle(db).commit(change_set)
    return ScheduleOutcome.from_change_set(change_set, saved)


def lines_off_calendar(snapshot: AllocationSnapshot) -> list[str]:
    """Lines with committed production on a day that is not a working day."""
    out = set()
    for o in snapshot.orders.values():
        if not o.is_scheduled:
            continue
        if any(not snapshot.is_working_day(o.assigned_line_id, d) for d in o.daily_production):
            out.add(o.assigned_line_id)
    return sorted(out)


def save_line(
    db: Session,
    *,
    line_id: str,
    name: str,
    daily_capacity: int,
    operator_count: int | None = None,
    is_active: bool = True,
) -> tuple[DimLine, ScheduleOutcome]:
    """Upsert a line. A capacity or operator change re-places its orders in the same transaction."""
    existing = db.get(DimLine, line_id)
    before = (existing.daily_capacity, existing.operator_count) if existing is not None else None
    row = upsert_line(
        db,
        line_id=line_id,
        name=name,
        daily_capacity=daily_capacity,
        operator_count=operator_count,
        is_active=is_active,
    )
    if before is None or before == (row.daily_capacity, row.operator_count):
        return row, ScheduleOutcome()
    outcome = replan_lines(db, [line_id])
    logger.info("line %s changed capacity %s -> %s; replanned %s order(s)",
                line_id, before[0], row.daily_capacity, len(outcome.orders))
    return row, outcome


def save_holiday(
    db: Session,
    *,
    day: dt.date,
    name: str = "",
    line_ids: Sequence[str] = (),
    is_recurring: bool = False,
) -> tuple[DimHoliday, ScheduleOutcome]:
    """Add a holiday and re-place every line whose committed work now falls on it."""
    row = add_holiday(db, day=day, name=name, line_ids=line_ids, is_recurring=is_recurring)
    affected = lines_off_calendar(load_snapshot(db))
    if not affected:
        return row, ScheduleOutcome()
    outcome = replan_lines(db, affected)
    logger.info("holiday %s moved %s order(s) on line(s) %s", day, len(outcome.orders), affected)
    return row, outcome
