# src/line_planner/records.py
"""Persistence helpers: master-data CRUD and snapshot loading.

Everything that turns ORM rows into engine types (and back for new records)
lives here; schedule fields of existing orders are written only by
``scheduling.lifecycle.OrderLifecycle``.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db.models import DimHoliday, DimLine, DimRampUpPlan, PlanOrder, RampUpStep
from .scheduling.calendar import WorkingCalendar
from .scheduling.errors import InvalidIntent
from .scheduling.models import (
    Holiday,
    Order,
    OrderStatus,
    PlanningMethod,
    ProductionLine,
    RampUpPlan,
)
from .scheduling.snapshot import AllocationSnapshot

logger = logging.getLogger("line_planner.records")


# ---- row -> domain ----------------------------------------------------------
def line_from_row(r: DimLine) -> ProductionLine:
    return ProductionLine(
        id=r.id,
        name=r.name,
        daily_capacity=int(r.daily_capacity),
        operator_count=r.operator_count,
        active=bool(r.is_active),
    )


def holiday_from_row(r: DimHoliday) -> Holiday:
    return Holiday(
        day=r.date,
        name=r.name or "",
        is_global=bool(r.is_global),
        line_ids=frozenset(l.id for l in r.lines),
        is_recurring=bool(r.is_recurring),
    )


def ramp_up_plan_from_row(r: DimRampUpPlan) -> RampUpPlan:
    return RampUpPlan(
        id=r.id,
        name=r.name,
        steps=tuple((int(s.day_number), float(s.efficiency)) for s in r.steps),
        final_efficiency=float(r.final_efficiency),
    )


def order_from_row(r: PlanOrder) -> Order:
    return Order(
        id=r.id,
        po_number=r.po_number,
        style_id=r.style_id or "",
        order_quantity=int(r.order_quantity),
        smv=float(r.smv or 0.0),
        mo_count=r.mo_count,
        cut_quantity=r.cut_quantity,
        issue_quantity=r.issue_quantity,
        status=OrderStatus(r.status),
        assigned_line_id=r.assigned_line_id,
        plan_start_date=r.plan_start_date,
        plan_end_date=r.plan_end_date,
        daily_production={d.work_date: int(d.quantity) for d in r.daily},
        planning_method=PlanningMethod(r.planning_method) if r.planning_method else None,
        ramp_up_plan_id=r.ramp_up_plan_id,
        version=int(r.version),
    )


# ---- snapshot ---------------------------------------------------------------
def load_calendar(db: Session) -> WorkingCalendar:
    return WorkingCalendar(holiday_from_row(h) for h in db.scalars(select(DimHoliday)).all())


def load_snapshot(db: Session) -> AllocationSnapshot:
    """Current allocation state: all lines, holidays, ramp-up plans, live orders."""
    lines = db.scalars(select(DimLine)).all()
    orders = db.scalars(select(PlanOrder).where(PlanOrder.retired_at.is_(None))).all()
    plans = db.scalars(select(DimRampUpPlan)).all()
    return AllocationSnapshot(
        lines=[line_from_row(l) for l in lines],
        orders=[order_from_row(o) for o in orders],
        calendar=load_calendar(db),
        ramp_up_plans=[ramp_up_plan_from_row(p) for p in plans],
        line_revisions={l.id: int(l.schedule_revision or 0) for l in lines},
    )


# ---- master data ------------------------------------------------------------
def upsert_line(
    db: Session,
    *,
    line_id: str,
    name: str,
    daily_capacity: int,
    operator_count: int | None = None,
    is_active: bool = True,
) -> DimLine:
    if daily_capacity <= 0:
        raise InvalidIntent(f"line {line_id!r}: daily capacity must be positive")
    row = db.get(DimLine, line_id)
    if row is None:
        row = DimLine(id=line_id, schedule_revision=0)
        db.add(row)
    row.name = name
    row.daily_capacity = int(daily_capacity)
    row.operator_count = operator_count
    row.is_active = bool(is_active)
    db.flush()
    return row


def add_holiday(
    db: Session,
    *,
    day: dt.date,
    name: str = "",
    line_ids: Sequence[str] = (),
    is_recurring: bool = False,
) -> DimHoliday:
    """Global when ``line_ids`` is empty, otherwise line-specific."""
    lines = []
    for lid in line_ids:
        line = db.get(DimLine, lid)
        if line is None:
            raise InvalidIntent(f"unknown production line {lid!r}")
        lines.append(line)
    row = DimHoliday(date=day, name=name, is_global=not lines, is_recurring=is_recurring, lines=lines)
    db.add(row)
    db.flush()
    return row


def upsert_ramp_up_plan(
    db: Session,
    *,
    plan_id: str,
    name: str,
    steps: Iterable[tuple[int, float]],
    final_efficiency: float,
) -> DimRampUpPlan:
    row = db.get(DimRampUpPlan, plan_id)
    if row is None:
        row = DimRampUpPlan(id=plan_id)
        db.add(row)
    row.name = name
    row.final_efficiency = float(final_efficiency)
    row.steps.clear()
    db.flush()
    seen: set[int] = set()
    for day_number, efficiency in sorted(steps):
        if day_number < 1 or day_number in seen:
            raise InvalidIntent(f"ramp-up plan {plan_id!r}: bad or duplicate day number {day_number}")
        seen.add(day_number)
        row.steps.append(RampUpStep(day_number=int(day_number), efficiency=float(efficiency)))
    db.flush()
    return row


def create_order(
    db: Session,
    *,
    order_id: str,
    po_number: str,
    order_quantity: int,
    style_id: str = "",
    smv: float = 0.0,
    mo_count: int | None = None,
    cut_quantity: int | None = None,
    issue_quantity: int | None = None,
    split_from_id: str | None = None,
) -> PlanOrder:
    """New orders always start pending."""
    if order_quantity <= 0:
        raise InvalidIntent(f"order {order_id!r}: order_quantity must be positive")
    if db.get(PlanOrder, order_id) is not None:
        raise InvalidIntent(f"order {order_id!r} already exists")
    row = PlanOrder(
        id=order_id,
        po_number=po_number,
        style_id=style_id or "",
        order_quantity=int(order_quantity),
        smv=float(smv or 0.0),
        mo_count=mo_count,
        cut_quantity=cut_quantity,
        issue_quantity=issue_quantity,
        status=OrderStatus.PENDING.value,
        split_from_id=split_from_id,
    )
    db.add(row)
    db.flush()
    return row


def get_live_order(db: Session, order_id: str) -> PlanOrder:
    row = db.get(PlanOrder, order_id)
    if row is None or row.retired_at is not None:
        raise InvalidIntent(f"unknown order {order_id!r}")
    return row


def list_orders(db: Session, status: OrderStatus | None = None, line_id: str | None = None) -> list[Order]:
    q = select(PlanOrder).where(PlanOrder.retired_at.is_(None))
    if status is not None:
        q = q.where(PlanOrder.status == status.value)
    if line_id is not None:
        q = q.where(PlanOrder.assigned_line_id == line_id)
    q = q.order_by(PlanOrder.plan_start_date, PlanOrder.id)
    return [order_from_row(r) for r in db.scalars(q).all()]
