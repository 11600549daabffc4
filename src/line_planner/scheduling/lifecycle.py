# src/line_planner/scheduling/lifecycle.py
"""The only writer of persisted schedule fields.

Transitions::

    pending -> scheduled            commit() of an accepted allocation
    scheduled -> pending            move_to_pending() / displacement
    pending -> (pending, pending)   split(); the parent is retired, not deleted

``commit`` is optimistic: each touched line's ``schedule_revision`` must still
be the one the proposal was computed from, each order's row version must be
unchanged, and the re-read allocation must respect line capacity. Anything
else raises ``AllocationConflict`` and the caller's transaction rolls back.
"""
from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..db.models import DimLine, OrderDailyProduction, PlanOrder
from ..records import create_order, get_live_order, load_calendar, order_from_row
from .errors import AllocationConflict, InvalidDate, InvalidIntent
from .models import ChangeSet, Order, OrderStatus

logger = logging.getLogger("line_planner.lifecycle")


class OrderLifecycle:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    def commit(self, change_set: ChangeSet) -> list[Order]:
        for proposed in change_set.orders.values():
            proposed.validate()

        self._bump_line_revisions(change_set)

        calendar = load_calendar(self.db)
        rows: list[PlanOrder] = []
        try:
            for proposed in change_set.orders.values():
                row = get_live_order(self.db, proposed.id)
                if int(row.version) != int(proposed.version):
                    raise AllocationConflict(
                        f"order {proposed.id!r} changed since it was read "
                        f"(version {proposed.version} -> {row.version})",
                        order_id=proposed.id,
                    )
                if proposed.is_scheduled:
                    for day in proposed.daily_production:
                        if not calendar.is_working_day(day, proposed.assigned_line_id):
                            raise InvalidDate(day, proposed.assigned_line_id)
                self._write(row, proposed)
                rows.append(row)
            self.db.flush()
        except StaleDataError as exc:
            raise AllocationConflict(f"concurrent update of scheduled orders: {exc}") from exc

        self._check_capacity(change_set)
        logger.info(
            "committed %s order(s) on line(s) %s, displaced=%s",
            len(rows), sorted(change_set.touched_line_ids), change_set.displaced_order_ids,
        )
        return [order_from_row(r) for r in rows]

    def move_to_pending(self, order_id: str) -> Order:
        row = get_live_order(self.db, order_id)
        current = order_from_row(row)
        if not current.is_scheduled:
            return current
        change_set = ChangeSet()
        change_set.put(current.as_pending())
        (saved,) = self.commit(change_set)
        return saved

    def split(self, order_id: str, quantity: int) -> tuple[Order, Order]:
        row = get_live_order(self.db, order_id)
        if row.status != OrderStatus.PENDING.value:
            raise InvalidIntent(f"order {order_id!r} must be pending to be split")
        total = int(row.order_quantity)
        if not (0 < quantity < total):
            raise InvalidIntent(f"order {order_id!r}: split quantity must be between 1 and {total - 1}")

        parts = (int(quantity), total - int(quantity))
        cut = _proportional(row.cut_quantity, parts, total)
        issue = _proportional(row.issue_quantity, parts, total)
        children = []
        for n, part in enumerate(parts, start=1):
            child = create_order(
                self.db,
                order_id=f"{row.id}-S{n}",
                po_number=f"{row.po_number}-S{n}",
                order_quantity=part,
                style_id=row.style_id,
                smv=row.smv,
                mo_count=row.mo_count,
                cut_quantity=cut[n - 1],
                issue_quantity=issue[n - 1],
                split_from_id=row.id,
            )
            children.append(child)
        row.retired_at = dt.datetime.now()
        row.updated_at = dt.datetime.now()
        try:
            self.db.flush()
        except StaleDataError as exc:
            raise AllocationConflict(f"order {order_id!r} changed during split", order_id=order_id) from exc
        logger.info("order %s split into %s", order_id, [c.id for c in children])
        first, second = (order_from_row(c) for c in children)
        return first, second

    # ------------------------------------------------------------------
    def _bump_line_revisions(self, change_set: ChangeSet) -> None:
        for line_id in sorted(change_set.touched_line_ids):
            seen = change_set.line_revisions.get(line_id)
            if seen is None:
                raise AllocationConflict(f"no revision recorded for line {line_id!r}", line_id=line_id)
            result = self.db.execute(
                update(DimLine)
                .where(DimLine.id == line_id, DimLine.schedule_revision == seen)
                .values(schedule_revision=DimLine.schedule_revision + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AllocationConflict(
                    f"line {line_id!r} was rescheduled concurrently", line_id=line_id
                )

    def _write(self, row: PlanOrder, proposed: Order) -> None:
        row.daily.clear()
        # old daily rows must be gone before new ones reuse (order_id, work_date)
        self.db.flush()
        row.status = proposed.status.value
        row.assigned_line_id = proposed.assigned_line_id
        row.plan_start_date = proposed.plan_start_date
        row.plan_end_date = proposed.plan_end_date
        row.planning_method = proposed.planning_method.value if proposed.planning_method else None
        row.ramp_up_plan_id = proposed.ramp_up_plan_id
        row.updated_at = dt.datetime.now()
        for day, qty in sorted(proposed.daily_production.items()):
            row.daily.append(
                OrderDailyProduction(line_id=proposed.assigned_line_id, work_date=day, quantity=int(qty))
            )

    def _check_capacity(self, change_set: ChangeSet) -> None:
        touched: dict[str, set[dt.date]] = defaultdict(set)
        for o in change_set.scheduled():
            touched[o.assigned_line_id].update(o.daily_production)
        for line_id, days in touched.items():
            line = self.db.get(DimLine, line_id)
            if line is None:
                raise InvalidIntent(f"unknown production line {line_id!r}")
            totals = self.db.execute(
                select(OrderDailyProduction.work_date, func.sum(OrderDailyProduction.quantity))
                .join(PlanOrder, PlanOrder.id == OrderDailyProduction.order_id)
                .where(
                    OrderDailyProduction.line_id == line_id,
                    OrderDailyProduction.work_date.in_(sorted(days)),
                    PlanOrder.retired_at.is_(None),
                    PlanOrder.status == OrderStatus.SCHEDULED.value,
                )
                .group_by(OrderDailyProduction.work_date)
            ).all()
            for work_date, total in totals:
                if int(total) > int(line.daily_capacity):
                    raise AllocationConflict(
                        f"line {line_id!r} over-allocated on {work_date}: {total} > {line.daily_capacity}",
                        line_id=line_id,
                        work_date=work_date,
                    )


def _proportional(value: int | None, parts: tuple[int, int], total: int) -> tuple[int | None, int | None]:
    """Split an informational quantity in proportion; the second part takes the remainder."""
    if value is None:
        return None, None
    first = int(value) * parts[0] // total
    return first, int(value) - first
