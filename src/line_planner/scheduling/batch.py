# src/line_planner/scheduling/batch.py
from __future__ import annotations

import datetime as dt
import logging
from typing import Mapping, Sequence

from .errors import PlacementChoiceRequired
from .models import ChangeSet, Order, PlacementPolicy, PlanningMethod, RampUpPlan
from .reflow import Placement, ReflowResolver
from .snapshot import AllocationSnapshot

logger = logging.getLogger("line_planner.batch")


class BatchScheduler:
    """Places several orders dropped together onto one line as one change set.

    All members are lifted to pending before anything is placed, so a
    member's old schedule never shows up as a conflict for another member.
    Member ``i + 1`` starts on the first working day after member ``i``'s
    allocated end.
    """

    def __init__(self, snapshot: AllocationSnapshot):
        self.snapshot = snapshot

    def plan(
        self,
        orders: Sequence[Order],
        line_id: str,
        target_date: dt.date,
        method: PlanningMethod = PlanningMethod.FLAT,
        ramp_up_plan: RampUpPlan | None = None,
        policies: Mapping[str, PlacementPolicy] | None = None,
        *,
        accept_partial: bool = False,
    ) -> ChangeSet:
        policies = policies or {}
        staged = self.snapshot.with_orders(*(o.as_pending() for o in orders))
        result = ChangeSet()
        result.line_revisions[line_id] = self.snapshot.line_revisions.get(line_id, 0)

        start = target_date
        for position, order in enumerate(orders):
            if position > 0:
                start = staged.calendar.next_working_day(start, line_id)
            resolver = ReflowResolver(staged)
            placement = Placement(
                order=order.as_pending(),
                line_id=line_id,
                start_date=start,
                method=method,
                ramp_up_plan=ramp_up_plan,
                accept_partial=accept_partial,
            )
            try:
                change_set = resolver.resolve(placement, policies.get(order.id))
            except PlacementChoiceRequired as exc:
                exc.position = position
                logger.info("batch paused at member %s (%s): %s conflicts", position, order.id, len(exc.conflicts))
                raise
            result.merge(change_set)
            staged = staged.with_orders(*change_set.orders.values())
            placed = change_set.orders[order.id]
            start = placed.plan_end_date + dt.timedelta(days=1)
        return result
