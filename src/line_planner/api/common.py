# src/line_planner/api/common.py
from dataclasses import asdict

from ..db.models import DimLine
from ..schemas import LineOut, OrderOut, ScheduleOutcomeOut
from ..scheduling.errors import SchedulingError
from ..scheduling.models import Order
from ..scheduling.service import PlanningService, ScheduleOutcome

# kind -> HTTP status; anything unlisted is a 409
_STATUS_BY_KIND = {
    "invalid_intent": 422,
    "invalid_date": 422,
    "placement_choice_required": 409,
    "allocation_conflict": 409,
    "cascade_aborted": 409,
    "no_available_capacity": 409,
    "planning_horizon_exceeded": 409,
}


def status_for(exc: SchedulingError) -> int:
    return _STATUS_BY_KIND.get(exc.kind, 409)


def get_service() -> PlanningService:
    """FastAPI dependency; tests override it with a service bound to their engine."""
    return PlanningService()


def order_out(o: Order) -> OrderOut:
    return OrderOut(
        order_id=o.id,
        po_number=o.po_number,
        order_quantity=o.order_quantity,
        style_id=o.style_id,
        status=o.status.value,
        assigned_line_id=o.assigned_line_id,
        plan_start_date=o.plan_start_date,
        plan_end_date=o.plan_end_date,
        planning_method=o.planning_method.value if o.planning_method else None,
        ramp_up_plan_id=o.ramp_up_plan_id,
        daily_production=dict(sorted(o.daily_production.items())),
        version=o.version,
    )


def line_out(r: DimLine, replanned: list[str] | None = None) -> LineOut:
    return LineOut(
        line_id=r.id,
        name=r.name,
        daily_capacity=r.daily_capacity,
        operator_count=r.operator_count,
        is_active=r.is_active,
        schedule_revision=r.schedule_revision,
        replanned_order_ids=replanned or [],
    )


def outcome_out(outcome: ScheduleOutcome) -> ScheduleOutcomeOut:
    return ScheduleOutcomeOut(**asdict(outcome))
