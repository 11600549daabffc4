# src/line_planner/api/routers/schedule.py
from fastapi import APIRouter, Depends

from ...schemas import BatchIn, ScheduleIn, ScheduleOutcomeOut
from ...scheduling.service import PlanningService
from ..common import get_service, outcome_out

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.post("", response_model=ScheduleOutcomeOut)
def schedule_order(body: ScheduleIn, service: PlanningService = Depends(get_service)):
    """Drop one order on a line/date. 409 with the conflict set when a placement choice is needed."""
    return outcome_out(service.schedule(body.to_intent()))


@router.post("/preview", response_model=ScheduleOutcomeOut)
def preview_order(body: ScheduleIn, service: PlanningService = Depends(get_service)):
    return outcome_out(service.preview(body.to_intent()))


@router.post("/batch", response_model=ScheduleOutcomeOut)
def schedule_batch(body: BatchIn, service: PlanningService = Depends(get_service)):
    return outcome_out(service.schedule_batch(body.to_intent()))
