# src/line_planner/api/routers/calendar.py
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ...db import get_db
from ...db.models import DimHoliday, DimRampUpPlan
from ...records import upsert_ramp_up_plan
from ...schemas import HolidayIn, HolidayOut, RampUpPlanIn, RampUpStepIn
from ...scheduling.service import save_holiday

router = APIRouter(tags=["calendar"])


def _holiday_out(h: DimHoliday, replanned: list[str] | None = None) -> HolidayOut:
    return HolidayOut(
        id=h.id,
        date=h.date,
        name=h.name,
        line_ids=sorted(l.id for l in h.lines),
        is_recurring=h.is_recurring,
        is_global=h.is_global,
        replanned_order_ids=replanned or [],
    )


def _plan_out(p: DimRampUpPlan) -> RampUpPlanIn:
    return RampUpPlanIn(
        plan_id=p.id,
        name=p.name,
        steps=[RampUpStepIn(day_number=s.day_number, efficiency=s.efficiency) for s in p.steps],
        final_efficiency=p.final_efficiency,
    )


@router.post("/holidays", response_model=HolidayOut, status_code=201)
def add_holiday(body: HolidayIn, db: Session = Depends(get_db)):
    """Add a holiday; committed work on it is re-placed in the same transaction."""
    row, outcome = save_holiday(
        db, day=body.date, name=body.name, line_ids=body.line_ids, is_recurring=body.is_recurring
    )
    db.commit()
    return _holiday_out(row, [o.order_id for o in outcome.orders])


@router.get("/holidays", response_model=list[HolidayOut])
def list_holidays(db: Session = Depends(get_db)):
    return [_holiday_out(h) for h in db.scalars(select(DimHoliday).order_by(DimHoliday.date)).all()]


@router.post("/ramp-up-plans", response_model=RampUpPlanIn, status_code=201)
def put_ramp_up_plan(body: RampUpPlanIn, db: Session = Depends(get_db)):
    row = upsert_ramp_up_plan(
        db,
        plan_id=body.plan_id,
        name=body.name,
        steps=[(s.day_number, s.efficiency) for s in body.steps],
        final_efficiency=body.final_efficiency,
    )
    db.commit()
    return _plan_out(row)


@router.get("/ramp-up-plans", response_model=list[RampUpPlanIn])
def list_ramp_up_plans(db: Session = Depends(get_db)):
    return [_plan_out(p) for p in db.scalars(select(DimRampUpPlan).order_by(DimRampUpPlan.id)).all()]
