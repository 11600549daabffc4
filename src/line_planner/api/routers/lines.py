# src/line_planner/api/routers/lines.py
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ...db import get_db
from ...db.models import DimLine
from ...records import load_snapshot
from ...schemas import LineIn, LineLoadRow, LineOut, ScheduleOutcomeOut
from ...scheduling.service import PlanningService, save_line
from ...scheduling.utils import compute_daily_loads
from ..common import get_service, line_out, outcome_out

router = APIRouter(prefix="/lines", tags=["lines"])


@router.post("", response_model=LineOut, status_code=201)
def put_line(body: LineIn, db: Session = Depends(get_db)):
    """Create or update a line. A capacity change re-places the line's orders or is refused."""
    row, outcome = save_line(
        db,
        line_id=body.line_id,
        name=body.name,
        daily_capacity=body.daily_capacity,
        operator_count=body.operator_count,
        is_active=body.is_active,
    )
    db.commit()
    db.refresh(row)
    return line_out(row, [o.order_id for o in outcome.orders])


@router.get("", response_model=list[LineOut])
def get_lines(db: Session = Depends(get_db)):
    rows = db.scalars(select(DimLine).order_by(DimLine.id)).all()
    return [line_out(r) for r in rows]


@router.post("/{line_id}/replan", response_model=ScheduleOutcomeOut)
def replan_line(line_id: str, service: PlanningService = Depends(get_service)):
    return outcome_out(service.replan_line(line_id))


@router.get("/{line_id}/load", response_model=list[LineLoadRow])
def line_load(
    line_id: str,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: Session = Depends(get_db),
):
    df = compute_daily_loads(load_snapshot(db), line_id, date_from, date_to)
    return [
        LineLoadRow(
            work_date=r.work_date,
            used=int(r.used),
            capacity=int(r.capacity),
            free=int(r.free),
            util=float(r.util),
            working=bool(r.working),
        )
        for r in df.itertuples(index=False)
    ]
