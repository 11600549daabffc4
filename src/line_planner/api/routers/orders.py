# src/line_planner/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...db import get_db
from ...records import create_order, get_live_order, list_orders, order_from_row
from ...schemas import OrderIn, OrderOut, SplitIn
from ...scheduling.models import OrderStatus
from ...scheduling.service import PlanningService
from ..common import get_service, order_out

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def add_order(body: OrderIn, db: Session = Depends(get_db)):
    row = create_order(
        db,
        order_id=body.order_id,
        po_number=body.po_number,
        order_quantity=body.order_quantity,
        style_id=body.style_id,
        smv=body.smv,
        mo_count=body.mo_count,
        cut_quantity=body.cut_quantity,
        issue_quantity=body.issue_quantity,
    )
    db.commit()
    return order_out(order_from_row(row))


@router.get("", response_model=list[OrderOut])
def get_orders(
    status: OrderStatus | None = Query(None),
    line_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    return [order_out(o) for o in list_orders(db, status=status, line_id=line_id)]


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return order_out(order_from_row(get_live_order(db, order_id)))


@router.post("/{order_id}/pending", response_model=OrderOut)
def move_to_pending(order_id: str, service: PlanningService = Depends(get_service)):
    return order_out(service.move_to_pending(order_id))


@router.post("/{order_id}/split", response_model=list[OrderOut])
def split_order(order_id: str, body: SplitIn, service: PlanningService = Depends(get_service)):
    first, second = service.split(order_id, body.quantity)
    return [order_out(first), order_out(second)]
