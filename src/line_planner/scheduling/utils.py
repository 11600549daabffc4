# src/line_planner/scheduling/utils.py
import datetime as dt

import pandas as pd

from .snapshot import AllocationSnapshot

LOAD_COLUMNS = ["line_id", "work_date", "used", "capacity", "free", "util", "working"]


def compute_daily_loads(
    snapshot: AllocationSnapshot,
    line_id: str,
    date_from: dt.date | None = None,
    date_to: dt.date | None = None,
) -> pd.DataFrame:
    """
    Daily load of one line: line_id, work_date, used, capacity, free, util, working.
    Without bounds the frame spans the first..last allocated day; every calendar
    day in range gets a row (non-working days with capacity 0).
    """
    line = snapshot.line(line_id)
    used = snapshot.used_by_day(line_id)
    if date_from is None:
        date_from = min(used) if used else None
    if date_to is None:
        date_to = max(used) if used else None
    if date_from is None or date_to is None or date_to < date_from:
        return pd.DataFrame(columns=LOAD_COLUMNS)

    days = pd.date_range(date_from, date_to, freq="D").date
    g = pd.DataFrame({"work_date": days})
    g["line_id"] = line.id
    g["used"] = g["work_date"].map(lambda d: used.get(d, 0)).astype(int)
    g["working"] = g["work_date"].map(lambda d: snapshot.is_working_day(line.id, d)).astype(bool)
    g["capacity"] = g["working"].map(lambda w: line.daily_capacity if w else 0).astype(int)
    g["free"] = (g["capacity"] - g["used"]).clip(lower=0)
    g["util"] = (g["used"] / g["capacity"].where(g["capacity"] > 0)).fillna(0.0).clip(0, 10.0)
    return g[LOAD_COLUMNS]


def orders_frame(snapshot: AllocationSnapshot, line_id: str | None = None) -> pd.DataFrame:
    """One row per (order, day) of scheduled production, sorted by line, date, order."""
    records = []
    for o in snapshot.orders.values():
        if not o.is_scheduled or (line_id is not None and o.assigned_line_id != line_id):
            continue
        for day, qty in o.daily_production.items():
            records.append((o.assigned_line_id, day, o.id, o.po_number, int(qty)))
    df = pd.DataFrame(records, columns=["line_id", "work_date", "order_id", "po_number", "quantity"])
    if df.empty:
        return df
    return df.sort_values(["line_id", "work_date", "order_id"]).reset_index(drop=True)
