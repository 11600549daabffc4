# src/line_planner/ingest/loader.py
from __future__ import annotations

import logging
from typing import Any, Dict, Set, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import DimHoliday, PlanOrder
from ..records import create_order, upsert_ramp_up_plan
from ..scheduling.service import save_holiday, save_line

logger = logging.getLogger("line_planner.ingest")

# ===================== Header synonyms (lowercase) =====================

SHEET_SYNONYMS: Dict[str, Set[str]] = {
    "lines": {"lines", "line", "production lines", "production_lines"},
    "holidays": {"holidays", "holiday", "calendar"},
    "ramp_up": {"ramp_up", "rampup", "ramp-up", "ramp up", "ramp_up_plans", "learning curve"},
    "orders": {"orders", "order", "po", "purchase orders", "orderbook"},
}

LINE_SYNONYMS: Dict[str, Set[str]] = {
    "line_id": {"line_id", "line id", "id", "line", "line code"},
    "name": {"name", "line name", "line_name"},
    "daily_capacity": {"daily_capacity", "capacity", "daily capacity", "pcs/day", "capacity per day"},
    "operator_count": {"operator_count", "operators", "mo", "machine operators", "operator count"},
    "is_active": {"is_active", "active", "enabled"},
}

HOLIDAY_SYNONYMS: Dict[str, Set[str]] = {
    "date": {"date", "day", "holiday date"},
    "name": {"name", "holiday", "description"},
    "line_ids": {"line_ids", "lines", "line_id", "line", "affected lines"},
    "is_recurring": {"is_recurring", "recurring", "yearly", "every year"},
}

RAMP_SYNONYMS: Dict[str, Set[str]] = {
    "plan_id": {"plan_id", "plan id", "id", "plan", "ramp_up_plan_id"},
    "name": {"name", "plan name"},
    "day_number": {"day_number", "day", "day no", "working day"},
    "efficiency": {"efficiency", "eff", "efficiency %", "efficiency_percent"},
    "final_efficiency": {"final_efficiency", "final efficiency", "final", "final_efficiency_percent"},
}

ORDER_SYNONYMS: Dict[str, Set[str]] = {
    "order_id": {"order_id", "order id", "id", "order"},
    "po_number": {"po_number", "po", "po number", "po no"},
    "order_quantity": {"order_quantity", "qty", "quantity", "order qty"},
    "style_id": {"style_id", "style", "style no"},
    "smv": {"smv", "sam", "standard minute value"},
    "mo_count": {"mo_count", "mo", "operators", "machine operators"},
    "cut_quantity": {"cut_quantity", "cut qty", "cut"},
    "issue_quantity": {"issue_quantity", "issue qty", "issued"},
}

_TRUE = {"1", "true", "yes", "y", "x"}

# ===================== Helpers =====================

def _read_workbook(path: str) -> Dict[str, pd.DataFrame]:
    return pd.read_excel(path, sheet_name=None, engine="openpyxl")

def _rename_by_synonyms(df: pd.DataFrame, synonyms: dict[str, Set[str]]) -> pd.DataFrame:
    lower_map = {str(c).strip().lower(): c for c in df.columns}
    rename = {}
    for canon, syns in synonyms.items():
        for s in syns:
            if s in lower_map:
                rename[lower_map[s]] = canon
                break
    return df.rename(columns=rename)

def _pick_sheets(book: Dict[str, pd.DataFrame]) -> Dict[str, pd.DataFrame]:
    out: Dict[str, pd.DataFrame] = {}
    for sheet_name, df in book.items():
        key = str(sheet_name).strip().lower()
        for canon, syns in SHEET_SYNONYMS.items():
            if key in syns and canon not in out:
                out[canon] = df
    return out

def _flag(v, default: bool = False) -> bool:
    if v is None or (isinstance(v, float) and pd.isna(v)):
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in _TRUE

def _opt_int(v) -> int | None:
    if v is None:
        return None
    n = pd.to_numeric(v, errors="coerce")
    return None if pd.isna(n) else int(n)

def _require(df: pd.DataFrame, cols: list[str], what: str, original_cols: list) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"{what}: missing required columns {missing}. Found: {original_cols}")

# --------------------- Canonical frames ---------------------

def _canonicalize_lines(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, LINE_SYNONYMS)
    _require(df, ["line_id", "daily_capacity"], "lines", original_cols)
    df = df.dropna(subset=["line_id"]).copy()
    df["line_id"] = df["line_id"].astype(str).str.strip()
    if "name" not in df.columns:
        df["name"] = df["line_id"]
    df["name"] = df["name"].fillna(df["line_id"]).astype(str)
    df["daily_capacity"] = pd.to_numeric(df["daily_capacity"], errors="coerce")
    df = df[df["daily_capacity"] > 0].copy()
    df["daily_capacity"] = df["daily_capacity"].astype(int)
    if "operator_count" not in df.columns:
        df["operator_count"] = None
    df["is_active"] = df["is_active"].map(lambda v: _flag(v, default=True)) if "is_active" in df.columns else True
    return df[["line_id", "name", "daily_capacity", "operator_count", "is_active"]]

def _canonicalize_holidays(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, HOLIDAY_SYNONYMS)
    _require(df, ["date"], "holidays", original_cols)
    df = df.copy()
    df["date"] = pd.to_datetime(df["date"], errors="coerce").dt.date
    df = df.dropna(subset=["date"])
    if "name" not in df.columns:
        df["name"] = ""
    df["name"] = df["name"].fillna("").astype(str)
    if "line_ids" in df.columns:
        df["line_ids"] = df["line_ids"].map(
            lambda v: [] if v is None or (isinstance(v, float) and pd.isna(v))
            else [p.strip() for p in str(v).replace(";", ",").split(",") if p.strip()]
        )
    else:
        df["line_ids"] = [[] for _ in range(len(df))]
    df["is_recurring"] = df["is_recurring"].map(_flag) if "is_recurring" in df.columns else False
    return df[["date", "name", "line_ids", "is_recurring"]]

def _canonicalize_ramp_up(df: pd.DataFrame) -> pd.DataFrame:
    """Tall table: one row per (plan, day_number); final_efficiency repeats per plan."""
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, RAMP_SYNONYMS)
    _require(df, ["plan_id", "day_number", "efficiency"], "ramp_up", original_cols)
    df = df.dropna(subset=["plan_id"]).copy()
    df["plan_id"] = df["plan_id"].astype(str).str.strip()
    if "name" not in df.columns:
        df["name"] = df["plan_id"]
    df["name"] = df["name"].fillna(df["plan_id"]).astype(str)
    df["day_number"] = pd.to_numeric(df["day_number"], errors="coerce")
    df["efficiency"] = pd.to_numeric(df["efficiency"], errors="coerce")
    if "final_efficiency" not in df.columns:
        df["final_efficiency"] = 100.0
    df["final_efficiency"] = pd.to_numeric(df["final_efficiency"], errors="coerce")
    return df[["plan_id", "name", "day_number", "efficiency", "final_efficiency"]]

def _canonicalize_orders(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, ORDER_SYNONYMS)
    _require(df, ["po_number", "order_quantity"], "orders", original_cols)
    df = df.dropna(subset=["po_number"]).copy()
    df["po_number"] = df["po_number"].astype(str).str.strip()
    if "order_id" not in df.columns:
        df["order_id"] = df["po_number"]
    df["order_id"] = df["order_id"].fillna(df["po_number"]).astype(str).str.strip()
    df["order_quantity"] = pd.to_numeric(df["order_quantity"], errors="coerce")
    df = df[df["order_quantity"] > 0].copy()
    df["order_quantity"] = df["order_quantity"].astype(int)
    df["style_id"] = df["style_id"].fillna("").astype(str) if "style_id" in df.columns else ""
    df["smv"] = pd.to_numeric(df["smv"], errors="coerce").fillna(0.0) if "smv" in df.columns else 0.0
    for c in ("mo_count", "cut_quantity", "issue_quantity"):
        if c not in df.columns:
            df[c] = None
    cols = ["order_id", "po_number", "order_quantity", "style_id", "smv", "mo_count", "cut_quantity", "issue_quantity"]
    return df[cols]

# ===================== Public API =====================

def read_workbook(path: str) -> Dict[str, pd.DataFrame]:
    """Canonical frames for every recognised sheet of ``path``."""
    sheets = _pick_sheets(_read_workbook(path))
    canon = {
        "lines": _canonicalize_lines,
        "holidays": _canonicalize_holidays,
        "ramp_up": _canonicalize_ramp_up,
        "orders": _canonicalize_orders,
    }
    return {name: canon[name](df) for name, df in sheets.items()}

def validate_workbook(path: str) -> Dict[str, Any]:
    """Row counts per sheet plus the errors that would stop an import."""
    report: Dict[str, Any] = {"ok": True, "sheets": {}, "errors": []}
    try:
        frames = read_workbook(path)
    except (ValueError, OSError) as e:
        report["ok"] = False
        report["errors"].append(str(e))
        return report
    for name, df in frames.items():
        report["sheets"][name] = int(len(df))
    if not frames:
        report["ok"] = False
        report["errors"].append(f"no recognised sheets; expected any of {sorted(SHEET_SYNONYMS)}")
    return report

def load_workbook(session: Session, path: str, dry_run: bool = False) -> Tuple[int, int, int, int]:
    """Import lines, holidays, ramp-up plans and orders; returns (lines, holidays, plans, orders).

    Lines and ramp-up plans are upserted. Orders that already exist are left
    alone so their schedules survive a re-import; a changed line capacity or a
    new holiday re-places the affected schedules before the commit.
    """
    frames = read_workbook(path)
    ldf = frames.get("lines", pd.DataFrame())
    hdf = frames.get("holidays", pd.DataFrame())
    rdf = frames.get("ramp_up", pd.DataFrame())
    odf = frames.get("orders", pd.DataFrame())

    plan_groups = list(rdf.groupby("plan_id", sort=True)) if not rdf.empty else []
    if dry_run:
        return len(ldf), len(hdf), len(plan_groups), len(odf)

    for r in ldf.itertuples(index=False):
        save_line(
            session,
            line_id=r.line_id,
            name=r.name,
            daily_capacity=int(r.daily_capacity),
            operator_count=_opt_int(r.operator_count),
            is_active=bool(r.is_active),
        )
    for r in hdf.itertuples(index=False):
        exists = session.scalars(
            select(DimHoliday).where(DimHoliday.date == r.date, DimHoliday.name == r.name)
        ).first()
        if exists is not None:
            continue
        save_holiday(session, day=r.date, name=r.name, line_ids=list(r.line_ids), is_recurring=bool(r.is_recurring))
    for plan_id, g in plan_groups:
        g = g.dropna(subset=["day_number", "efficiency"])
        final = g["final_efficiency"].dropna()
        upsert_ramp_up_plan(
            session,
            plan_id=str(plan_id),
            name=str(g["name"].iloc[0]) if len(g) else str(plan_id),
            steps=[(int(d), float(e)) for d, e in zip(g["day_number"], g["efficiency"])],
            final_efficiency=float(final.iloc[0]) if len(final) else 100.0,
        )
    created = 0
    for r in odf.itertuples(index=False):
        if session.get(PlanOrder, r.order_id) is not None:
            continue
        create_order(
            session,
            order_id=r.order_id,
            po_number=r.po_number,
            order_quantity=int(r.order_quantity),
            style_id=r.style_id,
            smv=float(r.smv),
            mo_count=_opt_int(r.mo_count),
            cut_quantity=_opt_int(r.cut_quantity),
            issue_quantity=_opt_int(r.issue_quantity),
        )
        created += 1
    session.commit()
    logger.info(
        "ingested %s: lines=%s holidays=%s ramp_up_plans=%s orders=%s (new %s)",
        path, len(ldf), len(hdf), len(plan_groups), len(odf), created,
    )
    return len(ldf), len(hdf), len(plan_groups), len(odf)
