import argparse
import datetime as dt
import json

import pandas as pd

from .db import SessionLocal, init_db
from .ingest.loader import load_workbook, validate_workbook
from .logging_conf import configure_logging
from .records import load_snapshot
from .scheduling.errors import SchedulingError
from .scheduling.models import PlacementPolicy, PlanningMethod, ScheduleIntent
from .scheduling.service import PlanningService
from .scheduling.utils import compute_daily_loads, orders_frame


def _date(s: str) -> dt.date:
    return dt.date.fromisoformat(s)


def _print_outcome(outcome) -> None:
    for o in outcome.orders:
        status = "complete" if o.complete else "PARTIAL"
        print(f"{o.order_id}: line={o.line_id} {o.plan_start_date}..{o.plan_end_date} "
              f"qty={sum(o.daily_plan.values())} {status}")
    if outcome.displaced_order_ids:
        print("displaced:", ", ".join(outcome.displaced_order_ids))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Line Planner CLI")
    parser.add_argument("--log-level", default=None, help="overrides LOG_LEVEL")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="Create missing tables")

    ing = sub.add_parser("ingest", help="Import lines/holidays/ramp-up plans/orders from an Excel workbook")
    ing.add_argument("workbook")
    ing.add_argument("--dry-run", action="store_true")

    sch = sub.add_parser("schedule", help="Drop an order on a line starting at a date")
    sch.add_argument("order_id")
    sch.add_argument("line_id")
    sch.add_argument("date", type=_date)
    sch.add_argument("--method", choices=[m.value for m in PlanningMethod], default=PlanningMethod.FLAT.value)
    sch.add_argument("--ramp-up-plan")
    sch.add_argument("--policy", choices=[p.value for p in PlacementPolicy])
    sch.add_argument("--roll-forward", action="store_true")
    sch.add_argument("--accept-partial", action="store_true")
    sch.add_argument("--preview", action="store_true", help="show the result without writing it")

    pend = sub.add_parser("pending", help="Move an order back to pending")
    pend.add_argument("order_id")

    spl = sub.add_parser("split", help="Split a pending order in two")
    spl.add_argument("order_id")
    spl.add_argument("quantity", type=int)

    rep = sub.add_parser("replan", help="Re-place all scheduled orders of a line")
    rep.add_argument("line_id")

    load = sub.add_parser("load", help="Daily load of a line")
    load.add_argument("line_id")
    load.add_argument("--from", dest="date_from", type=_date)
    load.add_argument("--to", dest="date_to", type=_date)
    load.add_argument("--out", help="write load and order sheets to this .xlsx instead of printing")

    srv = sub.add_parser("serve", help="Run the HTTP API")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    init_db()
    service = PlanningService()

    try:
        if args.cmd == "init-db":
            print("Database ready")
        elif args.cmd == "ingest":
            report = validate_workbook(args.workbook)
            if not report["ok"]:
                print(json.dumps(report, ensure_ascii=False, indent=2))
                return 1
            with SessionLocal() as s:
                lines, holidays, plans, orders = load_workbook(s, args.workbook, dry_run=args.dry_run)
            print(f"Ingested: lines={lines}, holidays={holidays}, ramp_up_plans={plans}, orders={orders}")
        elif args.cmd == "schedule":
            intent = ScheduleIntent(
                order_id=args.order_id,
                line_id=args.line_id,
                target_date=args.date,
                planning_method=PlanningMethod(args.method),
                ramp_up_plan_id=args.ramp_up_plan,
                placement_policy=PlacementPolicy(args.policy) if args.policy else None,
                roll_forward=args.roll_forward,
                accept_partial=args.accept_partial,
            )
            _print_outcome(service.preview(intent) if args.preview else service.schedule(intent))
        elif args.cmd == "pending":
            o = service.move_to_pending(args.order_id)
            print(f"{o.id}: {o.status.value}")
        elif args.cmd == "split":
            a, b = service.split(args.order_id, args.quantity)
            print(f"Split into {a.id} ({a.order_quantity}) and {b.id} ({b.order_quantity})")
        elif args.cmd == "replan":
            _print_outcome(service.replan_line(args.line_id))
        elif args.cmd == "load":
            with SessionLocal() as s:
                snapshot = load_snapshot(s)
            df = compute_daily_loads(snapshot, args.line_id, args.date_from, args.date_to)
            if args.out:
                with pd.ExcelWriter(args.out, engine="openpyxl") as xw:
                    df.to_excel(xw, sheet_name="load", index=False)
                    orders_frame(snapshot, args.line_id).to_excel(xw, sheet_name="orders", index=False)
                print("Exported:", args.out)
            else:
                print(df.to_string(index=False))
        elif args.cmd == "serve":
            import uvicorn

            uvicorn.run("line_planner.api.app:app", host=args.host, port=args.port)
    except SchedulingError as e:
        print(json.dumps(e.to_payload(), ensure_ascii=False, indent=2))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
