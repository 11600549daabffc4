import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..db import get_request_id, init_db, set_request_id
from ..scheduling.errors import SchedulingError
from .common import status_for
from .routers import calendar, lines, orders, schedule

logger = logging.getLogger("line_planner.api")

# ================== App ==================
app = FastAPI(title="Line Planner API")

app.include_router(schedule.router)
app.include_router(orders.router)
app.include_router(lines.router)
app.include_router(calendar.router)


@app.on_event("startup")
def _startup() -> None:
    init_db()


# Attach per-request id for DB logs
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    set_request_id(rid)
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status = status_for(exc)
    logger.info("[%s] %s %s -> %s %s", get_request_id(), request.method, request.url.path, status, exc.kind)
    return JSONResponse(status_code=status, content=exc.to_payload())


@app.get("/health")
def health():
    return {"ok": True}
