# src/line_planner/db/__init__.py
from __future__ import annotations
import os
import time
import logging
import contextvars
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

# ---- Config -----------------------------------------------------------------
def _default_db_url() -> str:
    # DB file next to the process; override through env
    return os.getenv("DATABASE_URL", "sqlite:///./line_planner.db")

DATABASE_URL = _default_db_url()

# ---- Logging ---------------------------------------------------------------
# Controlled by env var DB_LOG:
#   off | summary | sql | full
# - summary: one-line per query (op, rows, ms)
# - sql: SQL text + trimmed params
# - full: summary + SQL + errors
_db_log_mode = os.getenv("DB_LOG", "off").strip().lower()
_LOG_SUMMARY = _db_log_mode in {"summary", "full"}
_LOG_SQL = _db_log_mode in {"sql", "full"}
_LOG_ERRORS = _db_log_mode in {"summary", "sql", "full"}

_logger = logging.getLogger("line_planner.sql")
if _db_log_mode != "off" and not _logger.handlers:
    # inherit root handlers; user can configure formatters globally
    _logger.setLevel(logging.INFO)

# correlation id for request-scoped logs
_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")

def set_request_id(rid: str) -> None:
    _request_id_ctx.set(str(rid))

def get_request_id() -> str:
    return _request_id_ctx.get()

def _short_params(p):
    if p is None:
        return None
    if isinstance(p, (list, tuple)):
        return [str(x)[:120] for x in p]
    if isinstance(p, dict):
        return {k: (str(v)[:120]) for k, v in p.items()}
    return str(p)[:120]


def _attach_sqlite_events(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        # Improve concurrency for readers/writers
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=60000")  # ms
        cursor.close()


def _attach_log_events(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def _log_before_execute(conn, cursor, statement, parameters, context, executemany):  # noqa: D401
        if _db_log_mode == "off":
            return
        stack = conn.info.setdefault("_query_start_time", [])
        stack.append(time.perf_counter())
        if _LOG_SQL:
            rid = _request_id_ctx.get()
            _logger.info("[%s] SQL: %s | params=%s", rid, statement, _short_params(parameters))

    @event.listens_for(engine, "after_cursor_execute")
    def _log_after_execute(conn, cursor, statement, parameters, context, executemany):
        if _db_log_mode == "off":
            return
        stack = conn.info.get("_query_start_time", [])
        start = stack.pop() if stack else None
        dur_ms = (time.perf_counter() - start) * 1000 if start else None
        if _LOG_SUMMARY:
            rid = _request_id_ctx.get()
            # crude op detection
            op = statement.strip().split(" ", 1)[0].upper() if statement else "SQL"
            _logger.info("[%s] %s rows=%s ms=%.2f", rid, op, getattr(cursor, "rowcount", None), (dur_ms or 0.0))

    @event.listens_for(engine, "handle_error")
    def _log_error(context):  # pragma: no cover
        if _LOG_ERRORS:
            rid = _request_id_ctx.get()
            err = context.original_exception
            _logger.warning("[%s] DB-ERROR: %s | stmt=%s | params=%s", rid, err, context.statement, _short_params(context.parameters))


def build_engine(url: str) -> Engine:
    """Engine with the SQLite pragmas and DB_LOG hooks attached.

    In-memory SQLite gets a single shared connection so every session (and
    every thread of a test client) sees the same database.
    """
    kwargs: dict = {
        "future": True,
        "echo": os.getenv("SQL_ECHO", "0") == "1",
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 60}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        _attach_sqlite_events(engine)
    _attach_log_events(engine)
    return engine


def build_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
        class_=Session,
    )

# ---- Core objects ------------------------------------------------------------
engine: Engine = build_engine(DATABASE_URL)
SessionLocal = build_sessionmaker(engine)

Base = declarative_base()

# ---- Public API --------------------------------------------------------------
def init_db(bind: Engine | None = None) -> None:
    """
    Registers all models and creates missing tables.
    Models must be imported before create_all so the tables land in metadata.
    """
    from . import models  # noqa: F401  # pylint: disable=unused-import

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """
    Context manager for short-lived DB work:
        with session_scope() as db:
            db.add(obj); ...
    """
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
