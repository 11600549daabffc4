import datetime as dt

import pytest
from fastapi.testclient import TestClient

from line_planner.api.app import app
from line_planner.api.common import get_service
from line_planner.db import build_engine, build_sessionmaker, get_db, init_db, session_scope
from line_planner.records import create_order, upsert_line
from line_planner.scheduling.service import PlanningService


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    eng = build_engine("sqlite://")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def service(session_factory):
    return PlanningService(session_factory)


@pytest.fixture
def seed(session_factory):
    """Writes master data and orders in its own committed transaction."""

    def _seed(lines=(("L1", 100),), orders=(), **line_kw):
        with session_scope(session_factory) as s:
            for line_id, capacity in lines:
                upsert_line(s, line_id=line_id, name=f"Line {line_id}", daily_capacity=capacity, **line_kw)
            for spec in orders:
                spec = dict(spec)
                spec.setdefault("po_number", f"PO-{spec['order_id']}")
                create_order(s, **spec)

    return _seed


@pytest.fixture
def client(session_factory, service):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def monday():
    return dt.date(2025, 6, 2)
