import datetime as dt

import pytest

from line_planner.db import session_scope
from line_planner.db.models import DimLine
from line_planner.records import get_live_order, load_snapshot, order_from_row, upsert_line, upsert_ramp_up_plan
from line_planner.scheduling.errors import (
    AllocationConflict,
    CascadeAborted,
    InvalidDate,
    InvalidIntent,
    PlacementChoiceRequired,
)
from line_planner.scheduling.lifecycle import OrderLifecycle
from line_planner.scheduling.models import (
    BatchIntent,
    OrderStatus,
    PlacementPolicy,
    PlanningMethod,
    ScheduleIntent,
)
from line_planner.scheduling.service import save_holiday, save_line
from line_planner.scheduling.utils import compute_daily_loads


def _d(month, day):
    return dt.date(2025, month, day)


def _stored(session_factory, order_id):
    with session_scope(session_factory) as s:
        return order_from_row(get_live_order(s, order_id))


def test_schedule_commits_flat_plan(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 250}])
    outcome = service.schedule(ScheduleIntent("A", "L1", monday))

    (res,) = outcome.orders
    assert res.daily_plan == {_d(6, 2): 100, _d(6, 3): 100, _d(6, 4): 50}
    assert res.plan_end_date == _d(6, 4)
    assert res.complete
    assert _stored(session_factory, "A").status == OrderStatus.SCHEDULED


def test_non_working_target_is_rejected_unless_rolled_forward(seed, service, session_factory):
    seed(orders=[{"order_id": "A", "order_quantity": 50}])
    saturday = _d(6, 7)
    with pytest.raises(InvalidDate):
        service.schedule(ScheduleIntent("A", "L1", saturday))
    assert _stored(session_factory, "A").status == OrderStatus.PENDING

    outcome = service.schedule(ScheduleIntent("A", "L1", saturday, roll_forward=True))
    assert outcome.orders[0].plan_start_date == _d(6, 9)


def test_inactive_line_and_unknown_records_are_rejected(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 50}])
    with session_scope(session_factory) as s:
        upsert_line(s, line_id="L9", name="Line L9", daily_capacity=100, is_active=False)

    with pytest.raises(InvalidIntent):
        service.schedule(ScheduleIntent("A", "L9", monday))
    with pytest.raises(InvalidIntent):
        service.schedule(ScheduleIntent("A", "NOPE", monday))
    with pytest.raises(InvalidIntent):
        service.schedule(ScheduleIntent("NOPE", "L1", monday))
    with pytest.raises(InvalidIntent):
        service.schedule(ScheduleIntent("A", "L1", monday, planning_method=PlanningMethod.RAMP_UP))


def test_ramp_up_schedule(seed, service, session_factory, monday):
    seed(lines=[("L1", 1000)], orders=[{"order_id": "A", "order_quantity": 400, "smv": 20.0, "mo_count": 10}])
    with session_scope(session_factory) as s:
        upsert_ramp_up_plan(s, plan_id="R1", name="standard", steps=[(1, 50.0), (2, 70.0)], final_efficiency=90.0)

    outcome = service.schedule(
        ScheduleIntent("A", "L1", monday, planning_method=PlanningMethod.RAMP_UP, ramp_up_plan_id="R1")
    )
    assert outcome.orders[0].daily_plan == {_d(6, 2): 135, _d(6, 3): 189, _d(6, 4): 76}
    stored = _stored(session_factory, "A")
    assert stored.planning_method == PlanningMethod.RAMP_UP
    assert stored.ramp_up_plan_id == "R1"


def test_insert_before_through_the_service(seed, service, session_factory):
    seed(orders=[{"order_id": "E", "order_quantity": 300}, {"order_id": "N", "order_quantity": 200}])
    service.schedule(ScheduleIntent("E", "L1", _d(6, 10)))

    with pytest.raises(PlacementChoiceRequired):
        service.schedule(ScheduleIntent("N", "L1", _d(6, 11)))

    outcome = service.schedule(ScheduleIntent("N", "L1", _d(6, 11), placement_policy=PlacementPolicy.BEFORE))
    assert outcome.displaced_order_ids == ["E"]
    e = _stored(session_factory, "E")
    assert (e.plan_start_date, e.plan_end_date) == (_d(6, 13), _d(6, 17))
    n = _stored(session_factory, "N")
    assert (n.plan_start_date, n.plan_end_date) == (_d(6, 11), _d(6, 12))


def test_preview_writes_nothing(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 150}])
    outcome = service.preview(ScheduleIntent("A", "L1", monday))
    assert outcome.orders[0].daily_plan == {_d(6, 2): 100, _d(6, 3): 50}
    assert _stored(session_factory, "A").status == OrderStatus.PENDING


def test_commit_conflict_is_retried_once(seed, service, monkeypatch, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 50}])
    original = OrderLifecycle.commit
    calls = []

    def flaky(self, change_set):
        calls.append(1)
        if len(calls) == 1:
            raise AllocationConflict("line L1 was rescheduled concurrently", line_id="L1")
        return original(self, change_set)

    monkeypatch.setattr(OrderLifecycle, "commit", flaky)
    outcome = service.schedule(ScheduleIntent("A", "L1", monday))
    assert len(calls) == 2
    assert outcome.orders[0].complete


def test_persistent_conflict_is_raised(seed, service, monkeypatch, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 50}])

    def always(self, change_set):
        raise AllocationConflict("line L1 was rescheduled concurrently", line_id="L1")

    monkeypatch.setattr(OrderLifecycle, "commit", always)
    with pytest.raises(AllocationConflict):
        service.schedule(ScheduleIntent("A", "L1", monday))


def test_batch_is_committed_as_one_change(seed, service, session_factory, monday):
    seed(orders=[
        {"order_id": "A", "order_quantity": 150},
        {"order_id": "B", "order_quantity": 100},
    ])
    outcome = service.schedule_batch(BatchIntent(("A", "B"), "L1", monday))
    assert [o.order_id for o in outcome.orders] == ["A", "B"]
    assert _stored(session_factory, "B").plan_start_date == _d(6, 4)

    with pytest.raises(InvalidIntent):
        service.schedule_batch(BatchIntent(("A", "A"), "L1", monday))


def test_paused_batch_writes_nothing(seed, service, session_factory, monday):
    seed(orders=[
        {"order_id": "X", "order_quantity": 100},
        {"order_id": "A", "order_quantity": 150},
        {"order_id": "B", "order_quantity": 100},
    ])
    service.schedule(ScheduleIntent("X", "L1", _d(6, 4)))
    with pytest.raises(PlacementChoiceRequired) as ei:
        service.schedule_batch(BatchIntent(("A", "B"), "L1", monday))
    assert ei.value.position == 1
    assert _stored(session_factory, "A").status == OrderStatus.PENDING


def test_move_to_pending_and_split(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 100}])
    service.schedule(ScheduleIntent("A", "L1", monday))
    assert service.move_to_pending("A").status == OrderStatus.PENDING
    first, second = service.split("A", 30)
    assert (first.order_quantity, second.order_quantity) == (30, 70)


def test_replan_line_after_capacity_change(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 300}, {"order_id": "B", "order_quantity": 100}])
    service.schedule(ScheduleIntent("A", "L1", monday))
    service.schedule(ScheduleIntent("B", "L1", _d(6, 5)))
    with session_scope(session_factory) as s:
        upsert_line(s, line_id="L1", name="Line L1", daily_capacity=150)

    outcome = service.replan_line("L1")
    plans = {o.order_id: o.daily_plan for o in outcome.orders}
    assert plans["A"] == {_d(6, 2): 150, _d(6, 3): 150}
    assert plans["B"] == {_d(6, 5): 100}

    with session_scope(session_factory) as s:
        df = compute_daily_loads(load_snapshot(s), "L1", _d(6, 2), _d(6, 8))
    assert list(df["used"]) == [150, 150, 0, 100, 0, 0, 0]
    assert list(df["working"]) == [True, True, True, True, True, False, False]
    assert df.loc[df["work_date"] == _d(6, 2), "util"].iloc[0] == 1.0


def test_lowering_capacity_replans_the_line(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 100}])
    service.schedule(ScheduleIntent("A", "L1", monday))

    with session_scope(session_factory) as s:
        _, outcome = save_line(s, line_id="L1", name="Line L1", daily_capacity=40)
    assert [o.order_id for o in outcome.orders] == ["A"]
    assert _stored(session_factory, "A").daily_production == {_d(6, 2): 40, _d(6, 3): 40, _d(6, 4): 20}

    with session_scope(session_factory) as s:
        df = compute_daily_loads(load_snapshot(s), "L1")
    assert (df["used"] <= df["capacity"]).all()


def test_renaming_a_line_moves_nothing(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 100}])
    service.schedule(ScheduleIntent("A", "L1", monday))
    with session_scope(session_factory) as s:
        _, outcome = save_line(s, line_id="L1", name="Sewing 1", daily_capacity=100)
    assert outcome.orders == []


def test_capacity_edit_is_refused_when_work_no_longer_fits(seed, service, session_factory, monday):
    seed(orders=[{"order_id": "A", "order_quantity": 10000}])
    service.schedule(ScheduleIntent("A", "L1", monday))
    before = _stored(session_factory, "A").daily_production

    with pytest.raises(CascadeAborted) as ei:
        with session_scope(session_factory) as s:
            save_line(s, line_id="L1", name="Line L1", daily_capacity=20)
    assert ei.value.order_id == "A"

    with session_scope(session_factory) as s:
        assert s.get(DimLine, "L1").daily_capacity == 100
    assert _stored(session_factory, "A").daily_production == before


def test_holiday_on_committed_work_moves_it(seed, service, session_factory, monday):
    seed(lines=[("L1", 100), ("L2", 100)], orders=[{"order_id": "A", "order_quantity": 100}])
    service.schedule(ScheduleIntent("A", "L1", monday))

    with session_scope(session_factory) as s:
        _, outcome = save_holiday(s, day=monday, name="maintenance", line_ids=["L2"])
    assert outcome.orders == []

    with session_scope(session_factory) as s:
        _, outcome = save_holiday(s, day=monday, name="maintenance", line_ids=["L1"])
    assert [o.order_id for o in outcome.orders] == ["A"]
    a = _stored(session_factory, "A")
    assert a.daily_production == {_d(6, 3): 100}
    assert a.plan_start_date == _d(6, 3)
