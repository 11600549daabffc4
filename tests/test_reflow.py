import pytest

from factories import d, line, order, ramp_plan, scheduled, snapshot
from line_planner.scheduling.errors import CascadeAborted, InvalidIntent, PlacementChoiceRequired
from line_planner.scheduling.models import OrderStatus, PlacementPolicy, PlanningMethod
from line_planner.scheduling.reflow import Placement, ReflowResolver, ReflowState


def _existing_full():
    # Jun 10-12 at the full 100/day
    return scheduled("E", {d(6, 10): 100, d(6, 11): 100, d(6, 12): 100})


def test_insert_before_moves_displaced_order_behind_new_one():
    snap = snapshot(orders=[_existing_full()])
    resolver = ReflowResolver(snap)
    cs = resolver.resolve(Placement(order("N", 200), "L1", d(6, 11)), PlacementPolicy.BEFORE)

    new = cs.orders["N"]
    moved = cs.orders["E"]
    assert dict(new.daily_production) == {d(6, 11): 100, d(6, 12): 100}
    assert new.status == OrderStatus.SCHEDULED
    assert dict(moved.daily_production) == {d(6, 13): 100, d(6, 16): 100, d(6, 17): 100}
    assert moved.plan_start_date == d(6, 13)
    assert cs.displaced_order_ids == ["E"]
    assert cs.line_revisions == {"L1": 0}
    assert resolver.state == ReflowState.RESOLVING


def test_displaced_orders_keep_their_sequence():
    first = scheduled("E1", {d(6, 10): 100})
    second = scheduled("E2", {d(6, 11): 100})
    snap = snapshot(orders=[second, first])
    cs = ReflowResolver(snap).resolve(Placement(order("N", 100), "L1", d(6, 10)), PlacementPolicy.BEFORE)
    assert cs.displaced_order_ids == ["E1", "E2"]
    assert cs.orders["N"].plan_start_date == d(6, 10)
    assert cs.orders["E1"].plan_start_date == d(6, 11)
    assert cs.orders["E2"].plan_start_date == d(6, 12)


def test_conflict_without_policy_asks_for_a_choice():
    snap = snapshot(orders=[_existing_full()])
    resolver = ReflowResolver(snap)
    with pytest.raises(PlacementChoiceRequired) as ei:
        resolver.resolve(Placement(order("N", 200), "L1", d(6, 11)))
    assert [o.id for o in ei.value.conflicts] == ["E"]
    assert resolver.state == ReflowState.AWAITING_PLACEMENT_CHOICE
    assert resolver.change_set is None
    payload = ei.value.to_payload()
    assert payload["error"] == "placement_choice_required"
    assert payload["conflicts"][0]["plan_start_date"] == "2025-06-10"


def test_insert_after_uses_leftover_on_last_day():
    existing = scheduled("E", {d(6, 10): 100, d(6, 11): 100, d(6, 12): 50})
    snap = snapshot(orders=[existing])
    cs = ReflowResolver(snap).resolve(Placement(order("N", 120), "L1", d(6, 11)), PlacementPolicy.AFTER)
    assert list(cs.orders) == ["N"]
    assert dict(cs.orders["N"].daily_production) == {d(6, 12): 50, d(6, 13): 70}
    assert cs.displaced_order_ids == []


def test_insert_after_starts_next_day_when_last_day_is_full():
    snap = snapshot(orders=[_existing_full()])
    cs = ReflowResolver(snap).resolve(Placement(order("N", 100), "L1", d(6, 11)), PlacementPolicy.AFTER)
    assert dict(cs.orders["N"].daily_production) == {d(6, 13): 100}


def test_no_conflict_places_directly():
    snap = snapshot(orders=[_existing_full()])
    resolver = ReflowResolver(snap)
    cs = resolver.resolve(Placement(order("N", 100), "L1", d(6, 16)))
    assert dict(cs.orders["N"].daily_production) == {d(6, 16): 100}
    assert resolver.conflicts == []


def test_failed_re_placement_aborts_the_cascade():
    # remembered ramp-up method cannot be recomputed without an smv
    broken = scheduled(
        "E", {d(6, 10): 100}, planning_method=PlanningMethod.RAMP_UP, ramp_up_plan_id="R1", mo_count=10,
    )
    snap = snapshot(orders=[broken], plans=[ramp_plan()])
    resolver = ReflowResolver(snap)
    with pytest.raises(CascadeAborted) as ei:
        resolver.resolve(Placement(order("N", 100), "L1", d(6, 10)), PlacementPolicy.BEFORE)
    assert ei.value.order_id == "E"
    assert isinstance(ei.value.__cause__, InvalidIntent)
    assert resolver.state == ReflowState.ABORTED
    assert resolver.change_set is None
    # the snapshot itself is untouched
    assert snap.order("E").is_scheduled


def test_failed_detection_aborts_the_decision():
    # ramp-up without smv cannot even be dry-run
    snap = snapshot(lines=[line(operators=10)], orders=[_existing_full()], plans=[ramp_plan()])
    resolver = ReflowResolver(snap)
    placement = Placement(order("N", 100), "L1", d(6, 10), method=PlanningMethod.RAMP_UP, ramp_up_plan=ramp_plan())
    with pytest.raises(InvalidIntent):
        resolver.resolve(placement, PlacementPolicy.BEFORE)
    assert resolver.state == ReflowState.ABORTED
    assert isinstance(resolver.error, InvalidIntent)
