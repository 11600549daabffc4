import logging


def _setup(client):
    assert client.post("/lines", json={"line_id": "L1", "name": "Line 1", "daily_capacity": 100}).status_code == 201
    for oid, qty in (("E", 300), ("N", 200)):
        r = client.post("/orders", json={"order_id": oid, "po_number": f"PO-{oid}", "order_quantity": qty})
        assert r.status_code == 201, r.text


def test_schedule_and_conflict_flow(client):
    _setup(client)
    r = client.post("/schedule", json={"order_id": "E", "line_id": "L1", "target_date": "2025-06-10"})
    assert r.status_code == 200, r.text
    assert r.json()["orders"][0]["daily_plan"] == {"2025-06-10": 100, "2025-06-11": 100, "2025-06-12": 100}

    r = client.post("/schedule", json={"order_id": "N", "line_id": "L1", "target_date": "2025-06-11"})
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "placement_choice_required"
    assert [c["order_id"] for c in body["conflicts"]] == ["E"]

    r = client.post(
        "/schedule",
        json={"order_id": "N", "line_id": "L1", "target_date": "2025-06-11", "placement_policy": "before"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["displaced_order_ids"] == ["E"]

    e = client.get("/orders/E").json()
    assert (e["plan_start_date"], e["plan_end_date"]) == ("2025-06-13", "2025-06-17")

    scheduled = client.get("/orders", params={"status": "scheduled", "line_id": "L1"}).json()
    assert [o["order_id"] for o in scheduled] == ["N", "E"]


def test_invalid_date_maps_to_422(client):
    _setup(client)
    r = client.post("/schedule", json={"order_id": "N", "line_id": "L1", "target_date": "2025-06-07"})
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_date"
    assert r.json()["date"] == "2025-06-07"


def test_preview_and_batch(client):
    _setup(client)
    r = client.post("/schedule/preview", json={"order_id": "N", "line_id": "L1", "target_date": "2025-06-02"})
    assert r.status_code == 200
    assert client.get("/orders/N").json()["status"] == "pending"

    r = client.post("/schedule/batch", json={"order_ids": ["N", "E"], "line_id": "L1", "target_date": "2025-06-02"})
    assert r.status_code == 200, r.text
    plans = {o["order_id"]: o for o in r.json()["orders"]}
    assert plans["N"]["plan_end_date"] == "2025-06-03"
    assert plans["E"]["plan_start_date"] == "2025-06-04"


def test_pending_split_and_load(client):
    _setup(client)
    client.post("/schedule", json={"order_id": "E", "line_id": "L1", "target_date": "2025-06-02"})

    load = client.get("/lines/L1/load").json()
    assert [row["used"] for row in load] == [100, 100, 100]

    r = client.post("/orders/E/split", json={"quantity": 100})
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_intent"

    assert client.post("/orders/E/pending").json()["status"] == "pending"
    r = client.post("/orders/E/split", json={"quantity": 100})
    assert r.status_code == 200
    assert [o["order_id"] for o in r.json()] == ["E-S1", "E-S2"]
    assert client.get("/orders/E").status_code == 422
    assert client.get("/lines/L1/load").json() == []


def test_calendar_and_replan(client):
    _setup(client)
    client.post("/schedule", json={"order_id": "E", "line_id": "L1", "target_date": "2025-06-02"})

    r = client.post("/holidays", json={"date": "2025-06-03", "name": "maintenance", "line_ids": ["L1"]})
    assert r.status_code == 201
    assert r.json()["is_global"] is False
    assert r.json()["replanned_order_ids"] == ["E"]
    assert client.get("/orders/E").json()["daily_production"] == {"2025-06-02": 100, "2025-06-04": 100, "2025-06-05": 100}
    assert client.get("/holidays").json()[0]["line_ids"] == ["L1"]

    r = client.post("/lines/L1/replan")
    assert r.status_code == 200, r.text
    assert r.json()["orders"][0]["daily_plan"] == {"2025-06-02": 100, "2025-06-04": 100, "2025-06-05": 100}

    r = client.post(
        "/ramp-up-plans",
        json={"plan_id": "R1", "name": "standard", "steps": [{"day_number": 1, "efficiency": 50}], "final_efficiency": 90},
    )
    assert r.status_code == 201
    assert client.get("/ramp-up-plans").json()[0]["steps"] == [{"day_number": 1, "efficiency": 50.0}]
    assert [l["schedule_revision"] for l in client.get("/lines").json()] == [3]


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_scheduling_errors_are_logged_with_request_id(client, caplog):
    caplog.set_level(logging.INFO, logger="line_planner.api")
    r = client.get("/orders/NOPE", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 422
    assert any("[req-42]" in rec.getMessage() and "invalid_intent" in rec.getMessage() for rec in caplog.records)


def test_lowering_line_capacity_replans_committed_work(client):
    _setup(client)
    client.post("/schedule", json={"order_id": "E", "line_id": "L1", "target_date": "2025-06-02"})

    r = client.post("/lines", json={"line_id": "L1", "name": "Line 1", "daily_capacity": 40})
    assert r.status_code == 201, r.text
    assert r.json()["replanned_order_ids"] == ["E"]
    assert r.json()["schedule_revision"] == 2

    load = client.get("/lines/L1/load").json()
    assert all(row["used"] <= row["capacity"] for row in load)
    assert sum(row["used"] for row in load) == 300


def test_capacity_edit_that_cannot_be_replanned_is_refused(client):
    _setup(client)
    client.post("/orders", json={"order_id": "BIG", "po_number": "PO-BIG", "order_quantity": 10000})
    assert client.post("/schedule", json={"order_id": "BIG", "line_id": "L1", "target_date": "2025-06-02"}).status_code == 200

    r = client.post("/lines", json={"line_id": "L1", "name": "Line 1", "daily_capacity": 20})
    assert r.status_code == 409
    assert r.json()["error"] == "cascade_aborted"
    assert r.json()["order_id"] == "BIG"
    assert client.get("/lines").json()[0]["daily_capacity"] == 100
