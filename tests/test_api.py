import pytest
from fastapi.testclient import TestClient

from mq_planner.api.app import app


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def floor(add_machine, add_order):
    add_machine("M001", cap=100)
    add_machine("M002", cap=100)
    add_machine("M003", cap=50)
    return [add_order(30).id, add_order(30).id]


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_request_id_is_echoed(client):
    r = client.get("/", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"
    assert client.get("/").headers.get("X-Request-ID")


def test_preview_load_based(client, floor):
    r = client.get("/machine-queues/distribution-preview", params={"algorithm": "load-based"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["algorithm"] == "load-based"
    assert data["totalOrders"] == 2
    placed = {m["machineId"]: [o["id"] for o in m["proposedOrders"]] for m in data["perMachine"]}
    assert placed == {"M001": [floor[0]], "M002": [floor[1]], "M003": []}
    assert client.get("/machine-queues").json()["data"] == []


def test_preview_hybrid_weights_from_query(client, floor):
    r = client.get(
        "/machine-queues/distribution-preview",
        params={"algorithm": "hybrid", "loadWeight": 100, "capacityWeight": 0, "priorityWeight": 0, "typeWeight": 0},
    )
    assert r.status_code == 200
    assert r.json()["data"]["assignedCount"] == 2


def test_unknown_algorithm_is_400(client, floor):
    r = client.get("/machine-queues/distribution-preview", params={"algorithm": "round-robin"})
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["code"] == "validation_error"
    assert detail["field"] == "algorithm"


def test_negative_weight_is_400(client, floor):
    r = client.get("/machine-queues/distribution-preview", params={"algorithm": "hybrid", "loadWeight": -5})
    assert r.status_code == 400


def test_smart_distribute_then_list(client, floor):
    r = client.post("/machine-queues/smart-distribute", json={"algorithm": "load-based", "assignedBy": "api"})
    assert r.status_code == 200
    result = r.json()["data"]
    assert result["success"] is True
    assert result["assignedCount"] == 2

    rows = client.get("/machine-queues").json()["data"]
    assert [(row["machine_id"], row["queue_position"], row["assigned_by"]) for row in rows] == [
        ("M001", 0, "api"),
        ("M002", 0, "api"),
    ]

    again = client.post("/machine-queues/smart-distribute", json={"algorithm": "load-based"}).json()["data"]
    assert again["assignedCount"] == 0


def test_assign_twice_is_409(client, floor):
    r = client.post("/machine-queues/assign", json={"productionOrderId": floor[0], "machineId": "M001"})
    assert r.status_code == 200
    entry = r.json()["data"]
    assert entry["queue_position"] == 0

    r = client.post("/machine-queues/assign", json={"productionOrderId": floor[0], "machineId": "M002"})
    assert r.status_code == 409
    detail = r.json()["detail"]
    assert detail["code"] == "duplicate_assignment"
    assert detail["machine_id"] == "M001"


def test_assign_bad_position_is_400(client, floor):
    r = client.post(
        "/machine-queues/assign", json={"productionOrderId": floor[0], "machineId": "M001", "position": 3}
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "invalid_position"


def test_assign_unknown_machine_is_404(client, floor):
    r = client.post("/machine-queues/assign", json={"productionOrderId": floor[0], "machineId": "M999"})
    assert r.status_code == 404


def test_reorder_and_delete(client, floor):
    ids = [
        client.post("/machine-queues/assign", json={"productionOrderId": oid, "machineId": "M001"}).json()["data"]["queue_id"]
        for oid in floor
    ]
    r = client.put("/machine-queues/reorder", json={"queueId": ids[1], "newPosition": 0})
    assert r.status_code == 200
    rows = client.get("/machine-queues").json()["data"]
    assert [(row["queue_id"], row["queue_position"]) for row in rows] == [(ids[1], 0), (ids[0], 1)]

    assert client.delete(f"/machine-queues/{ids[1]}").status_code == 200
    rows = client.get("/machine-queues").json()["data"]
    assert [(row["queue_id"], row["queue_position"]) for row in rows] == [(ids[0], 0)]


def test_unknown_entry_is_404(client, db):
    r = client.put("/machine-queues/reorder", json={"queueId": 4242, "newPosition": 0})
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "not_found"
    assert client.delete("/machine-queues/4242").status_code == 404


def test_capacity_stats_and_bottlenecks(client, add_machine, add_order):
    add_machine("M001", cap=100)
    add_machine("M002", cap=100)
    order = add_order(95)
    client.post("/machine-queues/assign", json={"productionOrderId": order.id, "machineId": "M001"})

    stats = {s["machineId"]: s for s in client.get("/machines/capacity-stats").json()["data"]}
    assert stats["M001"]["utilizationPercentage"] == 95.0
    assert stats["M001"]["capacityStatus"] == "overloaded"
    assert stats["M002"]["capacityStatus"] == "low"

    body = client.get("/machines/bottlenecks", params={"threshold": 90}).json()
    assert body["summary"]["hot"] == 1
    assert body["machines"] == [
        {"machineId": "M001", "utilizationPercentage": 95.0, "capacityStatus": "overloaded"}
    ]


def test_suggest(client, floor):
    data = client.get("/machine-queues/suggest").json()["data"]
    assert [d["suggested_machine_id"] for d in data] == ["M001", "M002"]
