import pandas as pd
import pytest

from mq_planner.db.models import MachineRecord, ProductionOrderRecord
from mq_planner.ingest.loader import (
    normalize_machines_dataframe,
    normalize_orders_dataframe,
    upsert_machines,
    upsert_orders,
)


def test_machines_headers_by_synonym_and_status_cleanup():
    raw = pd.DataFrame(
        {
            "Machine ID": ["M001", "M002", "M003", None, "M001"],
            "Machine Name": ["Extruder 1", None, "Cutter", "ghost", "Extruder 1b"],
            "State": ["Active", "broken", None, "active", "maintenance"],
            "Capacity": [500, -10, "n/a", 1, 600],
            "Rate": [50, 20, 10, 1, 55],
        }
    )
    df = normalize_machines_dataframe(raw)
    assert list(df["id"]) == ["M002", "M003", "M001"]
    rows = df.set_index("id")
    assert rows.loc["M001", "name"] == "Extruder 1b"
    assert rows.loc["M001", "status"] == "maintenance"
    assert rows.loc["M002", "name"] == "M002"
    assert rows.loc["M002", "status"] == "down"
    assert rows.loc["M003", "status"] == "active"
    assert rows.loc["M002", "max_capacity_kg"] == 0
    assert pd.isna(rows.loc["M003", "max_capacity_kg"])


def test_machines_without_id_column_fail():
    with pytest.raises(ValueError):
        normalize_machines_dataframe(pd.DataFrame({"name": ["x"]}))


def test_orders_priority_and_quantity_cleanup():
    raw = pd.DataFrame(
        {
            "PO Number": ["PO-1", "PO-2", "PO-3", "PO-4", "PO-5"],
            "Qty": [100, 0, 50, "abc", 20],
            "is_urgent": [True, False, False, True, None],
            "Product Type": ["bag", "film", " ", "bag", "roll"],
            "Created": ["2024-01-01 08:00", None, "2024-01-02", None, "bad date"],
        }
    )
    df = normalize_orders_dataframe(raw)
    assert list(df["production_order_number"]) == ["PO-1", "PO-3", "PO-5"]
    assert list(df["priority"]) == ["urgent", "normal", "normal"]
    assert list(df["status"]) == ["pending"] * 3
    assert df.loc[1, "product_type"] is None
    assert df.loc[0, "created_at"] == pd.Timestamp("2024-01-01 08:00")
    assert pd.isna(df.loc[2, "created_at"])


@pytest.mark.parametrize(
    "header, values",
    [
        ("is_urgent", [1, 0, 1]),
        ("Urgent", ["1", "0", "yes"]),
        ("urgent", [1.0, 0.0, 1.0]),
    ],
)
def test_orders_urgent_flag_column_is_yes_no(header, values):
    raw = pd.DataFrame({"po": ["PO-1", "PO-2", "PO-3"], "qty": [10, 10, 10], header: values})
    df = normalize_orders_dataframe(raw)
    assert list(df["priority"]) == ["urgent", "normal", "urgent"]


def test_orders_priority_column_wins_over_urgent_flag():
    raw = pd.DataFrame({"po": ["PO-1", "PO-2"], "qty": [10, 10], "priority": ["1", "high"], "is_urgent": [1, 1]})
    df = normalize_orders_dataframe(raw)
    assert list(df["priority"]) == ["normal", "high"]


def test_orders_missing_quantity_column_fail():
    with pytest.raises(ValueError):
        normalize_orders_dataframe(pd.DataFrame({"po": ["PO-1"]}))


def test_upsert_inserts_then_updates(db):
    machines = normalize_machines_dataframe(
        pd.DataFrame({"id": ["M001"], "name": ["Extruder"], "capacity": [400], "rate": [40]})
    )
    orders = normalize_orders_dataframe(
        pd.DataFrame({"po": ["PO-1", "PO-2"], "qty": [100, 60], "priority": [2, "low"], "customer": ["ACME", None]})
    )
    assert upsert_machines(db, machines) == 1
    assert upsert_orders(db, orders) == 2
    db.commit()

    m = db.get(MachineRecord, "M001")
    assert (m.name, m.max_capacity_kg, m.production_rate_kg_h, m.status) == ("Extruder", 400, 40, "active")
    po = {o.production_order_number: o for o in db.query(ProductionOrderRecord).all()}
    assert po["PO-1"].priority == "high"
    assert po["PO-1"].customer_name == "ACME"
    assert po["PO-2"].priority == "low"
    assert po["PO-1"].created_at is not None

    again = normalize_orders_dataframe(pd.DataFrame({"po": ["PO-1"], "qty": [120], "produced": [20]}))
    upsert_orders(db, again)
    db.commit()
    assert db.query(ProductionOrderRecord).count() == 2
    db.refresh(po["PO-1"])
    assert po["PO-1"].quantity_kg == 120
    assert po["PO-1"].produced_quantity_kg == 20
