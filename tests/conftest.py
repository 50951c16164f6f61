import os
import tempfile
from datetime import datetime, timedelta

# must be set before mq_planner.db creates its engine
_DB_DIR = tempfile.mkdtemp(prefix="mq_planner_tests_")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ.setdefault("PREVIEW_CACHE_TTL_SEC", "0")

import pytest

from mq_planner.db import SessionLocal, drop_db, init_db
from mq_planner.db.models import MachineRecord, ProductionOrderRecord
from mq_planner.planning.types import Machine, MachineStatus, Priority, ProductionOrder

T0 = datetime(2024, 1, 1, 8, 0, 0)


# ═══════════════════════════════════════════════════════════════════════════════
# In-memory snapshots
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_machine():
    def _make(mid, cap=100.0, rate=10.0, status=MachineStatus.ACTIVE, name=None):
        return Machine(id=mid, name=name or mid, status=status, production_rate=rate, max_capacity=cap)
    return _make


@pytest.fixture
def make_order():
    def _make(oid, qty, produced=0.0, priority=Priority.NORMAL, product_type=None, minutes=None):
        created = T0 + timedelta(minutes=oid if minutes is None else minutes)
        return ProductionOrder(
            id=oid,
            number=f"PO-{oid:03d}",
            quantity_required=qty,
            produced_quantity=produced,
            priority=priority,
            product_type=product_type,
            created_at=created,
        )
    return _make


# ═══════════════════════════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def db():
    drop_db()
    init_db()
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def add_machine(db):
    def _add(mid, cap=100.0, rate=10.0, status="active"):
        row = MachineRecord(
            id=mid, name=f"Machine {mid}", status=status,
            production_rate_kg_h=rate, max_capacity_kg=cap,
        )
        db.add(row)
        db.commit()
        return row
    return _add


@pytest.fixture
def add_order(db):
    counter = {"n": 0}

    def _add(qty, produced=0.0, priority="normal", product_type=None, status="pending", number=None):
        counter["n"] += 1
        row = ProductionOrderRecord(
            production_order_number=number or f"PO-{counter['n']:03d}",
            quantity_kg=qty,
            produced_quantity_kg=produced,
            priority=priority,
            product_type=product_type,
            status=status,
            created_at=T0 + timedelta(minutes=counter["n"]),
        )
        db.add(row)
        db.commit()
        return row
    return _add
