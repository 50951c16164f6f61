# src/mq_planner/planning/capacity.py
from __future__ import annotations

import math
from typing import Iterable

import pandas as pd

from .types import CapacitySnapshot, CapacityStatus, Machine, ProductionOrder

LOW_THRESHOLD = 40.0
MODERATE_THRESHOLD = 70.0
HIGH_THRESHOLD = 90.0

CAPACITY_COLUMNS = [
    "machine_id",
    "machine_name",
    "current_load",
    "max_capacity",
    "utilization_percentage",
    "capacity_status",
    "order_count",
    "production_rate",
]


def _num(x) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def utilization_percentage(load: float, max_capacity: float) -> float:
    """load / max_capacity * 100, never negative; 0 when capacity is unknown."""
    cap = _num(max_capacity)
    if cap <= 0:
        return 0.0
    return max(0.0, _num(load) / cap * 100.0)


def capacity_status(pct: float) -> CapacityStatus:
    # low <40 | moderate 40..<70 | high 70..90 | overloaded >90
    pct = _num(pct)
    if pct < LOW_THRESHOLD:
        return CapacityStatus.LOW
    if pct < MODERATE_THRESHOLD:
        return CapacityStatus.MODERATE
    if pct <= HIGH_THRESHOLD:
        return CapacityStatus.HIGH
    return CapacityStatus.OVERLOADED


def queue_load(orders: Iterable[ProductionOrder]) -> float:
    """Unproduced remainder over queued orders; completed mass is not counted."""
    return sum(o.remaining_quantity for o in orders)


def compute_capacity(machine: Machine, assigned_orders: Iterable[ProductionOrder]) -> CapacitySnapshot:
    orders = list(assigned_orders)
    load = queue_load(orders)
    cap = _num(machine.max_capacity)
    pct = utilization_percentage(load, cap)
    return CapacitySnapshot(
        machine_id=machine.id,
        machine_name=machine.name,
        machine_name_ar=machine.name_ar,
        current_load=load,
        max_capacity=cap,
        utilization_percentage=pct,
        capacity_status=capacity_status(pct),
        order_count=len(orders),
        production_rate=_num(machine.production_rate),
    )


def capacity_frame(snapshots: Iterable[CapacitySnapshot]) -> pd.DataFrame:
    rows = [
        {
            "machine_id": s.machine_id,
            "machine_name": s.machine_name,
            "current_load": s.current_load,
            "max_capacity": s.max_capacity,
            "utilization_percentage": s.utilization_percentage,
            "capacity_status": s.capacity_status.value,
            "order_count": s.order_count,
            "production_rate": s.production_rate,
        }
        for s in snapshots
    ]
    if not rows:
        return pd.DataFrame(columns=CAPACITY_COLUMNS + ["backlog_hours"])
    df = pd.DataFrame(rows, columns=CAPACITY_COLUMNS)
    # hours of queued work at nominal rate; NaN when the rate is unknown
    rate = df["production_rate"].where(df["production_rate"] > 0)
    df["backlog_hours"] = (df["current_load"] / rate).round(2)
    return df
