# src/mq_planner/planning/types.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from ..errors import ValidationError


class MachineStatus(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    DOWN = "down"


class Algorithm(str, Enum):
    BALANCED = "balanced"
    LOAD_BASED = "load-based"
    PRIORITY = "priority"
    PRODUCT_TYPE = "product-type"
    HYBRID = "hybrid"


class CapacityStatus(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    OVERLOADED = "overloaded"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_rank(cls, rank: int) -> "Priority":
        rank = max(0, min(len(_PRIORITY_ORDER) - 1, int(rank)))
        return _PRIORITY_ORDER[rank]


_PRIORITY_ORDER = [Priority.LOW, Priority.NORMAL, Priority.HIGH, Priority.URGENT]
_PRIORITY_RANK = {p: i for i, p in enumerate(_PRIORITY_ORDER)}
MAX_PRIORITY_RANK = len(_PRIORITY_ORDER) - 1

_TRUE_TOKENS = {"true", "yes", "y"}
_FALSE_TOKENS = {"false", "no", "n", ""}


def coerce_priority(value: Any) -> Priority:
    """Map stored/legacy priority values onto the ordered enumeration.

    Booleans become a two-level scale: False -> normal, True -> urgent.
    Integers (and integer strings) are read as ranks 0..3 (low..urgent) and
    clamped. Anything unrecognised is normal. Columns that hold a yes/no
    urgency flag go through ``coerce_urgent_flag`` instead.
    """
    if isinstance(value, Priority):
        return value
    if value is None:
        return Priority.NORMAL
    if isinstance(value, bool):
        return Priority.URGENT if value else Priority.NORMAL
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return Priority.NORMAL
        return Priority.from_rank(int(value))
    s = str(value).strip().lower()
    for p in Priority:
        if s == p.value:
            return p
    if s in _TRUE_TOKENS:
        return Priority.URGENT
    if s in _FALSE_TOKENS:
        return Priority.NORMAL
    if s.lstrip("+-").isdecimal():
        try:
            return Priority.from_rank(int(s))
        except ValueError:
            pass
    return Priority.NORMAL


def coerce_urgent_flag(value: Any) -> Priority:
    """Legacy urgency flag (bool, 0/1, yes/no) -> normal or urgent.

    A level name in a flag column is still honoured.
    """
    if isinstance(value, Priority):
        return value
    if value is None:
        return Priority.NORMAL
    if isinstance(value, (bool, int, float)):
        if isinstance(value, float) and math.isnan(value):
            return Priority.NORMAL
        return Priority.URGENT if value else Priority.NORMAL
    s = str(value).strip().lower()
    if s in _TRUE_TOKENS or s == "1":
        return Priority.URGENT
    if s in _FALSE_TOKENS or s == "0":
        return Priority.NORMAL
    return coerce_priority(s)


def parse_algorithm(value: Any) -> Algorithm:
    if isinstance(value, Algorithm):
        return value
    s = str(value or "").strip().lower().replace("_", "-")
    try:
        return Algorithm(s)
    except ValueError:
        raise ValidationError(
            f"Unknown distribution algorithm: {value!r}",
            field="algorithm",
            allowed=[a.value for a in Algorithm],
        ) from None


# ---------- Snapshots ----------

@dataclass(frozen=True)
class Machine:
    id: str
    name: str
    status: MachineStatus = MachineStatus.ACTIVE
    name_ar: str | None = None
    section: str | None = None
    production_rate: float = 0.0   # kg/h
    max_capacity: float = 0.0      # kg

    @property
    def is_active(self) -> bool:
        return self.status is MachineStatus.ACTIVE


@dataclass(frozen=True)
class ProductionOrder:
    id: int
    quantity_required: float
    produced_quantity: float = 0.0
    priority: Priority = Priority.NORMAL
    product_type: str | None = None
    number: str | None = None
    customer: str | None = None
    created_at: datetime | None = None
    status: str = "pending"

    @property
    def remaining_quantity(self) -> float:
        return max(0.0, float(self.quantity_required or 0.0) - float(self.produced_quantity or 0.0))


@dataclass(frozen=True)
class CapacitySnapshot:
    machine_id: str
    machine_name: str
    machine_name_ar: str | None
    current_load: float
    max_capacity: float
    utilization_percentage: float
    capacity_status: CapacityStatus
    order_count: int
    production_rate: float

    def to_dict(self) -> dict:
        return {
            "machineId": self.machine_id,
            "machineName": self.machine_name,
            "machineNameAr": self.machine_name_ar,
            "currentLoad": round(self.current_load, 2),
            "maxCapacity": self.max_capacity,
            "utilizationPercentage": round(self.utilization_percentage, 2),
            "capacityStatus": self.capacity_status.value,
            "orderCount": self.order_count,
            "productionRate": self.production_rate,
        }


# ---------- Parameters ----------

@dataclass(frozen=True)
class HybridWeights:
    """Relative shares of the four hybrid dimensions.

    The composite score is a plain weighted sum, so the absolute size of the
    weights matters as well as their ratio. They are never renormalised.
    """

    load: float = 25.0
    capacity: float = 25.0
    priority: float = 25.0
    product_type: float = 25.0

    _ALIASES = {
        "load": ("load", "loadWeight", "load_weight"),
        "capacity": ("capacity", "capacityWeight", "capacity_weight"),
        "priority": ("priority", "priorityWeight", "priority_weight"),
        "product_type": ("product_type", "type", "typeWeight", "type_weight"),
    }

    def __post_init__(self):
        for name in ("load", "capacity", "priority", "product_type"):
            v = getattr(self, name)
            if not isinstance(v, (int, float)) or isinstance(v, bool) or not math.isfinite(v) or v < 0:
                raise ValidationError(
                    f"Hybrid weight '{name}' must be a non-negative number, got {v!r}",
                    field=name,
                )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "HybridWeights":
        if not raw:
            return cls()
        values: dict[str, float] = {}
        for name, keys in cls._ALIASES.items():
            for k in keys:
                if k in raw and raw[k] is not None:
                    try:
                        values[name] = float(raw[k])
                    except (TypeError, ValueError):
                        raise ValidationError(
                            f"Hybrid weight '{k}' is not a number: {raw[k]!r}", field=k
                        ) from None
                    break
        return cls(**values)

    def to_dict(self) -> dict:
        return {
            "loadWeight": self.load,
            "capacityWeight": self.capacity,
            "priorityWeight": self.priority,
            "typeWeight": self.product_type,
        }


@dataclass(frozen=True)
class DistributionParams:
    algorithm: Algorithm = Algorithm.BALANCED
    weights: HybridWeights | None = None

    @classmethod
    def parse(cls, algorithm: Any, weights: Mapping[str, Any] | None = None) -> "DistributionParams":
        algo = parse_algorithm(algorithm)
        if algo is Algorithm.HYBRID:
            return cls(algo, HybridWeights.from_mapping(weights))
        return cls(algo, None)

    @property
    def hybrid_weights(self) -> HybridWeights:
        return self.weights or HybridWeights()


# ---------- Plan ----------

@dataclass(frozen=True)
class PlannedAssignment:
    order_id: int
    machine_id: str
    position: int


@dataclass
class MachinePlan:
    """Per-machine running state of a planning run."""

    machine: Machine
    current_load: float = 0.0
    current_count: int = 0
    added_load: float = 0.0
    proposed: list[ProductionOrder] = field(default_factory=list)
    product_types: dict[str, int] = field(default_factory=dict)

    @property
    def proposed_load(self) -> float:
        return self.current_load + self.added_load

    @property
    def order_count(self) -> int:
        return self.current_count + len(self.proposed)

    def has_product_type(self, product_type: str | None) -> bool:
        return bool(product_type) and self.product_types.get(product_type, 0) > 0

    def add(self, order: ProductionOrder) -> int:
        """Append ``order`` to the running queue; returns its queue position."""
        position = self.order_count
        self.proposed.append(order)
        self.added_load += order.remaining_quantity
        if order.product_type:
            self.product_types[order.product_type] = self.product_types.get(order.product_type, 0) + 1
        return position


@dataclass
class DistributionPlan:
    params: DistributionParams
    assignments: list[PlannedAssignment] = field(default_factory=list)
    machines: list[MachinePlan] = field(default_factory=list)
    skipped_order_ids: list[int] = field(default_factory=list)
    total_orders: int = 0

    @property
    def assigned_mass(self) -> float:
        return sum(o.remaining_quantity for m in self.machines for o in m.proposed)

    def by_machine(self) -> dict[str, list[PlannedAssignment]]:
        out: dict[str, list[PlannedAssignment]] = {}
        for a in self.assignments:
            out.setdefault(a.machine_id, []).append(a)
        return out
