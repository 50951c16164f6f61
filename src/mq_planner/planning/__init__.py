"""Distribution engine: capacity model, scorers, greedy planner, preview.

Pure computation over in-memory snapshots; nothing in this package touches
the database.
"""
from .capacity import capacity_frame, capacity_status, compute_capacity, utilization_percentage
from .planner import PlanningSnapshot, plan_distribution
from .preview import build_preview, preview
from .scoring import rank_machines
from .types import (
    Algorithm,
    CapacitySnapshot,
    CapacityStatus,
    DistributionParams,
    DistributionPlan,
    HybridWeights,
    Machine,
    MachineStatus,
    PlannedAssignment,
    Priority,
    ProductionOrder,
    coerce_priority,
    coerce_urgent_flag,
)

__all__ = [
    "Algorithm",
    "CapacitySnapshot",
    "CapacityStatus",
    "DistributionParams",
    "DistributionPlan",
    "HybridWeights",
    "Machine",
    "MachineStatus",
    "PlannedAssignment",
    "PlanningSnapshot",
    "Priority",
    "ProductionOrder",
    "build_preview",
    "capacity_frame",
    "capacity_status",
    "coerce_priority",
    "coerce_urgent_flag",
    "compute_capacity",
    "plan_distribution",
    "preview",
    "rank_machines",
    "utilization_percentage",
]
