# src/mq_planner/planning/preview.py
from __future__ import annotations

from .capacity import capacity_status, utilization_percentage
from .planner import PlanningSnapshot, plan_distribution
from .types import DistributionParams, DistributionPlan, MachinePlan


def plan_efficiency(plan: DistributionPlan) -> float:
    """(existing + proposed mass) / total active capacity * 100, clamped to [0, 100].

    A rough post-plan utilisation indicator, not an optimality bound.
    """
    total_cap = sum(max(0.0, s.machine.max_capacity or 0.0) for s in plan.machines)
    if total_cap <= 0:
        return 0.0
    mass = sum(s.proposed_load for s in plan.machines)
    return max(0.0, min(100.0, mass / total_cap * 100.0))


def _machine_entry(state: MachinePlan) -> dict:
    m = state.machine
    cur_pct = utilization_percentage(state.current_load, m.max_capacity)
    new_pct = utilization_percentage(state.proposed_load, m.max_capacity)
    first_pos = state.current_count
    return {
        "machineId": m.id,
        "machineName": m.name,
        "machineNameAr": m.name_ar,
        "maxCapacity": m.max_capacity,
        "productionRate": m.production_rate,
        "currentLoad": round(state.current_load, 2),
        "proposedLoad": round(state.proposed_load, 2),
        "currentUtilization": round(cur_pct, 2),
        "proposedUtilization": round(new_pct, 2),
        "currentCapacityStatus": capacity_status(cur_pct).value,
        "newCapacityStatus": capacity_status(new_pct).value,
        "currentOrderCount": state.current_count,
        "proposedOrders": [
            {
                "id": o.id,
                "productionOrderNumber": o.number,
                "quantity": round(o.remaining_quantity, 2),
                "priority": o.priority.value,
                "productType": o.product_type,
                "position": first_pos + i,
            }
            for i, o in enumerate(state.proposed)
        ],
    }


def build_preview(plan: DistributionPlan) -> dict:
    return {
        "algorithm": plan.params.algorithm.value,
        "totalOrders": plan.total_orders,
        "machineCount": len(plan.machines),
        "efficiency": round(plan_efficiency(plan), 2),
        "assignedCount": len(plan.assignments),
        "skippedOrderIds": list(plan.skipped_order_ids),
        "perMachine": [_machine_entry(s) for s in plan.machines],
    }


def preview(snapshot: PlanningSnapshot, params: DistributionParams) -> dict:
    """Dry run of the planner over ``snapshot``; nothing is written."""
    return build_preview(plan_distribution(snapshot, params))
