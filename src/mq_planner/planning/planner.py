# src/mq_planner/planning/planner.py
"""Greedy order-at-a-time distribution of production orders over machine queues.

Each order is committed to the best-ranked machine before the next order is
ranked, and the committed load feeds into the next ranking. This is not a
global optimum; a global solver would belong under its own algorithm id.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from .capacity import queue_load
from .scoring import order_sequence, rank_machines, scorer_for
from .types import (
    DistributionParams,
    DistributionPlan,
    Machine,
    MachinePlan,
    PlannedAssignment,
    ProductionOrder,
)

logger = logging.getLogger("mq_planner.distribution")


@dataclass(frozen=True)
class PlanningSnapshot:
    """Point-in-time view of machines, unassigned orders and current queues."""

    machines: Sequence[Machine]
    unassigned: Sequence[ProductionOrder]
    queued: Mapping[str, Sequence[ProductionOrder]] = field(default_factory=dict)

    @property
    def active_machines(self) -> list[Machine]:
        return sorted((m for m in self.machines if m.is_active), key=lambda m: m.id)


def initial_states(
    machines: Iterable[Machine],
    queued: Mapping[str, Sequence[ProductionOrder]] | None = None,
) -> list[MachinePlan]:
    queued = queued or {}
    states: list[MachinePlan] = []
    for m in sorted((m for m in machines if m.is_active), key=lambda m: m.id):
        current = list(queued.get(m.id, ()))
        types: dict[str, int] = {}
        for o in current:
            if o.product_type:
                types[o.product_type] = types.get(o.product_type, 0) + 1
        states.append(
            MachinePlan(
                machine=m,
                current_load=queue_load(current),
                current_count=len(current),
                product_types=types,
            )
        )
    return states


def plan_distribution(snapshot: PlanningSnapshot, params: DistributionParams) -> DistributionPlan:
    states = initial_states(snapshot.active_machines, snapshot.queued)

    already_queued = {o.id for orders in snapshot.queued.values() for o in orders}
    candidates: list[ProductionOrder] = []
    skipped: list[int] = []
    seen: set[int] = set()
    for o in snapshot.unassigned:
        if o.id in seen:
            continue
        seen.add(o.id)
        if o.id in already_queued or o.remaining_quantity <= 0:
            skipped.append(o.id)
            continue
        candidates.append(o)

    plan = DistributionPlan(
        params=params,
        machines=states,
        skipped_order_ids=skipped,
        total_orders=len(seen),
    )
    if not states or not candidates:
        logger.info(
            "distribution[%s]: nothing to plan (machines=%d, orders=%d)",
            params.algorithm.value, len(states), len(candidates),
        )
        return plan

    scorer = scorer_for(params)
    for order in order_sequence(candidates, params.algorithm):
        ranked = rank_machines(order, states, params, scorer=scorer)
        best = ranked[0]
        position = best.add(order)
        plan.assignments.append(PlannedAssignment(order.id, best.machine.id, position))

    logger.info(
        "distribution[%s]: planned %d orders on %d machines (skipped=%d, mass=%.1f)",
        params.algorithm.value, len(plan.assignments), len(states), len(skipped), plan.assigned_mass,
    )
    return plan
