# src/mq_planner/planning/scoring.py
"""Machine-suitability scores, one per distribution algorithm.

Every scorer maps (order, machine running state, context) to a tuple; the
planner picks the largest tuple and breaks exact ties by ascending machine id.
Scorers never raise on missing data: unknown capacity or rate degrade to
neutral values.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Sequence

from .types import (
    MAX_PRIORITY_RANK,
    Algorithm,
    DistributionParams,
    MachinePlan,
    ProductionOrder,
)

Score = tuple


@dataclass(frozen=True)
class ScoringContext:
    any_fits: bool = True
    largest_capacity: float = 0.0
    max_backlog_hours: float = 0.0


def projected_load(state: MachinePlan, order: ProductionOrder) -> float:
    return state.proposed_load + order.remaining_quantity


def projected_ratio(state: MachinePlan, order: ProductionOrder) -> float:
    # unknown capacity counts as 1 kg so the machine sorts last instead of first
    cap = state.machine.max_capacity or 0.0
    proj = projected_load(state, order)
    return proj / cap if cap > 0 else proj


def fits(state: MachinePlan, order: ProductionOrder) -> bool:
    cap = state.machine.max_capacity or 0.0
    return cap > 0 and projected_load(state, order) <= cap


def backlog_hours(state: MachinePlan) -> float | None:
    rate = state.machine.production_rate or 0.0
    if rate <= 0:
        return None
    return state.proposed_load / rate


def build_context(order: ProductionOrder, states: Sequence[MachinePlan]) -> ScoringContext:
    backlogs = [b for b in (backlog_hours(s) for s in states) if b is not None]
    return ScoringContext(
        any_fits=any(fits(s, order) for s in states),
        largest_capacity=max((s.machine.max_capacity or 0.0 for s in states), default=0.0),
        max_backlog_hours=max(backlogs, default=0.0),
    )


# ---------- Scorers ----------

def balanced_score(order: ProductionOrder, state: MachinePlan, ctx: ScoringContext) -> Score:
    # fewest orders first; a machine with room wins between equal counts
    return (-state.order_count, 1 if fits(state, order) else 0)


def load_based_score(order: ProductionOrder, state: MachinePlan, ctx: ScoringContext) -> Score:
    return (-projected_ratio(state, order), -projected_load(state, order))


def priority_score(order: ProductionOrder, state: MachinePlan, ctx: ScoringContext) -> Score:
    # same machine choice as load-based; the difference is the order sequence
    return load_based_score(order, state, ctx)


def product_type_score(order: ProductionOrder, state: MachinePlan, ctx: ScoringContext) -> Score:
    grouped = state.has_product_type(order.product_type) and (fits(state, order) or not ctx.any_fits)
    return (1 if grouped else 0,) + load_based_score(order, state, ctx)


def hybrid_components(order: ProductionOrder, state: MachinePlan, ctx: ScoringContext) -> dict[str, float]:
    """The four hybrid dimensions, each nominally in [0, 1].

    load       1 - projected utilisation (goes negative past full capacity)
    capacity   absolute headroom after the order, relative to the largest machine
    priority   rank / 3 times readiness, so not the bare rank: readiness is
               1 - backlog hours / the largest backlog among the candidates,
               1 when no candidate has a backlog, 0 when the rate is unknown
    type       1 when the machine already carries the product type
    """
    cap = state.machine.max_capacity or 0.0
    proj = projected_load(state, order)

    if ctx.largest_capacity > 0:
        capacity = max(0.0, cap - proj) / ctx.largest_capacity
    else:
        capacity = 0.0

    backlog = backlog_hours(state)
    if backlog is None:
        readiness = 0.0
    elif ctx.max_backlog_hours <= 0:
        readiness = 1.0
    else:
        readiness = 1.0 - backlog / ctx.max_backlog_hours

    return {
        "load": 1.0 - projected_ratio(state, order),
        "capacity": capacity,
        "priority": (order.priority.rank / MAX_PRIORITY_RANK) * readiness,
        "type": 1.0 if state.has_product_type(order.product_type) else 0.0,
    }


def make_hybrid_score(params: DistributionParams) -> Callable[[ProductionOrder, MachinePlan, ScoringContext], Score]:
    w = params.hybrid_weights

    def hybrid_score(order: ProductionOrder, state: MachinePlan, ctx: ScoringContext) -> Score:
        c = hybrid_components(order, state, ctx)
        composite = (
            w.load * c["load"]
            + w.capacity * c["capacity"]
            + w.priority * c["priority"]
            + w.product_type * c["type"]
        )
        return (composite, -projected_load(state, order))

    return hybrid_score


def scorer_for(params: DistributionParams) -> Callable[[ProductionOrder, MachinePlan, ScoringContext], Score]:
    algo = params.algorithm
    if algo is Algorithm.BALANCED:
        return balanced_score
    if algo is Algorithm.LOAD_BASED:
        return load_based_score
    if algo is Algorithm.PRIORITY:
        return priority_score
    if algo is Algorithm.PRODUCT_TYPE:
        return product_type_score
    if algo is Algorithm.HYBRID:
        return make_hybrid_score(params)
    raise ValueError(f"no scorer for {algo!r}")


# ---------- Order sequence ----------

def _creation_key(order: ProductionOrder):
    # orders without a timestamp go last, id keeps the sequence total
    ts = order.created_at
    return (ts is None, ts or datetime.min, order.id)


def order_sequence(orders: Iterable[ProductionOrder], algorithm: Algorithm) -> list[ProductionOrder]:
    seq = sorted(orders, key=_creation_key)
    if algorithm in (Algorithm.PRIORITY, Algorithm.HYBRID):
        seq.sort(key=lambda o: o.priority.rank, reverse=True)
    return seq


def rank_machines(
    order: ProductionOrder,
    states: Sequence[MachinePlan],
    params: DistributionParams,
    scorer: Callable[[ProductionOrder, MachinePlan, ScoringContext], Score] | None = None,
) -> list[MachinePlan]:
    """Eligible (active) machines, best first."""
    eligible = [s for s in states if s.machine.is_active]
    if not eligible:
        return []
    scorer = scorer or scorer_for(params)
    ctx = build_context(order, eligible)
    ranked = sorted(eligible, key=lambda s: s.machine.id)
    # stable under reverse: equal scores keep ascending machine id
    ranked.sort(key=lambda s: scorer(order, s, ctx), reverse=True)
    return ranked
