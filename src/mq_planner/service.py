# src/mq_planner/service.py
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .db import get_request_id
from .db.models import MachineQueueEntry, MachineRecord, ProductionOrderRecord
from .planning.capacity import compute_capacity
from .planning.planner import PlanningSnapshot, plan_distribution
from .planning.preview import build_preview
from .planning.types import (
    Algorithm,
    CapacitySnapshot,
    DistributionParams,
    DistributionPlan,
    Machine,
    MachineStatus,
    ProductionOrder,
    coerce_priority,
)
from .queue_store import QueueStore, queue_write

logger = logging.getLogger("mq_planner.distribution")

ELIGIBLE_ORDER_STATUSES = ("pending", "active")
SUGGEST_PARAMS = DistributionParams(Algorithm.LOAD_BASED)


def machine_from_record(r: MachineRecord) -> Machine:
    try:
        status = MachineStatus(str(r.status or "").strip().lower())
    except ValueError:
        logger.warning("machine %s has unknown status %r, treating as down", r.id, r.status)
        status = MachineStatus.DOWN
    return Machine(
        id=r.id,
        name=r.name,
        name_ar=r.name_ar,
        status=status,
        section=r.section_id or r.type,
        production_rate=float(r.production_rate_kg_h or 0.0),
        max_capacity=float(r.max_capacity_kg or 0.0),
    )


def order_from_record(r: ProductionOrderRecord) -> ProductionOrder:
    return ProductionOrder(
        id=int(r.id),
        number=r.production_order_number,
        quantity_required=float(r.quantity_kg or 0.0),
        produced_quantity=float(r.produced_quantity_kg or 0.0),
        priority=coerce_priority(r.priority),
        product_type=r.product_type,
        customer=r.customer_name,
        created_at=r.created_at,
        status=r.status,
    )


def queue_entry_payload(e: MachineQueueEntry) -> dict:
    m, o = e.machine, e.order
    return {
        "queue_id": e.id,
        "machine_id": e.machine_id,
        "machine_name": m.name if m else None,
        "machine_name_ar": m.name_ar if m else None,
        "machine_status": m.status if m else None,
        "production_order_id": e.production_order_id,
        "production_order_number": o.production_order_number if o else None,
        "quantity_kg": float(o.quantity_kg) if o else None,
        "remaining_kg": order_from_record(o).remaining_quantity if o else None,
        "priority": coerce_priority(o.priority).value if o else None,
        "product_type": o.product_type if o else None,
        "customer_name": o.customer_name if o else None,
        "queue_position": e.queue_position,
        "assigned_at": str(e.assigned_at) if e.assigned_at is not None else None,
        "assigned_by": e.assigned_by,
    }


class DistributionService:
    """Preview / apply / suggest / manual queue edits over one DB session."""

    def __init__(self, db: Session):
        self.db = db
        self.store = QueueStore(db)

    # ---------- directory reads ----------

    def load_machines(self) -> list[Machine]:
        rows = self.db.query(MachineRecord).order_by(MachineRecord.id.asc()).all()
        return [machine_from_record(r) for r in rows]

    def load_queued(self) -> dict[str, list[ProductionOrder]]:
        out: dict[str, list[ProductionOrder]] = {}
        for e in self.store.list_all():
            if e.order is None:
                continue
            out.setdefault(e.machine_id, []).append(order_from_record(e.order))
        return out

    def load_unassigned(self) -> list[ProductionOrder]:
        rows = (
            self.db.query(ProductionOrderRecord)
            .outerjoin(MachineQueueEntry, MachineQueueEntry.production_order_id == ProductionOrderRecord.id)
            .filter(MachineQueueEntry.id.is_(None))
            .filter(ProductionOrderRecord.status.in_(ELIGIBLE_ORDER_STATUSES))
            .order_by(ProductionOrderRecord.created_at.asc(), ProductionOrderRecord.id.asc())
            .all()
        )
        return [order_from_record(r) for r in rows]

    def snapshot(self) -> PlanningSnapshot:
        return PlanningSnapshot(
            machines=self.load_machines(),
            unassigned=self.load_unassigned(),
            queued=self.load_queued(),
        )

    # ---------- read operations ----------

    def capacity_stats(self) -> list[CapacitySnapshot]:
        queued = self.load_queued()
        return [compute_capacity(m, queued.get(m.id, ())) for m in self.load_machines()]

    def plan(self, params: DistributionParams) -> DistributionPlan:
        return plan_distribution(self.snapshot(), params)

    def preview(self, params: DistributionParams) -> dict:
        return build_preview(self.plan(params))

    def suggest(self) -> list[dict]:
        """Load-based machine suggestion for every unassigned order."""
        plan = self.plan(SUGGEST_PARAMS)
        return [
            {
                "production_order_id": a.order_id,
                "suggested_machine_id": a.machine_id,
                "current_queue_size": a.position,
            }
            for a in plan.assignments
        ]

    def list_queues(self) -> list[dict]:
        return [queue_entry_payload(e) for e in self.store.list_all()]

    # ---------- write operations ----------

    def apply_plan(self, plan: DistributionPlan, atomic: bool = False, assigned_by: str | None = None) -> dict:
        with queue_write(self.db) as db:
            result = self.store.apply(plan.assignments, assigned_by=assigned_by)
            rolled_back = atomic and bool(result.failed)
            if rolled_back:
                # the trailing commit in queue_write is then a no-op
                db.rollback()

        assigned = 0 if rolled_back else len(result.succeeded)
        logger.info(
            "[%s] distribution[%s]: applied %d/%d (failed=%d, atomic=%s, rolled_back=%s)",
            get_request_id(), plan.params.algorithm.value, assigned, len(plan.assignments), len(result.failed),
            atomic, rolled_back,
        )
        return {
            "success": not result.failed,
            "algorithm": plan.params.algorithm.value,
            "assignedCount": assigned,
            "rolledBack": rolled_back,
            "failures": [i.to_dict() for i in result.failed],
        }

    def apply(self, params: DistributionParams, atomic: bool = False, assigned_by: str | None = None) -> dict:
        """Plan against the current queues and apply, both under the write lock."""
        with queue_write(self.db):
            plan = self.plan(params)
            # reentrant: apply_plan commits or rolls back its own unit
            return self.apply_plan(plan, atomic=atomic, assigned_by=assigned_by)

    def assign_to_queue(
        self,
        order_id: int,
        machine_id: str,
        position: int | None = None,
        assigned_by: str | None = None,
    ) -> dict:
        with queue_write(self.db):
            entry = self.store.assign(order_id, machine_id, position, assigned_by=assigned_by)
        self.db.refresh(entry)
        return queue_entry_payload(entry)

    def reorder_queue(self, entry_id: int, new_position: int) -> None:
        with queue_write(self.db):
            self.store.reorder(entry_id, new_position)

    def remove_from_queue(self, entry_id: int) -> None:
        with queue_write(self.db):
            self.store.remove(entry_id)
