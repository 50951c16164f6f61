# src/mq_planner/queue_store.py
"""Persisted per-machine queues.

Positions on a machine are always 0..n-1 with no gaps. The store never
commits: the caller owns the transaction (see ``queue_write``).
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db.models import MachineQueueEntry, MachineRecord, ProductionOrderRecord
from .errors import (
    DistributionError,
    DuplicateAssignmentError,
    InvalidPositionError,
    NotFoundError,
    ValidationError,
)
from .planning.types import PlannedAssignment

logger = logging.getLogger("mq_planner.queue")

CLOSED_ORDER_STATUSES = {"completed", "cancelled"}

# serializes queue mutations of this process, held until commit
_WRITE_LOCK = threading.RLock()


@contextmanager
def queue_write(db: Session) -> Iterator[Session]:
    """Serialized write unit: commit on success, rollback on any error."""
    with _WRITE_LOCK:
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise


@dataclass
class ApplyItemResult:
    order_id: int
    machine_id: str
    position: int
    ok: bool
    entry_id: int | None = None
    code: str | None = None
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "machineId": self.machine_id,
            "position": self.position,
            "ok": self.ok,
            "entryId": self.entry_id,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ApplyResult:
    items: list[ApplyItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ApplyItemResult]:
        return [i for i in self.items if i.ok]

    @property
    def failed(self) -> list[ApplyItemResult]:
        return [i for i in self.items if not i.ok]


def _check_position(value, field_name: str = "position") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPositionError(f"{field_name} must be an integer, got {value!r}", field=field_name)
    return value


class QueueStore:
    def __init__(self, db: Session):
        self.db = db

    # ---------- reads ----------

    def list_machine(self, machine_id: str) -> list[MachineQueueEntry]:
        return (
            self.db.query(MachineQueueEntry)
            .filter(MachineQueueEntry.machine_id == machine_id)
            .order_by(MachineQueueEntry.queue_position.asc(), MachineQueueEntry.id.asc())
            .all()
        )

    def list_all(self) -> list[MachineQueueEntry]:
        return (
            self.db.query(MachineQueueEntry)
            .order_by(
                MachineQueueEntry.machine_id.asc(),
                MachineQueueEntry.queue_position.asc(),
                MachineQueueEntry.id.asc(),
            )
            .all()
        )

    def get(self, entry_id: int) -> MachineQueueEntry:
        entry = self.db.get(MachineQueueEntry, entry_id)
        if entry is None:
            raise NotFoundError(f"Queue entry {entry_id} not found", entry_id=entry_id)
        return entry

    def find_by_order(self, order_id: int) -> MachineQueueEntry | None:
        return (
            self.db.query(MachineQueueEntry)
            .filter(MachineQueueEntry.production_order_id == order_id)
            .one_or_none()
        )

    def queue_length(self, machine_id: str) -> int:
        return int(
            self.db.query(func.count(MachineQueueEntry.id))
            .filter(MachineQueueEntry.machine_id == machine_id)
            .scalar()
            or 0
        )

    # ---------- writes ----------

    def _shift(self, machine_id: str, lo: int, hi: int | None, delta: int) -> None:
        cond = [MachineQueueEntry.machine_id == machine_id, MachineQueueEntry.queue_position >= lo]
        if hi is not None:
            cond.append(MachineQueueEntry.queue_position <= hi)
        self.db.execute(
            update(MachineQueueEntry)
            .where(*cond)
            .values(queue_position=MachineQueueEntry.queue_position + delta)
            .execution_options(synchronize_session="fetch")
        )

    def assign(
        self,
        order_id: int,
        machine_id: str,
        position: int | None = None,
        assigned_by: str | None = None,
    ) -> MachineQueueEntry:
        machine = self.db.get(MachineRecord, machine_id)
        if machine is None:
            raise NotFoundError(f"Machine {machine_id} not found", machine_id=machine_id)
        order = self.db.get(ProductionOrderRecord, order_id)
        if order is None:
            raise NotFoundError(f"Production order {order_id} not found", order_id=order_id)
        if (order.status or "").lower() in CLOSED_ORDER_STATUSES:
            raise ValidationError(
                f"Production order {order_id} is {order.status} and cannot be queued",
                order_id=order_id,
                status=order.status,
            )

        existing = self.find_by_order(order_id)
        if existing is not None:
            raise DuplicateAssignmentError(
                f"Production order {order_id} is already queued on machine {existing.machine_id}",
                order_id=order_id,
                machine_id=existing.machine_id,
                entry_id=existing.id,
            )

        length = self.queue_length(machine_id)
        if position is None:
            position = length
        position = _check_position(position)
        if position < 0 or position > length:
            raise InvalidPositionError(
                f"Position {position} is outside 0..{length} for machine {machine_id}",
                machine_id=machine_id,
                position=position,
                queue_length=length,
            )

        entry = MachineQueueEntry(
            machine_id=machine_id,
            production_order_id=order_id,
            queue_position=position,
            assigned_by=assigned_by,
        )
        try:
            with self.db.begin_nested():
                if position < length:
                    self._shift(machine_id, position, None, +1)
                self.db.add(entry)
        except IntegrityError:
            # a concurrent writer queued the same order first
            raise DuplicateAssignmentError(
                f"Production order {order_id} is already queued",
                order_id=order_id,
                machine_id=machine_id,
            ) from None
        logger.info("queue: order %s -> %s @%d (by=%s)", order_id, machine_id, position, assigned_by or "-")
        return entry

    def reorder(self, entry_id: int, new_position: int) -> MachineQueueEntry:
        entry = self.get(entry_id)
        new_position = _check_position(new_position, "new_position")
        length = self.queue_length(entry.machine_id)
        if new_position < 0 or new_position >= length:
            raise InvalidPositionError(
                f"Position {new_position} is outside 0..{length - 1} for machine {entry.machine_id}",
                entry_id=entry_id,
                machine_id=entry.machine_id,
                position=new_position,
                queue_length=length,
            )
        old = entry.queue_position
        if new_position == old:
            return entry
        with self.db.begin_nested():
            if new_position < old:
                self._shift(entry.machine_id, new_position, old - 1, +1)
            else:
                self._shift(entry.machine_id, old + 1, new_position, -1)
            entry.queue_position = new_position
        logger.info("queue: entry %s on %s moved %d -> %d", entry_id, entry.machine_id, old, new_position)
        return entry

    def remove(self, entry_id: int) -> None:
        entry = self.get(entry_id)
        machine_id, old = entry.machine_id, entry.queue_position
        with self.db.begin_nested():
            self.db.delete(entry)
            self.db.flush()
            self._shift(machine_id, old + 1, None, -1)
        logger.info("queue: entry %s removed from %s @%d", entry_id, machine_id, old)

    def renumber(self, machine_id: str) -> int:
        """Rewrite positions of ``machine_id`` as 0..n-1 in current order."""
        changed = 0
        for i, e in enumerate(self.list_machine(machine_id)):
            if e.queue_position != i:
                e.queue_position = i
                changed += 1
        self.db.flush()
        return changed

    def apply(
        self,
        assignments: Iterable[PlannedAssignment],
        assigned_by: str | None = None,
    ) -> ApplyResult:
        """Assign every planned pair, each in its own savepoint.

        Planned positions come from a snapshot that may be stale by now, so
        each order is appended at the machine's current tail in the order
        given; entries queued in the meantime keep their place. The result
        carries the position actually taken. A failing item leaves no trace
        and is reported; the caller decides whether to commit the successful
        ones or roll everything back.
        """
        result = ApplyResult()
        for a in assignments:
            try:
                with self.db.begin_nested():
                    entry = self.assign(a.order_id, a.machine_id, None, assigned_by=assigned_by)
                result.items.append(
                    ApplyItemResult(a.order_id, a.machine_id, entry.queue_position, ok=True, entry_id=entry.id)
                )
                if entry.queue_position != a.position:
                    logger.info(
                        "queue: order %s planned @%d on %s, appended @%d",
                        a.order_id, a.position, a.machine_id, entry.queue_position,
                    )
            except DistributionError as e:
                logger.warning("queue: apply item order=%s machine=%s failed: %s", a.order_id, a.machine_id, e.msg)
                result.items.append(
                    ApplyItemResult(a.order_id, a.machine_id, a.position, ok=False, code=e.code, message=e.msg)
                )
        return result
