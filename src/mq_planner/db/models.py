# src/mq_planner/db/models.py
from datetime import datetime

from sqlalchemy import (
    String, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func
from . import Base

# ---------- Directories (owned by the machine/order management side) ----------
class MachineRecord(Base):
    __tablename__ = "machines"
    id: Mapped[str] = mapped_column(String(20), primary_key=True)  # M001, M002, ...
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_ar: Mapped[str | None] = mapped_column(String(100), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # extruder|printer|cutter|quality_check
    section_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|maintenance|down
    production_rate_kg_h: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_capacity_kg: Mapped[float | None] = mapped_column(Float, nullable=True)

    queue = relationship(
        "MachineQueueEntry",
        back_populates="machine",
        order_by="MachineQueueEntry.queue_position",
    )


class ProductionOrderRecord(Base):
    __tablename__ = "production_orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    production_order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)  # sales order linkage
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    product_type: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    produced_quantity_kg: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")  # low|normal|high|urgent
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")  # pending|active|completed|cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------- Machine queues ----------
class MachineQueueEntry(Base):
    __tablename__ = "machine_queues"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    machine_id: Mapped[str] = mapped_column(String(20), ForeignKey("machines.id"), nullable=False)
    production_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False
    )
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    assigned_by: Mapped[str | None] = mapped_column(String, nullable=True)

    machine = relationship("MachineRecord", back_populates="queue")
    order = relationship("ProductionOrderRecord")

    __table_args__ = (
        # an order sits in at most one queue
        UniqueConstraint("production_order_id", name="uq_queue_order"),
        Index("ix_queue_machine_pos", "machine_id", "queue_position"),
    )


__all__ = ["MachineRecord", "ProductionOrderRecord", "MachineQueueEntry"]
