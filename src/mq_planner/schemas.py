from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


class MachineIn(BaseModel):
    id: str
    name: str
    name_ar: str | None = None
    type: str | None = None
    section_id: str | None = None
    status: str = "active"
    production_rate_kg_h: float | None = None
    max_capacity_kg: float | None = None


class ProductionOrderIn(BaseModel):
    production_order_number: str
    quantity_kg: float
    produced_quantity_kg: float = 0.0
    priority: str | bool | int | None = None
    product_type: str | None = None
    customer_name: str | None = None
    order_id: int | None = None
    status: str = "pending"
    created_at: datetime | None = None


class HybridParamsIn(BaseModel):
    loadWeight: float | None = None
    capacityWeight: float | None = None
    priorityWeight: float | None = None
    typeWeight: float | None = None


class SmartDistributeIn(BaseModel):
    algorithm: str = "balanced"
    params: HybridParamsIn = Field(default_factory=HybridParamsIn)
    atomic: bool = False
    assignedBy: str | None = None


class AssignIn(BaseModel):
    # strict ints: a float position is malformed, not rounded
    model_config = ConfigDict(strict=True)

    productionOrderId: int
    machineId: str
    position: int | None = None
    assignedBy: str | None = None


class ReorderIn(BaseModel):
    model_config = ConfigDict(strict=True)

    queueId: int
    newPosition: int


class ExportIn(BaseModel):
    out_path: str = "out/distribution_report.xlsx"
    algorithm: str = "balanced"
    params: HybridParamsIn = Field(default_factory=HybridParamsIn)
