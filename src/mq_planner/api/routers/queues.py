# src/mq_planner/api/routers/queues.py
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...db import get_db
from ...planning.types import DistributionParams
from ...schemas import AssignIn, ReorderIn, SmartDistributeIn
from ...service import DistributionService
from ..cache import cache

router = APIRouter(prefix="/machine-queues", tags=["machine-queues"])
logger = logging.getLogger("mq_planner.distribution")


def _params_key(params: DistributionParams) -> tuple:
    w = params.weights
    return (params.algorithm.value,) + ((w.load, w.capacity, w.priority, w.product_type) if w else ())


@router.get("", summary="All queue entries, by machine and position")
def list_queues(db: Session = Depends(get_db)):
    return {"data": DistributionService(db).list_queues()}


@router.get("/distribution-preview", summary="Dry run of a distribution algorithm")
def distribution_preview(
    algorithm: str = Query("balanced"),
    loadWeight: float | None = Query(None),
    capacityWeight: float | None = Query(None),
    priorityWeight: float | None = Query(None),
    typeWeight: float | None = Query(None),
    db: Session = Depends(get_db),
):
    params = DistributionParams.parse(
        algorithm,
        {
            "loadWeight": loadWeight,
            "capacityWeight": capacityWeight,
            "priorityWeight": priorityWeight,
            "typeWeight": typeWeight,
        },
    )
    data = cache.get_or_compute(
        "distribution-preview",
        _params_key(params),
        lambda: DistributionService(db).preview(params),
    )
    return {"data": data}


@router.post("/smart-distribute", summary="Plan and commit a distribution")
async def smart_distribute(body: SmartDistributeIn, request: Request, db: Session = Depends(get_db)):
    params = DistributionParams.parse(body.algorithm, body.params.model_dump(exclude_none=True))
    svc = DistributionService(db)
    plan = await run_in_threadpool(svc.plan, params)
    # nothing is written before this point, so a dropped client costs nothing;
    # apply appends at the current tail, so queue edits made meanwhile keep their place
    if await request.is_disconnected():
        logger.info("distribution[%s]: client went away before commit", params.algorithm.value)
        return JSONResponse(status_code=499, content={"detail": {"msg": "client disconnected", "code": "cancelled"}})
    result = await run_in_threadpool(svc.apply_plan, plan, body.atomic, body.assignedBy)
    cache.invalidate()
    return {"data": result}


@router.get("/suggest", summary="Load-based machine suggestion per unassigned order")
def suggest(db: Session = Depends(get_db)):
    data = cache.get_or_compute("suggest", (), lambda: DistributionService(db).suggest())
    return {"data": data}


@router.post("/assign", summary="Put a production order on a machine queue")
def assign(body: AssignIn, db: Session = Depends(get_db)):
    entry = DistributionService(db).assign_to_queue(
        body.productionOrderId, body.machineId, body.position, assigned_by=body.assignedBy
    )
    cache.invalidate()
    return {"data": entry}


@router.put("/reorder", summary="Move a queue entry within its machine queue")
def reorder(body: ReorderIn, db: Session = Depends(get_db)):
    DistributionService(db).reorder_queue(body.queueId, body.newPosition)
    cache.invalidate()
    return {"status": "ok"}


@router.delete("/{queue_id}", summary="Remove a queue entry")
def remove(queue_id: int, db: Session = Depends(get_db)):
    DistributionService(db).remove_from_queue(queue_id)
    cache.invalidate()
    return {"status": "ok"}
