# src/mq_planner/api/routers/machines.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...analysis.bottlenecks import scan_bottlenecks
from ...db import get_db
from ...service import DistributionService
from ..cache import cache

router = APIRouter(prefix="/machines", tags=["machines"])


@router.get("/capacity-stats", summary="Per-machine load, utilisation and capacity status")
def capacity_stats(db: Session = Depends(get_db)):
    data = cache.get_or_compute(
        "capacity-stats",
        (),
        lambda: [s.to_dict() for s in DistributionService(db).capacity_stats()],
    )
    return {"data": data}


@router.get("/bottlenecks", summary="Machines at or above a utilisation threshold")
def bottlenecks(threshold: float = Query(90.0, ge=0), db: Session = Depends(get_db)):
    summary, hot = scan_bottlenecks(DistributionService(db).capacity_stats(), util_threshold=threshold)
    return {
        "summary": summary,
        "machines": [
            {"machineId": mid, "utilizationPercentage": pct, "capacityStatus": status}
            for mid, pct, status in hot
        ],
    }
