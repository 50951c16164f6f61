# === imports ===
from fastapi import FastAPI, HTTPException, Request
import logging
from fastapi.responses import JSONResponse
import os, uuid, traceback

from pydantic import BaseModel

from ..db import SessionLocal, init_db, set_request_id
from ..errors import DistributionError, DuplicateAssignmentError, NotFoundError, ValidationError
from ..export.report import export_excel
from ..ingest.loader import load_excels
from ..planning.types import DistributionParams
from ..schemas import ExportIn
from .cache import cache
from .routers import machines, queues

# ================== App ==================
app = FastAPI(title="Machine Queue Planner API")

app.include_router(queues.router)
app.include_router(machines.router)

_ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    DuplicateAssignmentError: 409,
}


@app.exception_handler(DistributionError)
async def distribution_error_handler(request: Request, exc: DistributionError):
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    return JSONResponse(status_code=status, content={"detail": exc.to_dict()})


# Attach per-request id for DB logs
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    set_request_id(rid)
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


class IngestRequest(BaseModel):
    machines: str | None = None
    orders: str | None = None
    dry_run: bool = False


# ================== Lifespan ==================
@app.on_event("startup")
def _startup():
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logging.getLogger("mq_planner").setLevel(logging.INFO)
    init_db()
    os.makedirs("out", exist_ok=True)


@app.get("/")
def index():
    return {"status": "ok", "service": "mq-planner"}


# ================== Ingest ==================
@app.post("/ingest")
def ingest(req: IngestRequest):
    try:
        with SessionLocal() as s:
            n_machines, n_orders = load_excels(s, req.machines, req.orders, dry_run=req.dry_run)
    except (ValueError, OSError) as e:
        tb = traceback.format_exc(limit=3)
        raise HTTPException(status_code=400, detail={"msg": str(e), "trace": tb})
    if not req.dry_run:
        cache.invalidate()
    return {"status": "ok", "counts": {"machines": n_machines, "orders": n_orders}}


# ================== Export ==================
@app.post("/export")
def export(req: ExportIn):
    params = DistributionParams.parse(req.algorithm, req.params.model_dump(exclude_none=True))
    try:
        with SessionLocal() as s:
            out_xlsx, chart_png = export_excel(s, req.out_path, params)
    except OSError as e:
        tb = traceback.format_exc(limit=3)
        raise HTTPException(status_code=400, detail={"msg": str(e), "trace": tb})
    return {"status": "ok", "xlsx": str(out_xlsx), "chart_png": str(chart_png) if chart_png else None}
