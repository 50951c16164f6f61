# src/mq_planner/ingest/loader.py
from __future__ import annotations

from typing import Any, Dict, Set, Tuple

import numpy as np
import pandas as pd
from sqlalchemy.orm import Session

from ..db.models import MachineRecord, ProductionOrderRecord
from ..planning.types import MachineStatus, coerce_priority, coerce_urgent_flag
from ..schemas import MachineIn, ProductionOrderIn

# ===================== Header synonyms (lowercase) =====================

MACH_SYNONYMS: Dict[str, Set[str]] = {
    "id": {"id", "machine_id", "machine id", "machine", "code"},
    "name": {"name", "machine name", "name_en"},
    "name_ar": {"name_ar", "arabic name", "name (ar)"},
    "type": {"type", "machine type", "kind"},
    "section_id": {"section_id", "section", "section id", "workshop"},
    "status": {"status", "state"},
    "production_rate_kg_h": {
        "production_rate_kg_h", "production_rate", "rate", "kg/h", "rate (kg/h)", "capacity_kg_per_hour",
    },
    "max_capacity_kg": {"max_capacity_kg", "max_capacity", "capacity", "capacity (kg)", "capacity_kg"},
}

ORDER_SYNONYMS: Dict[str, Set[str]] = {
    "production_order_number": {
        "production_order_number", "production order", "po number", "po", "number", "order number",
    },
    "order_id": {"order_id", "sales order id", "order id"},
    "customer_name": {"customer_name", "customer", "client"},
    "product_type": {"product_type", "product type", "category", "product category", "item type"},
    "quantity_kg": {"quantity_kg", "quantity", "qty", "qty (kg)", "required_kg"},
    "produced_quantity_kg": {"produced_quantity_kg", "produced", "produced_kg", "produced quantity"},
    "priority": {"priority", "priority level"},
    "urgent_flag": {"urgent", "is_urgent", "urgent_flag"},
    "status": {"status"},
    "created_at": {"created_at", "created", "date", "created date"},
}

# ===================== Helpers =====================

def _read_xlsx(path: str) -> pd.DataFrame:
    return pd.read_excel(path, engine="openpyxl")

def _rename_by_synonyms(df: pd.DataFrame, synonyms: dict[str, Set[str]]) -> pd.DataFrame:
    lower_map = {str(c).strip().lower(): c for c in df.columns}
    rename = {}
    for canon, syns in synonyms.items():
        for s in syns:
            if s in lower_map:
                rename[lower_map[s]] = canon
                break
    return df.rename(columns=rename)

def _clean_text(v: Any) -> str | None:
    if _none_if_nan(v) is None:
        return None
    s = str(v).strip()
    if not s or s.lower() in {"nan", "none", "null"}:
        return None
    return s

def _none_if_nan(v: Any) -> Any:
    if v is None:
        return None
    try:
        if pd.isna(v):
            return None
    except (TypeError, ValueError):
        pass
    # numpy scalars -> python
    return v.item() if isinstance(v, np.generic) else v

# --------------------- Machines ---------------------

def normalize_machines_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, MACH_SYNONYMS)
    if "id" not in df.columns:
        raise ValueError(f"machines: missing required column ['id']. Found: {original_cols}")

    df = df.copy()
    df["id"] = df["id"].map(_clean_text)
    df = df[df["id"].notna()].copy()
    if "name" not in df.columns:
        df["name"] = df["id"]
    df["name"] = df["name"].map(_clean_text).fillna(df["id"])

    # unknown statuses are kept out of planning
    valid = {s.value for s in MachineStatus}
    if "status" in df.columns:
        st = df["status"].map(_clean_text).fillna("active").str.lower()
        df["status"] = st.where(st.isin(valid), MachineStatus.DOWN.value)
    else:
        df["status"] = MachineStatus.ACTIVE.value

    for col in ("production_rate_kg_h", "max_capacity_kg"):
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").clip(lower=0)
        else:
            df[col] = None
    for col in ("name_ar", "type", "section_id"):
        df[col] = df[col].map(_clean_text) if col in df.columns else None

    cols = ["id", "name", "name_ar", "type", "section_id", "status", "production_rate_kg_h", "max_capacity_kg"]
    return df.drop_duplicates("id", keep="last").reindex(columns=cols).reset_index(drop=True)

# --------------------- Production orders ---------------------

def normalize_orders_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    original_cols = list(df.columns)
    df = _rename_by_synonyms(df, ORDER_SYNONYMS)
    missing = [c for c in ("production_order_number", "quantity_kg") if c not in df.columns]
    if missing:
        raise ValueError(f"orders: missing required columns {missing}. Found: {original_cols}")

    df = df.copy()
    df["production_order_number"] = df["production_order_number"].map(_clean_text)
    df["quantity_kg"] = pd.to_numeric(df["quantity_kg"], errors="coerce")
    df = df[df["production_order_number"].notna() & (df["quantity_kg"] > 0)].copy()

    if "produced_quantity_kg" in df.columns:
        df["produced_quantity_kg"] = pd.to_numeric(df["produced_quantity_kg"], errors="coerce").fillna(0.0).clip(lower=0)
    else:
        df["produced_quantity_kg"] = 0.0

    # a priority column holds levels or ranks; urgent/is_urgent hold yes/no flags
    if "priority" in df.columns:
        df["priority"] = df["priority"].map(lambda v: coerce_priority(_none_if_nan(v)).value)
    elif "urgent_flag" in df.columns:
        df["priority"] = df["urgent_flag"].map(lambda v: coerce_urgent_flag(_none_if_nan(v)).value)
    else:
        df["priority"] = "normal"

    df["status"] = (
        df["status"].map(_clean_text).fillna("pending").str.lower() if "status" in df.columns else "pending"
    )
    if "created_at" in df.columns:
        df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce")
    else:
        df["created_at"] = pd.NaT
    if "order_id" in df.columns:
        df["order_id"] = pd.to_numeric(df["order_id"], errors="coerce").astype("Int64")
    else:
        df["order_id"] = None
    for col in ("customer_name", "product_type"):
        df[col] = df[col].map(_clean_text) if col in df.columns else None

    cols = [
        "production_order_number", "order_id", "customer_name", "product_type",
        "quantity_kg", "produced_quantity_kg", "priority", "status", "created_at",
    ]
    return df.drop_duplicates("production_order_number", keep="last").reindex(columns=cols).reset_index(drop=True)

# ===================== Public functions =====================

def upsert_machines(session: Session, mdf: pd.DataFrame) -> int:
    n = 0
    for rec in mdf.to_dict(orient="records"):
        m = MachineIn(**{k: _none_if_nan(v) for k, v in rec.items()})
        row = session.get(MachineRecord, m.id)
        if row is None:
            row = MachineRecord(id=m.id)
            session.add(row)
        for k, v in m.model_dump().items():
            setattr(row, k, v)
        n += 1
    session.flush()
    return n

def upsert_orders(session: Session, odf: pd.DataFrame) -> int:
    n = 0
    for rec in odf.to_dict(orient="records"):
        o = ProductionOrderIn(**{k: _none_if_nan(v) for k, v in rec.items()})
        row = (
            session.query(ProductionOrderRecord)
            .filter(ProductionOrderRecord.production_order_number == o.production_order_number)
            .one_or_none()
        )
        if row is None:
            row = ProductionOrderRecord(production_order_number=o.production_order_number)
            session.add(row)
        values = o.model_dump(exclude={"created_at"} if o.created_at is None else set())
        values["priority"] = coerce_priority(o.priority).value
        for k, v in values.items():
            setattr(row, k, v)
        n += 1
    session.flush()
    return n

def load_excels(session: Session, machines_xlsx: str | None, orders_xlsx: str | None, dry_run: bool = False) -> Tuple[int, int]:
    """Import machines and production orders (or count them with dry_run=True)."""
    mdf = normalize_machines_dataframe(_read_xlsx(machines_xlsx)) if machines_xlsx else None
    odf = normalize_orders_dataframe(_read_xlsx(orders_xlsx)) if orders_xlsx else None
    if dry_run:
        return (len(mdf) if mdf is not None else 0, len(odf) if odf is not None else 0)

    n_m = upsert_machines(session, mdf) if mdf is not None else 0
    n_o = upsert_orders(session, odf) if odf is not None else 0
    session.commit()
    return n_m, n_o
