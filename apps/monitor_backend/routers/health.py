from __future__ import annotations

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from apps.monitor_backend.schema_validate import load_allowed_values
from common_core.db import MonitorSessionLocal

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
def readyz():
    """Ready once the database answers and every enumerated field has allowed values."""
    db = MonitorSessionLocal()
    try:
        db.execute(text("SELECT 1"))
        configured = load_allowed_values(db)
    finally:
        db.close()
    missing = sorted(f for f, values in configured.items() if not values)
    if missing:
        raise HTTPException(status_code=503, detail={"error": "allowed_values_missing", "fields": missing})
    return {"ok": True}
