from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from sqlalchemy import select, func
from common_core.db import MonitorSessionLocal
from apps.monitor_backend.models import Event, SystemData, TenantRegistry
router = APIRouter(tags=["metrics"])

@router.get("/metrics", response_class=PlainTextResponse)
def metrics():
    db = MonitorSessionLocal()
    try:
        events = db.execute(select(func.count()).select_from(Event)).scalar_one()
        snapshots = db.execute(select(func.count()).select_from(SystemData)).scalar_one()
        tenants = db.execute(select(func.count()).select_from(TenantRegistry)).scalar_one()
        return (
            f"overwatch_events_total {events}\n"
            f"overwatch_system_data_total {snapshots}\n"
            f"overwatch_tenants {tenants}\n"
        )
    finally:
        db.close()
