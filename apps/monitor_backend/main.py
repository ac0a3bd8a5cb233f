from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI

from apps.monitor_backend.models import MONITOR_TABLES, MonitorUser
from apps.monitor_backend.routers.dashboard import router as dashboard_router
from apps.monitor_backend.routers.health import router as health_router
from apps.monitor_backend.routers.metrics import router as metrics_router
from apps.monitor_backend.routers.oauth import router as oauth_router
from apps.monitor_backend.routers.receiver import router as receiver_router
from apps.monitor_backend.schema_validate import ensure_default_allowed_values
from common_core.db import Base, MonitorSessionLocal, monitor_engine
from common_core.guardrails import validate_monitor_secrets
from common_core.logging_setup import configure_logging
from common_core.passwords import hash_secret
from common_core.request_id import RequestIdMiddleware

log = logging.getLogger("overwatch.monitor")

app = FastAPI(title="Overwatch Monitor Backend")
app.add_middleware(RequestIdMiddleware)

app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(oauth_router)
app.include_router(receiver_router)
app.include_router(dashboard_router)


def bootstrap_admin() -> None:
    """Create the initial monitor admin if no user exists yet."""
    username = os.environ.get("MONITOR_BOOTSTRAP_ADMIN_USERNAME")
    password = os.environ.get("MONITOR_BOOTSTRAP_ADMIN_PASSWORD")
    if not username or not password:
        return

    db = MonitorSessionLocal()
    try:
        if db.query(MonitorUser).count() == 0:
            log.info("bootstrapping_monitor_admin", extra={"component": "monitor_backend"})
            db.add(
                MonitorUser(
                    username=username,
                    password_hash=hash_secret(password),
                    roles="admin,site_reporter",
                    created_at_utc=datetime.now(timezone.utc).replace(tzinfo=None),
                )
            )
            db.commit()
    except Exception as e:
        log.error("bootstrap_failed", extra={"err": str(e)})
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def startup() -> None:
    configure_logging(component="monitor_backend")
    validate_monitor_secrets()
    # alembic is preferred for prod; this covers fresh dev databases
    Base.metadata.create_all(monitor_engine, tables=MONITOR_TABLES)
    db = MonitorSessionLocal()
    try:
        ensure_default_allowed_values(db)
    finally:
        db.close()
    bootstrap_admin()
    log.info("monitor_started", extra={"component": "monitor_backend"})
