from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from sqlalchemy import text

from apps.site_agent import queue_store
from apps.site_agent.capture import EventCapture, install_log_capture
from apps.site_agent.context_middleware import SiteContextMiddleware
from apps.site_agent.credentials import CredentialStore, connection_status
from apps.site_agent.models import SITE_TABLES
from common_core.config import settings
from common_core.db import Base, SiteSessionLocal, site_engine
from common_core.identity import derive_machine_name
from common_core.logging_setup import configure_logging
from common_core.request_id import RequestIdMiddleware

log = logging.getLogger("overwatch.site")

app = FastAPI(title="Overwatch Site Agent")
app.add_middleware(SiteContextMiddleware)
app.add_middleware(RequestIdMiddleware)

# Entity hooks of the hosting application call on_entity_insert/update/delete on this instance.
event_capture = EventCapture()


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/readyz")
def readyz():
    db = SiteSessionLocal()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()
    return {"ok": True}


@app.get("/metrics", response_class=PlainTextResponse)
def metrics():
    db = SiteSessionLocal()
    try:
        return (
            f"overwatch_queue_depth {queue_store.depth(db)}\n"
            f"overwatch_dead_letter_total {queue_store.dead_letter_count(db)}\n"
        )
    finally:
        db.close()


@app.get("/overwatch/status")
def status():
    return {
        "site_name": settings.site_name,
        "site_machine_name": derive_machine_name(settings.site_name),
        **connection_status(CredentialStore(SiteSessionLocal).load()),
    }


@app.on_event("startup")
def startup() -> None:
    configure_logging(component="site_agent")
    Base.metadata.create_all(site_engine, tables=SITE_TABLES)
    install_log_capture(capture=event_capture)
    log.info("site_agent_started", extra={"site_machine_name": derive_machine_name(settings.site_name)})
