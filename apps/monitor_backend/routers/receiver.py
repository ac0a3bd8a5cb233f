from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from apps.monitor_backend.persistence import create_event, create_system_data
from apps.monitor_backend.schema_validate import parse_event, parse_system_data, validate_allowed_values
from apps.monitor_backend.security_deps import require_scope
from common_core.config import settings
from common_core.db import MonitorSessionLocal
from common_core.errors import IngestValidationError

log = logging.getLogger("overwatch.receiver")

router = APIRouter(prefix="/api/overwatch", tags=["receiver"])


def _reject(e: IngestValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail=e.detail())


@router.post("/event", status_code=201)
async def receive_event(request: Request, claims: Dict[str, Any] = Depends(require_scope(settings.oauth_scope))):
    raw = await request.body()
    try:
        event = parse_event(raw)
    except IngestValidationError as e:
        raise _reject(e)

    db = MonitorSessionLocal()
    try:
        try:
            validate_allowed_values(db, event)
        except IngestValidationError as e:
            raise _reject(e)
        try:
            row = create_event(db, event)
        except SQLAlchemyError as e:
            log.error("event_persist_failed", extra={"site_machine_name": event.site_machine_name, "err": str(e)[:200]})
            raise HTTPException(status_code=500, detail="persist_failed")
        body = event.model_dump()
        body["id"] = row.id
        return JSONResponse(status_code=201, content=body)
    finally:
        db.close()


@router.post("/system_data", status_code=201)
async def receive_system_data(request: Request, claims: Dict[str, Any] = Depends(require_scope(settings.oauth_scope))):
    raw = await request.body()
    try:
        data = parse_system_data(raw)
    except IngestValidationError as e:
        raise _reject(e)

    db = MonitorSessionLocal()
    try:
        try:
            result = create_system_data(db, data)
        except SQLAlchemyError as e:
            log.error("system_data_persist_failed", extra={"site_machine_name": data.site_machine_name, "err": str(e)[:200]})
            raise HTTPException(status_code=500, detail="persist_failed")
        body = data.model_dump(mode="json")
        body["id"] = result.id
        body["persisted"] = result.summary()
        return JSONResponse(status_code=201, content=body)
    finally:
        db.close()
