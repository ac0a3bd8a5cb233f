from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from apps.monitor_backend.aggregation import (
    ALL_SITES,
    Domain,
    QueryMode,
    TenantScope,
    event_stats,
    list_tenants,
    query_snapshots,
    summary,
)
from apps.monitor_backend.schema_validate import ENUM_FIELDS, load_allowed_values, set_allowed_values
from apps.monitor_backend.security_deps import get_claims
from common_core.db import MonitorSessionLocal

router = APIRouter(prefix="/overwatch", tags=["dashboard"])


def _mode(history: bool) -> QueryMode:
    return QueryMode.HISTORY if history else QueryMode.LATEST


def _require_admin(claims: Dict[str, Any] = Depends(get_claims)) -> Dict[str, Any]:
    if "admin" not in (claims.get("roles") or []):
        raise HTTPException(status_code=403, detail="not_authorized")
    return claims


@router.get("/sites")
def sites(user: Dict[str, Any] = Depends(get_claims)) -> Dict[str, Any]:
    db = MonitorSessionLocal()
    try:
        return {"items": list_tenants(db)}
    finally:
        db.close()


@router.get("/system-data")
def system_data(
    client_site: str = ALL_SITES,
    history: bool = False,
    user: Dict[str, Any] = Depends(get_claims),
) -> Dict[str, Any]:
    mode = _mode(history)
    db = MonitorSessionLocal()
    try:
        items = query_snapshots(db, Domain.SNAPSHOT, TenantScope.from_param(client_site), mode)
        return {"client_site": client_site, "mode": mode.value, "items": items}
    finally:
        db.close()


@router.get("/summary")
def dashboard_summary(
    client_site: str = ALL_SITES,
    history: bool = False,
    user: Dict[str, Any] = Depends(get_claims),
) -> Dict[str, Any]:
    db = MonitorSessionLocal()
    try:
        return {"client_site": client_site, **summary(db, TenantScope.from_param(client_site), _mode(history))}
    finally:
        db.close()


@router.get("/errors-warnings")
def errors_warnings(
    kind: str = "errors",
    client_site: str = ALL_SITES,
    history: bool = False,
    user: Dict[str, Any] = Depends(get_claims),
) -> Dict[str, Any]:
    domains = {"errors": Domain.ERRORS, "warnings": Domain.WARNINGS}
    if kind not in domains:
        raise HTTPException(status_code=400, detail="invalid_kind")
    db = MonitorSessionLocal()
    try:
        items = query_snapshots(db, domains[kind], TenantScope.from_param(client_site), _mode(history))
        return {"kind": kind, "items": items}
    finally:
        db.close()


@router.get("/extensions")
def extensions(
    only: Optional[str] = None,
    client_site: str = ALL_SITES,
    history: bool = False,
    user: Dict[str, Any] = Depends(get_claims),
) -> Dict[str, Any]:
    domains = {
        None: Domain.EXTENSIONS,
        "security_updates": Domain.SECURITY_UPDATES,
        "updates": Domain.UPDATES,
    }
    if only not in domains:
        raise HTTPException(status_code=400, detail="invalid_filter")
    db = MonitorSessionLocal()
    try:
        items = query_snapshots(db, domains[only], TenantScope.from_param(client_site), _mode(history))
        return {"only": only, "items": items}
    finally:
        db.close()


@router.get("/event-stats")
def stats(client_site: str = "", entity: str = "node", user: Dict[str, Any] = Depends(get_claims)) -> Dict[str, Any]:
    db = MonitorSessionLocal()
    try:
        return {"client_site": client_site, "entity": entity, **event_stats(db, client_site, entity)}
    finally:
        db.close()


class AllowedValuesIn(BaseModel):
    values: List[str] = Field(min_length=1)


@router.get("/allowed-values")
def allowed_values(user: Dict[str, Any] = Depends(get_claims)) -> Dict[str, Any]:
    db = MonitorSessionLocal()
    try:
        return load_allowed_values(db)
    finally:
        db.close()


@router.put("/allowed-values/{field_name}")
def update_allowed_values(field_name: str, body: AllowedValuesIn, admin: Dict[str, Any] = Depends(_require_admin)) -> Dict[str, Any]:
    if field_name not in ENUM_FIELDS:
        raise HTTPException(status_code=404, detail="unknown_field")
    values = [v.strip() for v in body.values if v.strip()]
    if not values:
        raise HTTPException(status_code=400, detail="values_required")
    db = MonitorSessionLocal()
    try:
        set_allowed_values(db, field_name, values)
        return {"field": field_name, "values": load_allowed_values(db)[field_name]}
    finally:
        db.close()
