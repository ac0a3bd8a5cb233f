"""Per-tenant snapshot queries for the dashboards.

Two cardinalities are supported and must not be mixed up:

* ``QueryMode.LATEST`` keeps one row per tenant, the snapshot with the highest id.
* ``QueryMode.HISTORY`` keeps every snapshot created inside the trailing window.

All domain queries (snapshot attributes, errors/warnings, extensions) start
from the same id selection, built by ``snapshot_ids_query``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from apps.monitor_backend.models import (
    ErrorWarning,
    Event,
    ExtensionInfo,
    SystemData,
    TenantRegistry,
    system_data_error_warning,
    system_data_extension,
)
from common_core.config import settings
from common_core.identity import derive_machine_name

ALL_SITES = "all"


class QueryMode(str, Enum):
    LATEST = "latest"
    HISTORY = "history"


class Domain(str, Enum):
    SNAPSHOT = "snapshot"
    ERRORS = "errors"
    WARNINGS = "warnings"
    EXTENSIONS = "extensions"
    SECURITY_UPDATES = "security_updates"
    UPDATES = "updates"


@dataclass(frozen=True)
class TenantScope:
    machine_name: Optional[str] = None

    @classmethod
    def all(cls) -> "TenantScope":
        return cls(None)

    @classmethod
    def single(cls, site: str) -> "TenantScope":
        return cls(derive_machine_name(site))

    @classmethod
    def from_param(cls, value: Optional[str]) -> "TenantScope":
        if not value or value == ALL_SITES:
            return cls.all()
        return cls.single(value)

    @property
    def is_all(self) -> bool:
        return self.machine_name is None


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def snapshot_ids_query(scope: TenantScope, mode: QueryMode, now: Optional[datetime] = None, window_days: Optional[int] = None):
    """Subquery of (site_machine_name, system_data_id) for the requested scope and mode."""
    if mode == QueryMode.HISTORY:
        days = settings.history_window_days if window_days is None else window_days
        since = (now or _now()) - timedelta(days=days)
        stmt = select(
            SystemData.site_machine_name.label("site_machine_name"),
            SystemData.id.label("system_data_id"),
        ).where(SystemData.created_at_utc >= since)
    else:
        stmt = select(
            SystemData.site_machine_name.label("site_machine_name"),
            func.max(SystemData.id).label("system_data_id"),
        ).group_by(SystemData.site_machine_name)

    if not scope.is_all:
        stmt = stmt.where(SystemData.site_machine_name == scope.machine_name)
    return stmt.subquery("selected")


def _snapshot_row(sd: SystemData) -> Dict[str, Any]:
    return {
        "id": sd.id,
        "site_name": sd.site_name,
        "site_machine_name": sd.site_machine_name,
        "site_type": sd.site_type,
        "core_version": sd.core_version,
        "report_time": sd.report_time.isoformat() if sd.report_time else None,
        "created_at_utc": sd.created_at_utc.isoformat() if sd.created_at_utc else None,
        "extensions_count": int(sd.extensions_count or 0),
        "all_updates": int(sd.all_updates or 0),
        "security_updates": int(sd.security_updates or 0),
        "errors": int(sd.error_count or 0),
        "warnings": int(sd.warning_count or 0),
        "status_report": sd.status_report or {},
    }


def query_snapshots(
    db,
    domain: Domain = Domain.SNAPSHOT,
    scope: TenantScope = TenantScope(),
    mode: QueryMode = QueryMode.LATEST,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
) -> List[Dict[str, Any]]:
    sel = snapshot_ids_query(scope, mode, now=now, window_days=window_days)

    if domain == Domain.SNAPSHOT:
        stmt = select(SystemData).join(sel, SystemData.id == sel.c.system_data_id).order_by(SystemData.id.desc())
        return [_snapshot_row(sd) for sd in db.execute(stmt).scalars().all()]

    if domain in (Domain.ERRORS, Domain.WARNINGS):
        kind = "error" if domain == Domain.ERRORS else "warning"
        stmt = (
            select(SystemData.id, SystemData.site_machine_name, SystemData.site_name, SystemData.created_at_utc, ErrorWarning)
            .join(sel, SystemData.id == sel.c.system_data_id)
            .join(system_data_error_warning, system_data_error_warning.c.system_data_id == SystemData.id)
            .join(ErrorWarning, ErrorWarning.id == system_data_error_warning.c.error_warning_id)
            .where(ErrorWarning.kind == kind)
            .order_by(SystemData.id.desc(), ErrorWarning.id.asc())
        )
        return [
            {
                "system_data_id": sd_id,
                "site_machine_name": machine_name,
                "site_name": site_name,
                "created_at_utc": created.isoformat() if created else None,
                "id": ew.id,
                "title": ew.title,
                "description": ew.description,
                "timestamp": ew.timestamp.isoformat() if ew.timestamp else None,
                "kind": ew.kind,
            }
            for sd_id, machine_name, site_name, created, ew in db.execute(stmt).all()
        ]

    stmt = (
        select(SystemData.id, SystemData.site_machine_name, SystemData.site_name, SystemData.created_at_utc, ExtensionInfo)
        .join(sel, SystemData.id == sel.c.system_data_id)
        .join(system_data_extension, system_data_extension.c.system_data_id == SystemData.id)
        .join(ExtensionInfo, ExtensionInfo.id == system_data_extension.c.extension_info_id)
        .order_by(SystemData.id.desc(), ExtensionInfo.id.asc())
    )
    if domain == Domain.SECURITY_UPDATES:
        stmt = stmt.where(ExtensionInfo.security_update.is_(True))
    elif domain == Domain.UPDATES:
        stmt = stmt.where(ExtensionInfo.update_available.is_(True))
    return [
        {
            "system_data_id": sd_id,
            "site_machine_name": machine_name,
            "site_name": site_name,
            "created_at_utc": created.isoformat() if created else None,
            "id": ext.id,
            "extension_name": ext.extension_name,
            "current_version": ext.current_version,
            "recommended_version": ext.recommended_version,
            "update_available": bool(ext.update_available),
            "security_update": bool(ext.security_update),
        }
        for sd_id, machine_name, site_name, created, ext in db.execute(stmt).all()
    ]


def summarize(rows: List[Dict[str, Any]]) -> Dict[str, int]:
    out = {"errors": 0, "warnings": 0, "security_updates": 0, "all_updates": 0}
    for r in rows:
        for k in out:
            out[k] += int(r.get(k) or 0)
    return out


def summary(db, scope: TenantScope = TenantScope(), mode: QueryMode = QueryMode.LATEST, now: Optional[datetime] = None) -> Dict[str, Any]:
    rows = query_snapshots(db, Domain.SNAPSHOT, scope, mode, now=now)
    return {"mode": mode.value, "sites": len({r["site_machine_name"] for r in rows}), "rows": len(rows), **summarize(rows)}


def list_tenants(db) -> List[Dict[str, Any]]:
    rows = db.execute(select(TenantRegistry).order_by(TenantRegistry.site_name)).scalars().all()
    return [
        {
            "site_machine_name": t.site_machine_name,
            "site_name": t.site_name,
            "site_base_url": t.site_base_url,
            "last_seen_at_utc": t.last_seen_at_utc.isoformat() if t.last_seen_at_utc else None,
        }
        for t in rows
    ]


def event_stats(db, site: str, entity: str) -> Dict[str, Any]:
    """Event counts per bundle for one tenant and entity kind (chart feed)."""
    if not site:
        return {"categories": [], "data": [], "last_timestamps": []}
    rows = db.execute(
        select(Event.bundle, func.count(Event.id), func.max(Event.timestamp))
        .where(Event.entity == entity, Event.site_machine_name == derive_machine_name(site))
        .group_by(Event.bundle)
        .order_by(Event.bundle)
    ).all()
    return {
        "categories": [r[0] for r in rows],
        "data": [int(r[1] or 0) for r in rows],
        "last_timestamps": [float(r[2]) if r[2] is not None else None for r in rows],
    }
