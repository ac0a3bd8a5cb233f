from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from apps.monitor_backend.models import ErrorWarning, Event, ExtensionInfo, SystemData, TenantRegistry
from apps.monitor_backend.schema_validate import EventIn, ExtensionIn, IssueIn, SystemDataIn
from common_core.errors import PartialPersistenceError

log = logging.getLogger("overwatch.persistence")


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0)


@dataclass
class BatchResult:
    succeeded: List[int] = field(default_factory=list)
    failed: List[PartialPersistenceError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict:
        return {"succeeded": len(self.succeeded), "failed": len(self.failed)}


@dataclass
class SystemDataResult:
    record: SystemData
    errors: BatchResult
    warnings: BatchResult
    extensions: BatchResult

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def partial(self) -> bool:
        return not (self.errors.ok and self.warnings.ok and self.extensions.ok)

    def summary(self) -> dict:
        return {
            "errors": self.errors.summary(),
            "warnings": self.warnings.summary(),
            "extensions": self.extensions.summary(),
        }


def touch_tenant(db, site_machine_name: str, site_name: str, site_base_url: Optional[str] = None, now: Optional[datetime] = None) -> None:
    now = now or _now()
    tenant = db.get(TenantRegistry, site_machine_name)
    if tenant is None:
        db.add(
            TenantRegistry(
                site_machine_name=site_machine_name,
                site_name=site_name,
                site_base_url=site_base_url,
                last_seen_at_utc=now,
                created_at_utc=now,
                updated_at_utc=now,
            )
        )
    else:
        tenant.site_name = site_name or tenant.site_name
        if site_base_url:
            tenant.site_base_url = site_base_url
        tenant.last_seen_at_utc = now
        tenant.updated_at_utc = now


def create_event(db, event: EventIn) -> Event:
    now = _now()
    row = Event(
        uuid=event.uuid,
        title=event.title,
        author=event.author,
        bundle=event.bundle,
        entity=event.entity,
        timestamp=float(event.timestamp),
        type=event.type,
        site_base_url=event.site_base_url,
        site_machine_name=event.site_machine_name,
        site_name=event.site_name,
        severity=event.severity,
        context=event.context,
        created_at_utc=now,
    )
    try:
        db.add(row)
        touch_tenant(db, event.site_machine_name, event.site_name, event.site_base_url, now)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    log.info("event_created", extra={"entity_id": row.id, "site_machine_name": event.site_machine_name})
    return row


def _insert_error_warning(db, item: IssueIn, kind: str) -> ErrorWarning:
    row = ErrorWarning(
        title=item.title,
        description=item.description,
        timestamp=_naive_utc(item.timestamp),
        kind=kind,
    )
    db.add(row)
    db.commit()
    return row


def _insert_extension(db, ext: ExtensionIn) -> ExtensionInfo:
    row = ExtensionInfo(
        extension_name=ext.extension_name,
        current_version=ext.current_version,
        recommended_version=ext.recommended_version or None,
        update_available=ext.update_available,
        security_update=ext.security_update,
    )
    db.add(row)
    db.commit()
    return row


def _create_children(db, domain: str, items: List[Any], insert) -> tuple[BatchResult, list]:
    result = BatchResult()
    rows = []
    for idx, item in enumerate(items):
        try:
            row = insert(db, item)
        except Exception as e:
            db.rollback()
            failure = PartialPersistenceError(domain, idx, str(e)[:200])
            result.failed.append(failure)
            log.error("child_persist_failed", extra={"entity_type": domain, "err": str(failure)})
            continue
        rows.append(row)
        result.succeeded.append(row.id)
    return result, rows


def create_system_data(db, data: SystemDataIn) -> SystemDataResult:
    """Store a snapshot as a parent record plus independently committed children.

    A child that fails is logged and left out; the parent only references the
    children that were stored and every count on it, update counts included,
    is computed from them rather than copied from the payload.
    """
    errors, error_rows = _create_children(
        db, "errors", data.errors_and_warnings.errors, lambda s, i: _insert_error_warning(s, i, "error")
    )
    warnings, warning_rows = _create_children(
        db, "warnings", data.errors_and_warnings.warnings, lambda s, i: _insert_error_warning(s, i, "warning")
    )
    extensions, extension_rows = _create_children(db, "extensions", data.extensions, _insert_extension)

    now = _now()
    record = SystemData(
        site_name=data.site_name,
        site_machine_name=data.site_machine_name,
        site_type=data.site_type,
        core_version=data.core_version,
        report_time=_naive_utc(data.report_time),
        extensions_count=len(extension_rows),
        security_updates=sum(1 for r in extension_rows if r.update_available and r.security_update),
        all_updates=sum(1 for r in extension_rows if r.update_available),
        error_count=len(error_rows),
        warning_count=len(warning_rows),
        status_report=data.status_report.model_dump(),
        created_at_utc=now,
    )
    record.errors_warnings = error_rows + warning_rows
    record.extensions = extension_rows
    try:
        db.add(record)
        touch_tenant(db, data.site_machine_name, data.site_name, None, now)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    result = SystemDataResult(record=record, errors=errors, warnings=warnings, extensions=extensions)
    log.info(
        "system_data_created",
        extra={
            "entity_id": record.id,
            "site_machine_name": data.site_machine_name,
            "count": len(extension_rows),
        },
    )
    if result.partial:
        log.warning("system_data_partial", extra={"entity_id": record.id, "err": str(result.summary())})
    return result
