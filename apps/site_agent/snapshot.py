from __future__ import annotations

import logging
import platform
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib import metadata
from typing import Any, Callable, Iterable, Optional, Protocol

from sqlalchemy import text

from apps.site_agent import queue_store
from apps.site_agent.models import QUEUE_SYSTEM_DATA
from apps.site_agent.records import ErrorWarningRecord, ExtensionUpdateInfo, SiteHealthSnapshot
from common_core.config import settings
from common_core.errors import SnapshotMarkerError
from common_core.identity import derive_machine_name

log = logging.getLogger("overwatch.snapshot")

SNAPSHOT_MARKER = "true"

# Severity order used when grouping requirements; only the first two are reported.
REQUIREMENT_PRIORITIES = ("error", "warning", "checked", "ok")


@dataclass(frozen=True)
class Requirement:
    title: str
    description: str
    severity: str  # error / warning / checked / ok


@dataclass(frozen=True)
class ProjectStatus:
    name: str
    existing_version: str
    recommended_version: Optional[str] = None
    security_update: bool = False


class SiteHealthProvider(Protocol):
    def site_name(self) -> str: ...

    def site_type(self) -> str: ...

    def core_version(self) -> str: ...

    def runtime_version(self) -> str: ...

    def database_version(self) -> str: ...

    def requirements(self) -> Iterable[Requirement]: ...

    def projects(self) -> Iterable[ProjectStatus]: ...


def require_snapshot_marker(marker: Any) -> None:
    if not marker or (isinstance(marker, str) and marker.strip().lower() in ("", "false", "0", "null")):
        log.error("snapshot_marker_invalid", extra={"component": "snapshot"})
        raise SnapshotMarkerError("queue item not processed: snapshot marker is not set")


def group_requirements(requirements: Iterable[Requirement]) -> dict[str, list[Requirement]]:
    grouped: dict[str, list[Requirement]] = {p: [] for p in REQUIREMENT_PRIORITIES}
    for req in requirements:
        grouped.setdefault(req.severity, []).append(req)
    return grouped


def _iso(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat()


class SnapshotBuilder:
    def __init__(self, provider: SiteHealthProvider, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.provider = provider
        self.clock = clock

    def build(self) -> SiteHealthSnapshot:
        now = _iso(self.clock())
        grouped = group_requirements(self.provider.requirements())
        errors = tuple(ErrorWarningRecord(r.title, r.description.strip(), now, "error") for r in grouped["error"])
        warnings = tuple(ErrorWarningRecord(r.title, r.description.strip(), now, "warning") for r in grouped["warning"])

        extensions = tuple(
            ExtensionUpdateInfo(
                name=p.name,
                current_version=p.existing_version,
                recommended_version=p.recommended_version or None,
                security_update=bool(p.security_update),
            )
            for p in self.provider.projects()
        )

        site_name = self.provider.site_name()
        return SiteHealthSnapshot(
            site_name=site_name,
            site_machine_name=derive_machine_name(site_name),
            site_type=self.provider.site_type(),
            core_version=self.provider.core_version(),
            report_time=now,
            extensions=extensions,
            status_report={
                "database_system_version": self.provider.database_version() or "Unknown",
                # Wire key kept for compatibility with existing receivers; carries the runtime version.
                "php_version": self.provider.runtime_version(),
            },
            errors=errors,
            warnings=warnings,
        )

    def build_json(self) -> str:
        snapshot = self.build()
        log.debug(
            "snapshot_built",
            extra={"site_machine_name": snapshot.site_machine_name, "count": len(snapshot.extensions)},
        )
        return snapshot.to_json()


def enqueue_snapshot(db) -> None:
    queue_store.enqueue(db, QUEUE_SYSTEM_DATA, SNAPSHOT_MARKER)


def parse_version_pins(raw: str) -> dict[str, str]:
    pins: dict[str, str] = {}
    for part in (raw or "").split(","):
        name, sep, version = part.partition("=")
        if sep and name.strip() and version.strip():
            pins[name.strip().lower()] = version.strip()
    return pins


class LocalHealthProvider:
    """Health data for a Python tenant: installed distributions and local checks."""

    def __init__(self, session_factory, credential_store=None, pins: Optional[dict[str, str]] = None, security_flags: Iterable[str] = ()):
        self._session_factory = session_factory
        self._credential_store = credential_store
        self._pins = pins if pins is not None else parse_version_pins(settings.extension_recommended_versions)
        self._security = {s.lower() for s in security_flags}

    def site_name(self) -> str:
        return settings.site_name

    def site_type(self) -> str:
        return settings.site_type

    def core_version(self) -> str:
        return settings.site_core_version

    def runtime_version(self) -> str:
        return platform.python_version()

    def database_version(self) -> str:
        db = self._session_factory()
        try:
            info = db.get_bind().dialect.server_version_info
            name = db.get_bind().dialect.name
            return f"{name} {'.'.join(str(x) for x in info)}" if info else name
        except Exception:
            log.warning("database_version_unavailable", exc_info=True)
            return "Unknown"
        finally:
            db.close()

    def requirements(self) -> list[Requirement]:
        reqs: list[Requirement] = []
        db = self._session_factory()
        try:
            db.execute(text("SELECT 1"))
            reqs.append(Requirement("Database", "Database reachable", "ok"))
            pending = queue_store.depth(db)
            if pending >= int(settings.queue_max_depth * 0.8):
                reqs.append(
                    Requirement(
                        "Delivery queue",
                        f"{pending} items pending of {settings.queue_max_depth} allowed",
                        "warning",
                    )
                )
            dead = queue_store.dead_letter_count(db)
            if dead:
                reqs.append(Requirement("Dead-lettered deliveries", f"{dead} items gave up delivery", "warning"))
        except Exception as e:
            reqs.append(Requirement("Database", f"Database check failed: {str(e)[:200]}", "error"))
        finally:
            db.close()

        if self._credential_store is not None:
            cred = self._credential_store.load()
            if not cred.access_token:
                reqs.append(Requirement("Monitoring connection", "No access token stored", "error"))
            elif cred.is_expired(int(time.time())):
                reqs.append(Requirement("Monitoring connection", "Access token expired", "warning"))
        return reqs

    def projects(self) -> list[ProjectStatus]:
        seen: dict[str, ProjectStatus] = {}
        for dist in metadata.distributions():
            name = (dist.metadata.get("Name") or "").strip()
            if not name or name.lower() in seen:
                continue
            key = name.lower()
            seen[key] = ProjectStatus(
                name=name,
                existing_version=dist.version,
                recommended_version=self._pins.get(key),
                security_update=key in self._security,
            )
        return sorted(seen.values(), key=lambda p: p.name.lower())
