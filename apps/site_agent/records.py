"""Immutable records produced on the tenant site and their wire encoding."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Optional

SEVERITY_LOW = "low"
SEVERITY_HIGH = "high"

ACTION_INSERT = "insert"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class Event:
    uuid: str
    title: str
    author: str
    bundle: str
    entity: str
    timestamp: int
    type: str
    site_base_url: str
    site_machine_name: str
    site_name: str
    severity: str
    context: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"), ensure_ascii=False)


def compute_update_available(current_version: str, recommended_version: Optional[str], security_update: bool) -> bool:
    """An update is available when a recommended version differs from the installed one.

    Without a recommended version the update source can still flag a security
    release, in which case the extension counts as having an update.
    """
    if recommended_version:
        return current_version != recommended_version
    return security_update


@dataclass(frozen=True)
class ExtensionUpdateInfo:
    name: str
    current_version: str
    recommended_version: Optional[str]
    security_update: bool
    update_available: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "update_available",
            compute_update_available(self.current_version, self.recommended_version, self.security_update),
        )

    def to_wire(self) -> dict:
        return {
            "extension_name": self.name,
            "current_version": self.current_version,
            "recommended_version": self.recommended_version or "",
            "update_available": self.update_available,
            "security_update": self.security_update,
        }


@dataclass(frozen=True)
class ErrorWarningRecord:
    title: str
    description: str
    timestamp: str
    kind: str  # error / warning

    def to_wire(self) -> dict:
        return {"title": self.title, "description": self.description, "timestamp": self.timestamp}


@dataclass(frozen=True)
class SiteHealthSnapshot:
    site_name: str
    site_machine_name: str
    site_type: str
    core_version: str
    report_time: str
    extensions: tuple[ExtensionUpdateInfo, ...]
    status_report: dict
    errors: tuple[ErrorWarningRecord, ...]
    warnings: tuple[ErrorWarningRecord, ...]

    @property
    def all_updates(self) -> int:
        return sum(1 for e in self.extensions if e.update_available)

    @property
    def security_updates(self) -> int:
        return sum(1 for e in self.extensions if e.update_available and e.security_update)

    def to_wire(self) -> dict:
        return {
            "site_name": self.site_name,
            "site_type": self.site_type,
            "site_machine_name": self.site_machine_name,
            "core_version": self.core_version,
            "report_time": self.report_time,
            "extensions": [e.to_wire() for e in self.extensions],
            "updates_available": {
                "security_updates": self.security_updates,
                "all_updates": self.all_updates,
            },
            "extensions_count": len(self.extensions),
            "status_report": dict(self.status_report),
            "errors_and_warnings": {
                "errors": [e.to_wire() for e in self.errors],
                "warnings": [w.to_wire() for w in self.warnings],
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class Credential:
    access_token: Optional[str] = None
    expires_at: Optional[int] = None

    def remaining_days(self, now: int) -> Optional[int]:
        """Whole days of validity left, or None when disconnected (missing or expired)."""
        if not self.access_token or self.expires_at is None:
            return None
        remaining = self.expires_at - now
        if remaining < 0:
            return None
        return round(remaining / SECONDS_PER_DAY)

    def is_expired(self, now: int) -> bool:
        return self.expires_at is None or now > self.expires_at

    def authorization_header(self) -> str:
        return f"Bearer {self.access_token or ''}"
