from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from apps.site_agent.records import Credential, ExtensionUpdateInfo, compute_update_available
from apps.site_agent.snapshot import ProjectStatus, Requirement, SnapshotBuilder, require_snapshot_marker
from common_core.errors import SnapshotMarkerError


class FakeProvider:
    def __init__(self, projects=(), requirements=()):
        self._projects = list(projects)
        self._requirements = list(requirements)

    def site_name(self):
        return "Tenant One"

    def site_type(self):
        return "Python"

    def core_version(self):
        return "2.1.0"

    def runtime_version(self):
        return "3.12.1"

    def database_version(self):
        return ""

    def requirements(self):
        return self._requirements

    def projects(self):
        return self._projects


def _clock():
    return datetime(2026, 3, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_update_available_follows_recommended_version():
    assert compute_update_available("1.0", "1.1", False) is True
    assert compute_update_available("1.1", "1.1", True) is False
    assert compute_update_available("1.0", None, True) is True
    assert compute_update_available("1.0", None, False) is False
    assert compute_update_available("1.0", "", False) is False


def test_extension_info_derives_update_available():
    ext = ExtensionUpdateInfo("views", "1.0", "1.2", security_update=True)
    assert ext.update_available is True
    assert ext.to_wire()["recommended_version"] == "1.2"
    current = ExtensionUpdateInfo("views", "1.2", "1.2", security_update=True)
    assert current.update_available is False


def test_snapshot_counts_and_wire_shape():
    provider = FakeProvider(
        projects=[
            ProjectStatus("alpha", "1.0", "1.1", security_update=True),
            ProjectStatus("beta", "2.0", "2.0"),
            ProjectStatus("gamma", "0.9", "1.0"),
        ],
        requirements=[
            Requirement("Cron", "  Cron has not run  ", "error"),
            Requirement("Updates", "Pending", "warning"),
            Requirement("PHP", "fine", "ok"),
            Requirement("Checked", "looked at", "checked"),
        ],
    )
    snap = SnapshotBuilder(provider, clock=_clock).build()

    assert snap.site_machine_name == "tenant_one"
    assert snap.all_updates == 2
    assert snap.security_updates == 1
    assert [e.title for e in snap.errors] == ["Cron"]
    assert snap.errors[0].description == "Cron has not run"
    assert [w.title for w in snap.warnings] == ["Updates"]

    wire = json.loads(snap.to_json())
    assert wire["report_time"] == "2026-03-01T12:00:00+00:00"
    assert wire["extensions_count"] == 3
    assert wire["updates_available"] == {"security_updates": 1, "all_updates": 2}
    assert wire["status_report"] == {"database_system_version": "Unknown", "php_version": "3.12.1"}
    assert len(wire["errors_and_warnings"]["errors"]) == 1
    assert len(wire["errors_and_warnings"]["warnings"]) == 1


def test_snapshot_marker_must_be_truthy():
    require_snapshot_marker("true")
    for bad in (None, "", "false", "0", "null", False, 0):
        with pytest.raises(SnapshotMarkerError):
            require_snapshot_marker(bad)


def test_credential_remaining_days():
    now = 1_700_000_000
    assert Credential("tok", now + 30 * 86400).remaining_days(now) == 30
    assert Credential("tok", now + int(1.4 * 86400)).remaining_days(now) == 1
    assert Credential("tok", now - 10).remaining_days(now) is None
    assert Credential(None, now + 86400).remaining_days(now) is None
    assert Credential("tok", None).remaining_days(now) is None


def test_credential_authorization_header():
    assert Credential("abc", 1).authorization_header() == "Bearer abc"
    assert Credential().authorization_header() == "Bearer "
