from __future__ import annotations

import pytest
from sqlalchemy import func, select

from apps.monitor_backend import persistence
from apps.monitor_backend.models import ExtensionInfo, SystemData, TenantRegistry
from apps.monitor_backend.schema_validate import parse_event, parse_system_data
from common_core.db import MonitorSessionLocal


@pytest.fixture
def db():
    s = MonitorSessionLocal()
    try:
        yield s
    finally:
        s.close()


def _fail_on_call(monkeypatch, name, failing_call):
    original = getattr(persistence, name)
    calls = {"n": 0}

    def wrapped(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == failing_call:
            raise RuntimeError("disk full")
        return original(*args, **kwargs)

    monkeypatch.setattr(persistence, name, wrapped)


def test_create_event_registers_tenant(db):
    event = parse_event(
        {
            "uuid": "u1",
            "title": "Hello",
            "author": "alice",
            "bundle": "article",
            "entity": "node",
            "timestamp": 1_700_000_000,
            "type": "insert",
            "site_base_url": "https://a.example",
            "site_machine_name": "site_a",
            "site_name": "Site A",
        }
    )
    row = persistence.create_event(db, event)
    assert row.id is not None
    assert row.severity is None
    tenant = db.get(TenantRegistry, "site_a")
    assert tenant.site_name == "Site A"
    assert tenant.site_base_url == "https://a.example"


def test_system_data_links_children(db, make_system_data):
    result = persistence.create_system_data(db, parse_system_data(make_system_data(extensions=3, errors=2, warnings=1)))
    assert not result.partial
    record = db.get(SystemData, result.id)
    assert record.extensions_count == 3
    assert record.error_count == 2
    assert record.warning_count == 1
    assert sorted(ew.kind for ew in record.errors_warnings) == ["error", "error", "warning"]
    assert record.status_report["php_version"] == "3.12.1"


def test_failed_extension_is_skipped_and_not_counted(db, make_system_data, monkeypatch):
    _fail_on_call(monkeypatch, "_insert_extension", 3)
    result = persistence.create_system_data(db, parse_system_data(make_system_data(extensions=5)))

    assert result.partial
    assert result.extensions.summary() == {"succeeded": 4, "failed": 1}
    assert result.extensions.failed[0].index == 2
    record = db.get(SystemData, result.id)
    assert record.extensions_count == 4
    assert len(record.extensions) == 4
    assert record.all_updates == 4
    assert record.security_updates == 0
    assert db.execute(select(func.count()).select_from(ExtensionInfo)).scalar_one() == 4


def test_update_counts_follow_stored_extensions(db, make_system_data, monkeypatch):
    # ext_0 is the only security update and its insert fails
    _fail_on_call(monkeypatch, "_insert_extension", 1)
    payload = make_system_data(extensions=5, security=1)
    assert payload["updates_available"] == {"security_updates": 1, "all_updates": 5}

    result = persistence.create_system_data(db, parse_system_data(payload))
    record = db.get(SystemData, result.id)
    assert record.extensions_count == 4
    assert record.all_updates == sum(1 for e in record.extensions if e.update_available) == 4
    assert record.security_updates == 0


def test_failed_warning_does_not_block_the_rest(db, make_system_data, monkeypatch):
    # errors are inserted first (call 1), the single warning is call 2
    _fail_on_call(monkeypatch, "_insert_error_warning", 2)
    result = persistence.create_system_data(db, parse_system_data(make_system_data(errors=1, warnings=1)))
    assert result.errors.ok
    assert result.warnings.summary() == {"succeeded": 0, "failed": 1}
    record = db.get(SystemData, result.id)
    assert record.error_count == 1
    assert record.warning_count == 0
