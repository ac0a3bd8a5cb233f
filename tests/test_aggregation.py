from __future__ import annotations

from datetime import timedelta

import pytest

from apps.monitor_backend import persistence
from apps.monitor_backend.aggregation import (
    Domain,
    QueryMode,
    TenantScope,
    event_stats,
    list_tenants,
    query_snapshots,
    summarize,
    summary,
)
from apps.monitor_backend.models import SystemData
from apps.monitor_backend.schema_validate import parse_event, parse_system_data
from common_core.db import MonitorSessionLocal


@pytest.fixture
def db():
    s = MonitorSessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def snapshots(db, make_system_data):
    ids = {"site_a": [], "site_b": []}
    for n in (1, 2, 3):
        r = persistence.create_system_data(db, parse_system_data(make_system_data("Site A", extensions=n, security=1)))
        ids["site_a"].append(r.id)
    r = persistence.create_system_data(db, parse_system_data(make_system_data("Site B", extensions=2, errors=2, warnings=0)))
    ids["site_b"].append(r.id)
    return ids


def test_latest_returns_one_row_per_tenant(db, snapshots):
    rows = query_snapshots(db, Domain.SNAPSHOT, TenantScope.all(), QueryMode.LATEST)
    assert len(rows) == 2
    by_site = {r["site_machine_name"]: r for r in rows}
    assert by_site["site_a"]["id"] == snapshots["site_a"][-1]
    assert by_site["site_a"]["extensions_count"] == 3
    assert by_site["site_b"]["id"] == snapshots["site_b"][-1]


def test_history_returns_every_snapshot_in_window(db, snapshots):
    rows = query_snapshots(db, Domain.SNAPSHOT, TenantScope.all(), QueryMode.HISTORY)
    assert len(rows) == 4


def test_history_window_excludes_old_snapshots(db, snapshots):
    oldest = db.get(SystemData, snapshots["site_a"][0])
    oldest.created_at_utc = oldest.created_at_utc - timedelta(days=40)
    db.commit()

    history = query_snapshots(db, Domain.SNAPSHOT, TenantScope.all(), QueryMode.HISTORY)
    assert len(history) == 3
    latest = query_snapshots(db, Domain.SNAPSHOT, TenantScope.all(), QueryMode.LATEST)
    assert len(latest) == 2


def test_single_scope_normalizes_display_name(db, snapshots):
    rows = query_snapshots(db, Domain.SNAPSHOT, TenantScope.single("Site A"), QueryMode.HISTORY)
    assert {r["site_machine_name"] for r in rows} == {"site_a"}
    assert len(rows) == 3
    assert TenantScope.from_param("all") == TenantScope.all()


def test_child_domains_follow_the_same_selection(db, snapshots):
    errors = query_snapshots(db, Domain.ERRORS, TenantScope.all(), QueryMode.LATEST)
    assert len(errors) == 3  # 1 from site_a's latest, 2 from site_b
    warnings = query_snapshots(db, Domain.WARNINGS, TenantScope.all(), QueryMode.LATEST)
    assert [w["site_machine_name"] for w in warnings] == ["site_a"]

    extensions = query_snapshots(db, Domain.EXTENSIONS, TenantScope.single("Site A"), QueryMode.LATEST)
    assert len(extensions) == 3
    security = query_snapshots(db, Domain.SECURITY_UPDATES, TenantScope.all(), QueryMode.LATEST)
    assert [s["site_machine_name"] for s in security] == ["site_a"]
    updates = query_snapshots(db, Domain.UPDATES, TenantScope.all(), QueryMode.HISTORY)
    assert len(updates) == 1 + 2 + 3 + 2


def test_summary_totals(db, snapshots):
    rows = query_snapshots(db, Domain.SNAPSHOT, TenantScope.all(), QueryMode.LATEST)
    assert summarize(rows) == {"errors": 3, "warnings": 1, "security_updates": 1, "all_updates": 5}
    assert summary(db)["sites"] == 2
    assert summary(db, mode=QueryMode.HISTORY)["rows"] == 4


def test_tenants_and_event_stats(db, snapshots):
    for bundle in ("article", "article", "page"):
        persistence.create_event(
            db,
            parse_event(
                {
                    "uuid": "u",
                    "title": "t",
                    "author": "a",
                    "bundle": bundle,
                    "entity": "node",
                    "timestamp": 100,
                    "type": "insert",
                    "site_base_url": "https://a.example",
                    "site_machine_name": "site_a",
                    "site_name": "Site A",
                }
            ),
        )
    assert [t["site_machine_name"] for t in list_tenants(db)] == ["site_a", "site_b"]
    stats = event_stats(db, "Site A", "node")
    assert stats["categories"] == ["article", "page"]
    assert stats["data"] == [2, 1]
    assert event_stats(db, "", "node")["data"] == []
