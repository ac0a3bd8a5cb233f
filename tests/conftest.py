import os
import tempfile
from pathlib import Path

import pytest

# Settings are read at import time, so the environment must be complete before any app import.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_32_chars_minimum__123456")
os.environ.setdefault("SITE_NAME", "Test Site")
os.environ.setdefault("SITE_BASE_URL", "https://site.test")
os.environ.setdefault("MONITORING_SITE_URL", "http://monitor.test")
os.environ["MIGRATION_TARGET"] = "all"

_fd, _db_path = tempfile.mkstemp(prefix="overwatch_test_", suffix=".db")
os.close(_fd)
os.environ["SITE_DB_URL"] = f"sqlite+pysqlite:///{_db_path}"
os.environ["MONITOR_DB_URL"] = f"sqlite+pysqlite:///{_db_path}"

ROOT = Path(__file__).resolve().parents[1]


def _run_alembic_upgrade_head() -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    command.upgrade(cfg, "head")


def pytest_configure():
    _run_alembic_upgrade_head()


@pytest.fixture(autouse=True)
def clean_db():
    from apps.monitor_backend import models as monitor_models  # noqa: F401
    from apps.monitor_backend.schema_validate import ensure_default_allowed_values
    from apps.site_agent import models as site_models  # noqa: F401
    from common_core.db import Base, MonitorSessionLocal

    db = MonitorSessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        ensure_default_allowed_values(db)
    finally:
        db.close()
    yield


@pytest.fixture
def make_system_data():
    def _make(site_name="Site A", extensions=2, errors=1, warnings=1, security=0):
        exts = [
            {
                "extension_name": f"ext_{i}",
                "current_version": "1.0",
                "recommended_version": "1.1",
                "update_available": True,
                "security_update": i < security,
            }
            for i in range(extensions)
        ]
        issue = {"title": "Cron", "description": "Cron has not run", "timestamp": "2026-03-01T12:00:00+00:00"}
        return {
            "site_name": site_name,
            "site_machine_name": site_name.lower().replace(" ", "_"),
            "site_type": "Python",
            "core_version": "1.0",
            "report_time": "2026-03-01T12:00:00+00:00",
            "extensions": exts,
            "updates_available": {"security_updates": security, "all_updates": extensions},
            "extensions_count": extensions,
            "status_report": {"database_system_version": "sqlite 3", "php_version": "3.12.1"},
            "errors_and_warnings": {"errors": [issue] * errors, "warnings": [issue] * warnings},
        }

    return _make
