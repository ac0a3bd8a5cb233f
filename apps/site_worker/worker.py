from __future__ import annotations

import logging
import time

from apps.site_agent.credentials import CredentialStore
from apps.site_agent.snapshot import LocalHealthProvider, SnapshotBuilder, enqueue_snapshot
from apps.site_worker.delivery_agent import DeliveryWorker, run_once
from common_core.config import settings
from common_core.db import SiteSessionLocal
from common_core.errors import QueueFullError
from common_core.guardrails import validate_site_config
from common_core.logging_setup import configure_logging

log = logging.getLogger("overwatch.worker")


def build_worker() -> tuple[DeliveryWorker, CredentialStore]:
    store = CredentialStore(SiteSessionLocal)
    provider = LocalHealthProvider(SiteSessionLocal, credential_store=store)
    worker = DeliveryWorker(
        settings.monitoring_site_url,
        snapshot_builder=SnapshotBuilder(provider),
        timeout=settings.delivery_timeout_seconds,
    )
    return worker, store


def schedule_snapshot() -> None:
    db = SiteSessionLocal()
    try:
        enqueue_snapshot(db)
    finally:
        db.close()


def main() -> None:
    configure_logging(component="site_worker")
    validate_site_config()
    log.info("worker_started", extra={"component": "site_worker"})

    worker, store = build_worker()
    last_snapshot = 0.0
    fail_streak = 0

    while True:
        now = time.time()
        if now - last_snapshot > settings.snapshot_interval_seconds:
            try:
                schedule_snapshot()
                last_snapshot = now
                log.info("snapshot_scheduled", extra={"component": "site_worker"})
            except QueueFullError as e:
                log.error("snapshot_schedule_refused", extra={"err": str(e)})
            except Exception as e:
                log.error("snapshot_schedule_failed", extra={"err": str(e)})

        try:
            res = run_once(worker, store, SiteSessionLocal, batch=settings.delivery_batch)
            if res["failed"] or res["dead"]:
                fail_streak += 1
            else:
                fail_streak = 0
            if res["sent"]:
                log.info("delivery_batch_sent", extra={"component": "site_worker", "count": res["sent"]})
            if fail_streak >= 3:
                log.error("delivery_failing_repeatedly", extra={"component": "site_worker", "count": fail_streak})
        except Exception as e:
            log.error("delivery_batch_failed", extra={"err": str(e)})

        time.sleep(2)


if __name__ == "__main__":
    main()
