from __future__ import annotations

import logging
from typing import Optional

import httpx

from apps.site_agent import queue_store
from apps.site_agent.credentials import CredentialStore
from apps.site_agent.models import QUEUE_EVENT, QUEUE_SYSTEM_DATA, QueueItem
from apps.site_agent.records import Credential
from apps.site_agent.snapshot import SnapshotBuilder, require_snapshot_marker
from common_core.errors import AuthError, DeliveryError, SnapshotMarkerError

log = logging.getLogger("overwatch.delivery")

ENDPOINTS = {
    QUEUE_EVENT: "/api/overwatch/event",
    QUEUE_SYSTEM_DATA: "/api/overwatch/system_data",
}


class DeliveryWorker:
    """Posts queued items to the monitor. Stateless per item."""

    def __init__(
        self,
        base_url: str,
        snapshot_builder: Optional[SnapshotBuilder] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.snapshot_builder = snapshot_builder
        self._client = client
        self.timeout = timeout

    def endpoint_for(self, queue_name: str) -> str:
        path = ENDPOINTS.get(queue_name)
        if path is None:
            raise DeliveryError(f"unknown queue {queue_name}")
        return self.base_url + path

    def body_for(self, item: QueueItem) -> str:
        if item.queue_name == QUEUE_SYSTEM_DATA:
            require_snapshot_marker(item.payload)
            if self.snapshot_builder is None:
                raise DeliveryError("no snapshot builder configured")
            return self.snapshot_builder.build_json()
        return item.payload

    def process_item(self, item: QueueItem, credential: Credential) -> str:
        """POST one item; return the remote id or raise DeliveryError."""
        url = self.endpoint_for(item.queue_name)
        body = self.body_for(item)
        headers = {
            "Authorization": credential.authorization_header(),
            "Content-Type": "application/json",
        }
        log.debug("delivery_processing", extra={"queue_name": item.queue_name, "queue_item_id": item.id})

        try:
            if self._client is not None:
                resp = self._client.post(url, content=body.encode("utf-8"), headers=headers)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(url, content=body.encode("utf-8"), headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryError(f"transport: {str(e)[:250]}") from e

        if resp.status_code in (401, 403):
            log.error(
                "delivery_rejected_auth",
                extra={"queue_name": item.queue_name, "queue_item_id": item.id, "status_code": resp.status_code},
            )
            raise AuthError(f"monitor rejected credentials: {resp.status_code}", status_code=resp.status_code)
        if resp.status_code != 201:
            log.error(
                "delivery_failed",
                extra={
                    "queue_name": item.queue_name,
                    "queue_item_id": item.id,
                    "status_code": resp.status_code,
                    "err": resp.text[:300],
                },
            )
            raise DeliveryError(f"monitor returned {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or data.get("id") in (None, ""):
            log.error(
                "delivery_response_missing_id",
                extra={"queue_name": item.queue_name, "queue_item_id": item.id, "status_code": resp.status_code},
            )
            raise DeliveryError("201 response without id", status_code=resp.status_code)

        log.info("delivery_created", extra={"queue_name": item.queue_name, "entity_id": str(data["id"])})
        return str(data["id"])


def run_once(worker: DeliveryWorker, store: CredentialStore, session_factory, batch: int = 100) -> dict:
    db = session_factory()
    sent = failed = dead = 0
    try:
        items = queue_store.claim(db, limit=batch)
        for item in items:
            credential = store.load()
            try:
                worker.process_item(item, credential)
            except SnapshotMarkerError as e:
                queue_store.dead_letter(db, item, str(e))
                dead += 1
                continue
            except DeliveryError as e:
                if queue_store.fail(db, item, str(e)):
                    dead += 1
                else:
                    failed += 1
                continue
            except Exception as e:
                log.exception("delivery_unexpected_error", extra={"queue_item_id": item.id})
                if queue_store.fail(db, item, f"unexpected: {str(e)[:250]}"):
                    dead += 1
                else:
                    failed += 1
                continue
            queue_store.ack(db, item)
            sent += 1
        return {"sent": sent, "failed": failed, "dead": dead}
    finally:
        db.close()
