from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select

from apps.site_agent.models import DeadLetter, QueueItem
from common_core.config import settings
from common_core.errors import QueueFullError

log = logging.getLogger("overwatch.queue")


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _next_backoff(retry_count: int, now: datetime) -> datetime:
    secs = min(600, 5 * (2 ** max(0, retry_count)))
    return now + timedelta(seconds=secs)


def depth(db) -> int:
    return int(db.execute(select(func.count()).select_from(QueueItem)).scalar_one() or 0)


def dead_letter_count(db) -> int:
    return int(db.execute(select(func.count()).select_from(DeadLetter)).scalar_one() or 0)


def enqueue(db, queue_name: str, payload: str, max_depth: Optional[int] = None) -> QueueItem:
    """Add an item and commit. Refuses new items once the queue is at its bound."""
    limit = settings.queue_max_depth if max_depth is None else max_depth
    current = depth(db)
    if current >= limit:
        raise QueueFullError(current, limit)
    now = _now()
    item = QueueItem(
        queue_name=queue_name,
        payload=payload,
        created_at_utc=now,
        retry_count=0,
        next_attempt_at_utc=now,
        leased_until_utc=None,
        last_error=None,
    )
    db.add(item)
    db.commit()
    return item


def claimable(limit: int, now: datetime, queue_name: Optional[str] = None):
    """Due, unleased items, row-locked until the claiming transaction commits.

    SKIP LOCKED lets concurrent workers pass over rows another worker is leasing.
    SQLite renders no FOR UPDATE and is meant for a single worker (dev and tests).
    """
    stmt = (
        select(QueueItem)
        .where((QueueItem.next_attempt_at_utc.is_(None)) | (QueueItem.next_attempt_at_utc <= now))
        .where((QueueItem.leased_until_utc.is_(None)) | (QueueItem.leased_until_utc <= now))
        .order_by(QueueItem.created_at_utc.asc(), QueueItem.id.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    if queue_name:
        stmt = stmt.where(QueueItem.queue_name == queue_name)
    return stmt


def claim(db, limit: int = 100, now: Optional[datetime] = None, queue_name: Optional[str] = None) -> list[QueueItem]:
    """Lease due items so no other worker picks them up until the lease expires."""
    now = now or _now()
    rows = db.execute(claimable(limit, now, queue_name)).scalars().all()
    lease = now + timedelta(seconds=settings.queue_lease_seconds)
    for r in rows:
        r.leased_until_utc = lease
    db.commit()
    return list(rows)


def ack(db, item: QueueItem) -> None:
    db.delete(item)
    db.commit()


def fail(db, item: QueueItem, error: str, now: Optional[datetime] = None) -> bool:
    """Record a failed attempt. Returns True when the item was moved to the dead letter table."""
    now = now or _now()
    item.retry_count = int(item.retry_count or 0) + 1
    item.last_error = error[:300]
    item.leased_until_utc = None
    if item.retry_count >= settings.queue_max_retries:
        extra = {"queue_name": item.queue_name, "queue_item_id": item.id, "err": error[:300]}
        _move_to_dead_letter(db, item, error, now)
        db.commit()
        log.error("queue_item_dead_lettered", extra=extra)
        return True
    item.next_attempt_at_utc = _next_backoff(item.retry_count, now)
    db.commit()
    return False


def dead_letter(db, item: QueueItem, error: str, now: Optional[datetime] = None) -> None:
    _move_to_dead_letter(db, item, error, now or _now())
    db.commit()


def _move_to_dead_letter(db, item: QueueItem, error: str, now: datetime) -> None:
    db.add(
        DeadLetter(
            queue_name=item.queue_name,
            payload=item.payload,
            retry_count=int(item.retry_count or 0),
            error=error[:300],
            queued_at_utc=item.created_at_utc,
            created_at_utc=now,
        )
    )
    db.delete(item)


def requeue_dead_letters(db, limit: int = 200) -> int:
    rows = db.execute(select(DeadLetter).order_by(DeadLetter.created_at_utc.asc()).limit(limit)).scalars().all()
    now = _now()
    for dl in rows:
        db.add(
            QueueItem(
                queue_name=dl.queue_name,
                payload=dl.payload,
                created_at_utc=now,
                retry_count=0,
                next_attempt_at_utc=now,
            )
        )
        db.delete(dl)
    db.commit()
    return len(rows)
