from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql

from apps.site_agent import queue_store
from apps.site_agent.models import QUEUE_EVENT, QueueItem
from common_core.config import settings
from common_core.db import SiteSessionLocal
from common_core.errors import QueueFullError


@pytest.fixture
def db():
    s = SiteSessionLocal()
    try:
        yield s
    finally:
        s.close()


def test_claim_leases_items(db):
    queue_store.enqueue(db, QUEUE_EVENT, '{"a":1}')
    queue_store.enqueue(db, QUEUE_EVENT, '{"a":2}')

    first = queue_store.claim(db, limit=10)
    assert [i.payload for i in first] == ['{"a":1}', '{"a":2}']
    assert queue_store.claim(db, limit=10) == []

    later = queue_store._now() + timedelta(seconds=settings.queue_lease_seconds + 1)
    assert len(queue_store.claim(db, limit=10, now=later)) == 2


def test_ack_removes_item(db):
    queue_store.enqueue(db, QUEUE_EVENT, "{}")
    (item,) = queue_store.claim(db)
    queue_store.ack(db, item)
    assert queue_store.depth(db) == 0


def test_enqueue_refuses_when_full(db):
    queue_store.enqueue(db, QUEUE_EVENT, "{}", max_depth=2)
    queue_store.enqueue(db, QUEUE_EVENT, "{}", max_depth=2)
    with pytest.raises(QueueFullError) as exc:
        queue_store.enqueue(db, QUEUE_EVENT, "{}", max_depth=2)
    assert exc.value.depth == 2
    assert queue_store.depth(db) == 2


def test_fail_backs_off_and_keeps_payload(db):
    queue_store.enqueue(db, QUEUE_EVENT, '{"keep":"me"}')
    (item,) = queue_store.claim(db)
    now = queue_store._now()

    assert queue_store.fail(db, item, "monitor returned 500", now=now) is False
    assert item.retry_count == 1
    assert item.next_attempt_at_utc > now
    assert queue_store.claim(db, now=now) == []

    (again,) = queue_store.claim(db, now=now + timedelta(hours=1))
    assert again.payload == '{"keep":"me"}'


def test_fail_dead_letters_after_max_retries(db, monkeypatch):
    monkeypatch.setattr(settings, "queue_max_retries", 2)
    queue_store.enqueue(db, QUEUE_EVENT, "{}")
    (item,) = queue_store.claim(db)
    now = queue_store._now()

    assert queue_store.fail(db, item, "boom", now=now) is False
    assert queue_store.fail(db, item, "boom", now=now) is True
    assert queue_store.depth(db) == 0
    assert queue_store.dead_letter_count(db) == 1

    assert queue_store.requeue_dead_letters(db) == 1
    assert queue_store.dead_letter_count(db) == 0
    requeued = db.query(QueueItem).one()
    assert requeued.retry_count == 0


def test_claim_locks_rows_and_skips_locked_ones():
    sql = str(queue_store.claimable(10, queue_store._now()).compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE SKIP LOCKED" in sql


def test_second_worker_does_not_claim_leased_items(db):
    queue_store.enqueue(db, QUEUE_EVENT, '{"a":1}')
    queue_store.enqueue(db, QUEUE_EVENT, '{"a":2}')
    other = SiteSessionLocal()
    try:
        assert len(queue_store.claim(db, limit=10)) == 2
        assert queue_store.claim(other, limit=10) == []
    finally:
        other.close()
