from __future__ import annotations

import json
import logging

from apps.site_agent.capture import (
    EventCapture,
    SiteContext,
    install_log_capture,
    serialize_context,
)
from apps.site_agent.models import QUEUE_EVENT
from common_core.errors import QueueFullError


class FakeEntity:
    def __init__(self, entity_type, bundle, title=None, label=None):
        self.entity_type = entity_type
        self.bundle = bundle
        self.title = title
        self.label = label


def _ctx():
    return SiteContext(base_url="https://example.org", site_name="My Site", author="alice")


def _capture(sent, enqueue=None):
    return EventCapture(
        enqueue=enqueue or (lambda q, p: sent.append((q, json.loads(p)))),
        context_provider=_ctx,
        clock=lambda: 1_700_000_000.7,
        uuid_factory=lambda: "uuid-1",
    )


def test_node_insert_enqueues_low_severity_event():
    sent = []
    assert _capture(sent).on_entity_insert(FakeEntity("node", "article", title="Hello")) is True

    queue_name, event = sent[0]
    assert queue_name == QUEUE_EVENT
    assert event == {
        "uuid": "uuid-1",
        "title": "Hello",
        "author": "alice",
        "bundle": "article",
        "entity": "node",
        "timestamp": 1_700_000_000,
        "type": "insert",
        "site_base_url": "https://example.org",
        "site_machine_name": "my_site",
        "site_name": "My Site",
        "severity": "low",
        "context": "",
    }


def test_update_and_delete_use_label_for_non_nodes():
    sent = []
    cap = _capture(sent)
    assert cap.on_entity_update(FakeEntity("user", "user", label=lambda: "bob")) is True
    assert cap.on_entity_delete(FakeEntity("block", "basic", label="Footer")) is True
    assert [(e["type"], e["title"]) for _, e in sent] == [("update", "bob"), ("delete", "Footer")]


def test_unwatched_kinds_are_ignored():
    sent = []
    assert _capture(sent).on_entity_insert(FakeEntity("comment", "comment", label="hi")) is False
    assert sent == []


def test_capture_never_raises_when_enqueue_fails():
    def boom(queue_name, payload):
        raise QueueFullError(10, 10)

    cap = _capture([], enqueue=boom)
    assert cap.on_entity_insert(FakeEntity("node", "page", title="x")) is False
    assert cap.capture_error("failure") is False


def test_capture_never_raises_when_context_is_missing():
    def no_context():
        raise RuntimeError("site name missing")

    cap = EventCapture(enqueue=lambda q, p: None, context_provider=no_context)
    assert cap.on_entity_insert(FakeEntity("node", "page", title="x")) is False


def test_error_capture_is_high_severity_and_drops_unserializable_context():
    sent = []
    ok = _capture(sent).capture_error(
        "Query failed",
        {"exception": ValueError("x"), "backtrace": ["frame"], "obj": object(), "uid": 3},
        placeholders={"@query": "SELECT 1"},
    )
    assert ok is True
    _, event = sent[0]
    assert event["title"] == "Error log"
    assert event["entity"] == "error"
    assert event["bundle"] == "error"
    assert event["severity"] == "high"
    context = json.loads(event["context"])
    assert context == {"message": "Query failed", "serialized_variables": {"@query": "SELECT 1"}, "uid": 3}


def test_serialize_context_is_sorted_json():
    assert serialize_context({"b": 1, "a": [1, 2], "c": {1, 2}}) == '{"a":[1,2],"b":1}'


def test_log_handler_forwards_exactly_error_level():
    sent = []
    logger = logging.getLogger("tests.capture.handler")
    handler = install_log_capture(logger, _capture(sent))
    try:
        logger.warning("just a warning")
        logger.error("disk %s is full", "/var")
        logger.critical("meltdown")
    finally:
        logger.removeHandler(handler)

    assert len(sent) == 1
    context = json.loads(sent[0][1]["context"])
    assert context["message"] == "disk /var is full"
    assert context["channel"] == "tests.capture.handler"


def test_log_handler_does_not_recurse():
    sent = []
    logger = logging.getLogger("tests.capture.recursion")

    def noisy_enqueue(queue_name, payload):
        logger.error("enqueue is logging an error too")
        sent.append(payload)

    handler = install_log_capture(logger, _capture([], enqueue=noisy_enqueue))
    try:
        logger.error("first failure")
    finally:
        logger.removeHandler(handler)

    assert len(sent) == 1
