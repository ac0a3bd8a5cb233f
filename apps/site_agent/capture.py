from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from apps.site_agent import queue_store
from apps.site_agent.models import QUEUE_EVENT
from apps.site_agent.records import (
    ACTION_DELETE,
    ACTION_INSERT,
    ACTION_UPDATE,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    Event,
)
from common_core.config import settings
from common_core.db import SiteSessionLocal
from common_core.errors import CaptureError
from common_core.identity import derive_machine_name

log = logging.getLogger("overwatch.capture")

WATCHED_KINDS = frozenset({"node", "user", "block"})

# Keys that may hold tracebacks or live exception objects.
UNSERIALIZABLE_KEYS = ("backtrace", "exception", "exc_info", "exc_text", "stack_info")

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_LOG_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

# Loggers of the capture and delivery path. Forwarding their errors would
# enqueue new events every time delivery fails.
EXCLUDED_LOGGERS = ("overwatch.capture", "overwatch.queue", "overwatch.delivery", "overwatch.worker")

current_actor: ContextVar[str] = ContextVar("overwatch_actor", default="anonymous")
current_base_url: ContextVar[str] = ContextVar("overwatch_base_url", default="")


class EntityLike(Protocol):
    entity_type: str
    bundle: str


@dataclass(frozen=True)
class SiteContext:
    base_url: str
    site_name: str
    author: str

    @property
    def machine_name(self) -> str:
        return derive_machine_name(self.site_name)


def settings_context() -> SiteContext:
    """Site context from settings plus the actor/base URL bound to the current request."""
    site_name = settings.site_name
    if not site_name:
        raise CaptureError("site name is not configured")
    return SiteContext(
        base_url=current_base_url.get() or settings.site_base_url,
        site_name=site_name,
        author=current_actor.get(),
    )


def enqueue_event_payload(queue_name: str, payload: str) -> None:
    db = SiteSessionLocal()
    try:
        queue_store.enqueue(db, queue_name, payload)
    finally:
        db.close()


class EventCapture:
    """Turns entity lifecycle actions and error logs into queued Events.

    Every public method returns normally whatever happens inside; the return
    value only says whether something was enqueued.
    """

    def __init__(
        self,
        enqueue: Callable[[str, str], Any] = enqueue_event_payload,
        context_provider: Callable[[], SiteContext] = settings_context,
        clock: Callable[[], float] = time.time,
        uuid_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._enqueue = enqueue
        self._context_provider = context_provider
        self._clock = clock
        self._uuid_factory = uuid_factory

    def on_entity_insert(self, entity: EntityLike) -> bool:
        return self.capture_entity_action(entity, ACTION_INSERT)

    def on_entity_update(self, entity: EntityLike) -> bool:
        return self.capture_entity_action(entity, ACTION_UPDATE)

    def on_entity_delete(self, entity: EntityLike) -> bool:
        return self.capture_entity_action(entity, ACTION_DELETE)

    def capture_entity_action(self, entity: EntityLike, action: str) -> bool:
        try:
            kind = entity.entity_type
        except Exception:
            log.exception("capture_entity_kind_unavailable")
            return False
        if kind not in WATCHED_KINDS:
            return False

        try:
            log.info("capture_entity_action", extra={"entity_type": kind, "component": action})
            ctx = self._context_provider()
            event = Event(
                uuid=self._uuid_factory(),
                title=_entity_title(entity, kind),
                author=ctx.author,
                bundle=str(entity.bundle),
                entity=kind,
                timestamp=int(self._clock()),
                type=action,
                site_base_url=ctx.base_url,
                site_machine_name=ctx.machine_name,
                site_name=ctx.site_name,
                severity=SEVERITY_LOW,
                context="",
            )
            self._enqueue(QUEUE_EVENT, event.to_json())
            return True
        except Exception as e:
            log.error("capture_entity_failed", extra={"entity_type": kind, "err": str(e)[:300]})
            return False

    def capture_error(self, message: str, context: Optional[dict[str, Any]] = None, placeholders: Any = None) -> bool:
        try:
            ctx = self._context_provider()
            blob = dict(context or {})
            for key in UNSERIALIZABLE_KEYS:
                blob.pop(key, None)
            blob["message"] = message
            if placeholders:
                blob["serialized_variables"] = placeholders
            event = Event(
                uuid=self._uuid_factory(),
                title="Error log",
                author=ctx.author,
                bundle="error",
                entity="error",
                timestamp=int(self._clock()),
                type=ACTION_INSERT,
                site_base_url=ctx.base_url,
                site_machine_name=ctx.machine_name,
                site_name=ctx.site_name,
                severity=SEVERITY_HIGH,
                context=serialize_context(blob),
            )
            self._enqueue(QUEUE_EVENT, event.to_json())
            return True
        except Exception as e:
            # Logged below ERROR so a capturing handler on the root logger never sees it.
            log.warning("capture_error_failed", extra={"err": str(e)[:300]})
            return False


def _entity_title(entity: EntityLike, kind: str) -> str:
    if kind == "node":
        return str(getattr(entity, "title"))
    label = getattr(entity, "label", None)
    if callable(label):
        label = label()
    return str(label) if label is not None else f"Event on {kind}"


def serialize_context(context: dict[str, Any]) -> str:
    """JSON-encode the context, dropping values that cannot be encoded."""
    clean: dict[str, Any] = {}
    for key, value in context.items():
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            continue
        clean[str(key)] = value
    return json.dumps(clean, separators=(",", ":"), ensure_ascii=False, sort_keys=True)


_guard = threading.local()


class OverwatchLogHandler(logging.Handler):
    """Forwards ERROR records to the capture layer."""

    def __init__(self, capture: Optional[EventCapture] = None):
        super().__init__(level=logging.ERROR)
        self.capture = capture or EventCapture()

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno != logging.ERROR:
            return
        if getattr(_guard, "active", False) or _is_excluded(record.name):
            return
        _guard.active = True
        try:
            context = {k: v for k, v in record.__dict__.items() if k not in _LOG_RECORD_ATTRS}
            context["channel"] = record.name
            placeholders = record.args if isinstance(record.args, (dict, tuple)) and record.args else None
            if isinstance(placeholders, tuple):
                placeholders = [repr(a) for a in placeholders]
            self.capture.capture_error(record.getMessage(), context, placeholders=placeholders)
        except Exception:
            self.handleError(record)
        finally:
            _guard.active = False


def _is_excluded(name: str) -> bool:
    return any(name == p or name.startswith(p + ".") for p in EXCLUDED_LOGGERS)


def install_log_capture(logger: Optional[logging.Logger] = None, capture: Optional[EventCapture] = None) -> OverwatchLogHandler:
    """Attach the handler once; a second call returns the handler already installed."""
    target = logger or logging.getLogger()
    for existing in target.handlers:
        if isinstance(existing, OverwatchLogHandler):
            return existing
    handler = OverwatchLogHandler(capture)
    target.addHandler(handler)
    return handler
