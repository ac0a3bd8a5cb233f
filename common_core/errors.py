"""Error taxonomy shared by the producing site and the monitor.

Capture errors are always swallowed, validation errors become client errors,
delivery errors propagate to the queue so the item is retried.
"""

from __future__ import annotations

from typing import Any, Optional


class OverwatchError(Exception):
    """Base exception for all Overwatch errors."""


class CaptureError(OverwatchError):
    """Building or enqueueing a captured event failed. Logged, never raised to the caller."""


class QueueFullError(OverwatchError):
    """The delivery queue reached its configured depth."""

    def __init__(self, depth: int, max_depth: int):
        super().__init__(f"queue full: depth={depth} max={max_depth}")
        self.depth = depth
        self.max_depth = max_depth


class SnapshotMarkerError(OverwatchError):
    """A snapshot queue item carried a falsy marker. Caller bug, never retried."""


class IngestValidationError(OverwatchError):
    """An inbound payload failed schema or allowed-value validation."""

    def __init__(self, error: str, fields: Optional[list[dict[str, Any]]] = None, allowed: Optional[dict[str, list[str]]] = None):
        super().__init__(error)
        self.error = error
        self.fields = fields or []
        self.allowed = allowed or {}

    def detail(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.error}
        if self.fields:
            out["fields"] = self.fields
        if self.allowed:
            out["allowed"] = self.allowed
        return out


class PartialPersistenceError(OverwatchError):
    """One child record of a snapshot could not be stored."""

    def __init__(self, domain: str, index: int, reason: str):
        super().__init__(f"{domain}[{index}]: {reason}")
        self.domain = domain
        self.index = index
        self.reason = reason


class DeliveryError(OverwatchError):
    """Delivery to the monitor failed; the queue item stays eligible for redelivery."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(DeliveryError):
    """The monitor rejected the credentials (or the connect action failed)."""
