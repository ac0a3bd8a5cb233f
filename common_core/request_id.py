from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from common_core.logging_setup import request_id_ctx

log = logging.getLogger("overwatch.http")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with an X-Request-Id and logs slow or failing calls."""

    slow_ms = 2000

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        started = time.monotonic()
        try:
            resp: Response = await call_next(request)
            resp.headers["X-Request-Id"] = rid
            elapsed_ms = int((time.monotonic() - started) * 1000)
            if resp.status_code >= 500 or elapsed_ms > self.slow_ms:
                log.warning(
                    "request_%s_%s",
                    request.method.lower(),
                    "failed" if resp.status_code >= 500 else "slow",
                    extra={"status_code": resp.status_code, "component": request.url.path},
                )
            return resp
        finally:
            request_id_ctx.reset(token)
