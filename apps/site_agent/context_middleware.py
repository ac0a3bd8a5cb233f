from __future__ import annotations

from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from apps.site_agent.capture import current_actor, current_base_url

ANONYMOUS = "anonymous"


def default_actor(request: Request) -> str:
    """Account name of the authenticated user, as set by starlette's AuthenticationMiddleware."""
    user = request.scope.get("user")
    if user is None or not getattr(user, "is_authenticated", False):
        return ANONYMOUS
    return str(getattr(user, "display_name", "") or ANONYMOUS)


class SiteContextMiddleware(BaseHTTPMiddleware):
    """Binds the acting user and the scheme+host of each request for event capture."""

    def __init__(self, app, actor_resolver: Optional[Callable[[Request], str]] = None):
        super().__init__(app)
        self.actor_resolver = actor_resolver or default_actor

    async def dispatch(self, request: Request, call_next):
        actor_token = current_actor.set(self.actor_resolver(request) or ANONYMOUS)
        base_token = current_base_url.set(f"{request.url.scheme}://{request.url.netloc}")
        try:
            return await call_next(request)
        finally:
            current_base_url.reset(base_token)
            current_actor.reset(actor_token)
