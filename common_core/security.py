from __future__ import annotations

import time
from typing import Any, Optional

import jwt

from common_core.config import settings


def issue_jwt(sub: str, roles: list[str], scope: str = "", ttl_seconds: Optional[int] = None) -> str:
    now = int(time.time())
    ttl = ttl_seconds if ttl_seconds is not None else settings.jwt_ttl_minutes * 60
    payload = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl,
        "sub": sub,
        "roles": roles,
    }
    if scope:
        payload["scope"] = scope
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
    )


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer ...`` header ("" when absent)."""
    if not authorization or not authorization.startswith("Bearer "):
        return ""
    return authorization[7:].strip()
