from __future__ import annotations

import logging

from fastapi import APIRouter, Form, HTTPException

from apps.monitor_backend.models import ApiClient, MonitorUser
from common_core.config import settings
from common_core.db import MonitorSessionLocal
from common_core.passwords import verify_secret
from common_core.security import issue_jwt

log = logging.getLogger("overwatch.oauth")

router = APIRouter(tags=["oauth"])

GRANT_TYPES = {"client_credentials", "password"}


@router.post("/oauth/token")
def token(
    grant_type: str = Form(...),
    client_id: str = Form(...),
    client_secret: str = Form(...),
    username: str = Form(""),
    password: str = Form(""),
    scope: str = Form(""),
):
    if grant_type not in GRANT_TYPES:
        raise HTTPException(status_code=400, detail="unsupported_grant_type")

    db = MonitorSessionLocal()
    try:
        client = db.get(ApiClient, client_id.strip())
        if client is None or not client.is_active or not verify_secret(client_secret, client.secret_hash):
            log.warning("oauth_client_rejected", extra={"component": "oauth"})
            raise HTTPException(status_code=401, detail="invalid_client")

        user = db.get(MonitorUser, username.strip()) if username else None
        if user is None or not verify_secret(password, user.password_hash):
            log.warning("oauth_user_rejected", extra={"component": "oauth"})
            raise HTTPException(status_code=401, detail="invalid_grant")

        allowed = set((client.scopes or "").split())
        requested = set(scope.split()) or allowed
        if not requested <= allowed:
            raise HTTPException(status_code=400, detail="invalid_scope")

        roles = [r.strip() for r in (user.roles or "").split(",") if r.strip()]
        ttl = settings.oauth_token_ttl_seconds
        access_token = issue_jwt(sub=user.username, roles=roles, scope=" ".join(sorted(requested)), ttl_seconds=ttl)
        log.info("oauth_token_issued", extra={"component": "oauth"})
        return {"access_token": access_token, "token_type": "Bearer", "expires_in": ttl}
    finally:
        db.close()
