from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from apps.site_agent.models import SiteCredential
from apps.site_agent.records import Credential
from common_core.config import settings
from common_core.errors import AuthError

log = logging.getLogger("overwatch.credentials")

CREDENTIAL_ROW_ID = 1


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CredentialStore:
    """The single bearer token of this installation.

    Written only by the explicit connect action. Readers get whatever is stored,
    expired or not; nothing here refreshes the token.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def load(self) -> Credential:
        db = self._session_factory()
        try:
            row = db.get(SiteCredential, CREDENTIAL_ROW_ID)
            if row is None:
                return Credential()
            return Credential(access_token=row.access_token, expires_at=row.expires_at)
        finally:
            db.close()

    def save(self, access_token: str, expires_in: int, now: Optional[int] = None) -> Credential:
        issued = int(time.time()) if now is None else int(now)
        expires_at = issued + int(expires_in)
        db = self._session_factory()
        try:
            row = db.get(SiteCredential, CREDENTIAL_ROW_ID)
            if row is None:
                row = SiteCredential(id=CREDENTIAL_ROW_ID, updated_at_utc=_now())
                db.add(row)
            row.access_token = access_token
            row.expires_at = expires_at
            row.updated_at_utc = _now()
            db.commit()
        finally:
            db.close()
        return Credential(access_token=access_token, expires_at=expires_at)

    def clear(self) -> None:
        db = self._session_factory()
        try:
            row = db.get(SiteCredential, CREDENTIAL_ROW_ID)
            if row is not None:
                db.delete(row)
                db.commit()
        finally:
            db.close()


def connection_status(credential: Credential, now: Optional[int] = None) -> dict:
    """Summary for the admin surface: remaining days, or disconnected."""
    now = int(time.time()) if now is None else now
    days = credential.remaining_days(now)
    return {"connected": days is not None, "remaining_days": days}


def request_token(
    base_url: str,
    client_id: str,
    client_secret: str,
    username: str,
    password: str,
    scope: str = "rest_api",
    client: Optional[httpx.Client] = None,
    timeout: float = 15.0,
) -> dict:
    form = {
        "client_id": client_id,
        "client_secret": client_secret,
        "username": username,
        "password": password,
        "grant_type": "client_credentials",
        "scope": scope,
    }
    url = base_url.rstrip("/") + "/oauth/token"
    own_client = client is None
    http = client or httpx.Client(timeout=timeout)
    try:
        resp = http.post(url, data=form)
    except httpx.HTTPError as e:
        raise AuthError(f"token request failed: {str(e)[:200]}") from e
    finally:
        if own_client:
            http.close()

    if resp.status_code != 200:
        raise AuthError(f"token endpoint returned {resp.status_code}", status_code=resp.status_code)
    try:
        data = resp.json()
    except ValueError as e:
        raise AuthError("token endpoint returned a non-JSON body", status_code=resp.status_code) from e
    if not isinstance(data, dict) or not data.get("access_token") or not data.get("expires_in"):
        raise AuthError("token response is missing access_token or expires_in", status_code=resp.status_code)
    return data


def connect(store: CredentialStore, client: Optional[httpx.Client] = None, now: Optional[int] = None) -> Credential:
    """Exchange the configured operator credentials for a token and store it."""
    data = request_token(
        settings.monitoring_site_url,
        settings.oauth_client_id,
        settings.oauth_client_secret,
        settings.oauth_username,
        settings.oauth_password,
        scope=settings.oauth_scope,
        client=client,
        timeout=settings.delivery_timeout_seconds,
    )
    cred = store.save(str(data["access_token"]), int(data["expires_in"]), now=now)
    log.info("site_connected", extra={"component": "credentials"})
    return cred
