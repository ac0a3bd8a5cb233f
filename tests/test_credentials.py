from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from apps.site_agent.credentials import CredentialStore, connect, connection_status
from apps.site_agent.records import Credential
from common_core.db import SiteSessionLocal
from common_core.errors import AuthError


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_connect_stores_token_and_expiry(monkeypatch):
    from common_core.config import settings

    monkeypatch.setattr(settings, "oauth_client_id", "site-client")
    monkeypatch.setattr(settings, "oauth_username", "reporter")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["form"] = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        return httpx.Response(200, json={"access_token": "abc", "expires_in": 30 * 86400, "token_type": "Bearer"})

    store = CredentialStore(SiteSessionLocal)
    cred = connect(store, client=_client(handler), now=1000)

    assert seen["path"] == "/oauth/token"
    assert seen["form"]["grant_type"] == "client_credentials"
    assert seen["form"]["client_id"] == "site-client"
    assert seen["form"]["username"] == "reporter"
    assert seen["form"]["scope"] == "rest_api"
    assert cred == Credential("abc", 1000 + 30 * 86400)
    assert store.load() == cred
    assert connection_status(store.load(), now=1000) == {"connected": True, "remaining_days": 30}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"error": "invalid_client"}),
        httpx.Response(200, json={"access_token": "abc"}),
        httpx.Response(200, text="not json"),
    ],
)
def test_connect_failure_leaves_store_untouched(response):
    store = CredentialStore(SiteSessionLocal)
    with pytest.raises(AuthError):
        connect(store, client=_client(lambda request: response))
    assert store.load() == Credential()
    assert connection_status(store.load(), now=1000) == {"connected": False, "remaining_days": None}


def test_connect_transport_error_is_auth_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(AuthError):
        connect(CredentialStore(SiteSessionLocal), client=_client(handler))


def test_reconnect_replaces_token():
    store = CredentialStore(SiteSessionLocal)
    store.save("old", 100, now=0)
    store.save("new", 200, now=0)
    assert store.load() == Credential("new", 200)
    store.clear()
    assert store.load() == Credential()
