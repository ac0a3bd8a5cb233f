from __future__ import annotations

from typing import Any, Dict

from fastapi import Depends, HTTPException, Request

from common_core.security import bearer_token, verify_jwt


def get_claims(request: Request) -> Dict[str, Any]:
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        raise HTTPException(status_code=401, detail="missing_token")
    try:
        return verify_jwt(token)
    except Exception:
        raise HTTPException(status_code=401, detail="invalid_token")


def require_scope(scope: str):
    def _dep(claims: Dict[str, Any] = Depends(get_claims)) -> Dict[str, Any]:
        granted = set((claims.get("scope") or "").split())
        if scope not in granted:
            raise HTTPException(status_code=403, detail="insufficient_scope")
        return claims

    return _dep
