from __future__ import annotations
import bcrypt

_WEAK_SECRETS = {"password", "secret", "changeme", "change_me", "12345678", "123456789", "overwatch"}

def _validate_secret(secret: str) -> None:
    if not secret:
        raise ValueError("secret is required")
    if len(secret) < 8:
        raise ValueError("secret must be at least 8 chars")
    if secret.strip().lower() in _WEAK_SECRETS:
        raise ValueError("secret is too weak")

def hash_secret(secret: str) -> str:
    _validate_secret(secret)
    salt = bcrypt.gensalt(rounds=12)
    h = bcrypt.hashpw(secret.encode("utf-8"), salt)
    return h.decode("utf-8")

def verify_secret(secret: str, secret_hash: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), secret_hash.encode("utf-8"))
    except ValueError:
        return False
