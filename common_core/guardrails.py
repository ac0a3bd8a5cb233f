from __future__ import annotations

from common_core.config import settings


class ConfigError(RuntimeError):
    pass


def _must_set(name: str, value: str, min_len: int = 32) -> None:
    if not value:
        raise ConfigError(f"{name} is required")
    if value.strip().upper() == "CHANGE_ME":
        raise ConfigError(f"{name} must not be CHANGE_ME")
    if len(value) < min_len:
        raise ConfigError(f"{name} must be at least {min_len} chars")


def validate_monitor_secrets() -> None:
    _must_set("JWT_SECRET", settings.jwt_secret, 32)


def validate_site_config() -> None:
    if not settings.site_name.strip():
        raise ConfigError("SITE_NAME is required")
    if not settings.monitoring_site_url.startswith(("http://", "https://")):
        raise ConfigError("MONITORING_SITE_URL must be an http(s) URL")
    if settings.queue_max_depth < 1:
        raise ConfigError("QUEUE_MAX_DEPTH must be positive")
