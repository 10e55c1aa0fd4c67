"""Central runtime configuration for fedigate."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"
    app_name: str = "fedigate"
    app_version: str = "0.1.0"
    secret_service_name: str = "fedigate"
    secret_base_url_account: str = "base_url"
    secret_access_token_account: str = "access_token"
    secret_store_file_path: str = ""
    mastodon_base_url: str = ""
    mastodon_access_token: str = ""
    rate_limit_capacity: int = 40
    rate_limit_refill_per_second: float = 1.0
    http_timeout_seconds: float = 30.0
    timeline_timeout_seconds: float = 60.0
    http_user_agent: str = "fedigate/0.1.0"
    oauth_client_name: str = "fedigate"
    oauth_redirect_uri: str = "urn:ietf:wg:oauth:2.0:oob"
    oauth_scopes: str = "read write follow push"
    oauth_website: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def _validate(settings: Settings) -> Settings:
    if settings.rate_limit_capacity <= 0:
        raise ValueError("RATE_LIMIT_CAPACITY must be positive.")
    if settings.rate_limit_refill_per_second < 0:
        raise ValueError("RATE_LIMIT_REFILL_PER_SECOND must not be negative.")
    if settings.http_timeout_seconds <= 0:
        raise ValueError("HTTP_TIMEOUT_SECONDS must be positive.")
    if settings.timeline_timeout_seconds <= 0:
        raise ValueError("TIMELINE_TIMEOUT_SECONDS must be positive.")
    if settings.log_format.lower() not in {"json", "console"}:
        raise ValueError("LOG_FORMAT must be one of: json, console.")
    if not settings.secret_service_name.strip():
        raise ValueError("SECRET_SERVICE_NAME must not be empty.")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return validated settings as a cached singleton."""

    return _validate(Settings())
