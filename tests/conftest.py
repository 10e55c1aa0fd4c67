from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from fedigate.core.config import Settings
from fedigate.core.logger import configure_logging
from fedigate.core.metrics import reset_metrics_for_tests
from fedigate.core.rate_limit import TokenBucketLimiter
from fedigate.integrations.mastodon.client import ClientContext, MastodonClient
from fedigate.storage.secrets import InMemorySecretStore


BASE_URL = "https://mastodon.example"
ACCESS_TOKEN = "token-abc123"
SERVICE = "fedigate"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "secret_service_name": SERVICE,
        "secret_base_url_account": "base_url",
        "secret_access_token_account": "access_token",
        "secret_store_file_path": "",
        "rate_limit_capacity": 40,
        "rate_limit_refill_per_second": 1.0,
    }
    values.update(overrides)
    return Settings(**values)


def build_secret_store(
    *,
    base_url: Optional[str] = BASE_URL,
    access_token: Optional[str] = ACCESS_TOKEN,
) -> InMemorySecretStore:
    store = InMemorySecretStore()
    if base_url is not None:
        store.save(base_url, service=SERVICE, account="base_url")
    if access_token is not None:
        store.save(access_token, service=SERVICE, account="access_token")
    return store


def build_client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    store: Optional[InMemorySecretStore] = None,
    limiter: Optional[TokenBucketLimiter] = None,
    settings: Optional[Settings] = None,
) -> MastodonClient:
    resolved_settings = settings or build_settings()
    context = ClientContext(
        limiter=limiter
        or TokenBucketLimiter(
            resolved_settings.rate_limit_capacity,
            resolved_settings.rate_limit_refill_per_second,
        ),
        secret_store=store if store is not None else build_secret_store(),
        settings=resolved_settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return MastodonClient(context)


def recording_handler(
    calls: List[httpx.Request],
    response: Callable[[httpx.Request], httpx.Response],
) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return response(request)

    return handler


def account_payload(account_id: str = "101", **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": account_id,
        "username": "ada",
        "acct": "ada@mastodon.example",
        "display_name": "Ada",
        "url": f"{BASE_URL}/@ada",
        "avatar": f"{BASE_URL}/avatars/ada.png",
        "avatar_static": f"{BASE_URL}/avatars/ada.png",
        "bot": False,
        "locked": True,
        "followers_count": 12,
        "following_count": 3,
        "statuses_count": 40,
        "created_at": "2023-01-05T00:00:00.000Z",
        "fields": [],
        "emojis": [],
    }
    payload.update(overrides)
    return payload


def user_payload(**overrides: Any) -> Dict[str, Any]:
    payload = account_payload(
        group=False,
        source={"privacy": "public", "sensitive": False, "language": "en", "note": "", "fields": []},
        roles=[],
    )
    payload.update(overrides)
    return payload


def post_payload(post_id: str = "1", **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": post_id,
        "content": "<p>hello</p>",
        "created_at": "2025-04-17T10:15:30.123Z",
        "account": account_payload(),
        "favourited": False,
        "reblogged": False,
        "reblogs_count": 1,
        "favourites_count": 2,
        "replies_count": 0,
        "media_attachments": [],
        "mentions": [],
        "tags": [{"name": "python", "url": f"{BASE_URL}/tags/python"}],
        "card": None,
        "url": f"{BASE_URL}/@ada/{post_id}",
        "visibility": "public",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True, scope="session")
def _configure_logging() -> None:
    configure_logging()


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    reset_metrics_for_tests()
