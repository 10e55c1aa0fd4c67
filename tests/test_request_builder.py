from __future__ import annotations

import json
from typing import Optional

import pytest

from fedigate.core.errors import MissingCredentialsError, RequestBuildError
from fedigate.integrations.mastodon.request_builder import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    RequestBuilder,
    encode_body,
)
from fedigate.storage.secrets import InMemorySecretStore
from tests.conftest import ACCESS_TOKEN, BASE_URL, SERVICE, build_secret_store


def _builder(store: Optional[InMemorySecretStore] = None) -> RequestBuilder:
    return RequestBuilder(
        store if store is not None else build_secret_store(),
        service=SERVICE,
        user_agent="fedigate-tests",
    )


class _BrokenStore:
    def read(self, service: str, account: str) -> Optional[str]:
        raise OSError("keychain locked")


def test_endpoint_url_joins_base_and_path() -> None:
    url = _builder().endpoint_url("/api/v1/timelines/home")
    assert url == f"{BASE_URL}/api/v1/timelines/home"


def test_endpoint_url_appends_query_after_existing_items() -> None:
    url = _builder().endpoint_url("/api/v2/search?type=accounts", query_items=[("limit", 20)])
    assert url == f"{BASE_URL}/api/v2/search?type=accounts&limit=20"


def test_endpoint_url_skips_none_and_renders_booleans() -> None:
    url = _builder().endpoint_url(
        "/api/v1/accounts/7/statuses",
        query_items=[("only_media", True), ("exclude_replies", False), ("max_id", None)],
    )
    assert url == f"{BASE_URL}/api/v1/accounts/7/statuses?only_media=true&exclude_replies=false"


def test_endpoint_url_keeps_duplicate_names_and_encodes_values() -> None:
    url = _builder().endpoint_url("/api/v2/search?q=a", query_items=[("q", "b c&d")])
    assert url.endswith("/api/v2/search?q=a&q=b+c%26d")


def test_endpoint_url_tolerates_slashes_and_base_path() -> None:
    store = build_secret_store(base_url="https://social.example/mastodon/")
    url = _builder(store).endpoint_url("api/v1/instance")
    assert url == "https://social.example/mastodon/api/v1/instance"


def test_endpoint_url_override_skips_store() -> None:
    store = build_secret_store(base_url=None, access_token=None)
    url = _builder(store).endpoint_url("/api/v1/apps", base_url_override=" https://other.example ")
    assert url == "https://other.example/api/v1/apps"


def test_missing_base_url_raises_credentials_error() -> None:
    store = build_secret_store(base_url=None)
    with pytest.raises(MissingCredentialsError) as exc_info:
        _builder(store).endpoint_url("/api/v1/instance")
    assert exc_info.value.code == "credentials.missing"


def test_blank_base_url_counts_as_missing() -> None:
    store = build_secret_store(base_url="   ")
    with pytest.raises(MissingCredentialsError):
        _builder(store).base_url()


@pytest.mark.parametrize("base_url", ["mastodon.example", "ftp://mastodon.example", "https://", "not a url"])
def test_invalid_base_url_raises_invalid_url(base_url: str) -> None:
    store = build_secret_store(base_url=base_url)
    with pytest.raises(RequestBuildError) as exc_info:
        _builder(store).endpoint_url("/api/v1/instance")
    assert exc_info.value.reason == RequestBuildError.INVALID_URL


def test_store_failure_surfaces_as_missing_credentials() -> None:
    builder = RequestBuilder(_BrokenStore(), service=SERVICE)
    with pytest.raises(MissingCredentialsError) as exc_info:
        builder.require_access_token()
    assert isinstance(exc_info.value.cause, OSError)


def test_access_token_is_optional_until_required() -> None:
    builder = _builder(build_secret_store(access_token=None))
    assert builder.access_token() is None
    with pytest.raises(MissingCredentialsError):
        builder.require_access_token()


def test_build_request_sets_bearer_and_json_body() -> None:
    builder = _builder()
    descriptor = builder.build_request(
        f"{BASE_URL}/api/v1/statuses",
        "post",
        body={"status": "hi", "visibility": "public"},
        access_token=ACCESS_TOKEN,
    )

    assert descriptor.method == "POST"
    assert descriptor.path == "/api/v1/statuses"
    assert descriptor.headers["Authorization"] == f"Bearer {ACCESS_TOKEN}"
    assert descriptor.headers["Content-Type"] == JSON_CONTENT_TYPE
    assert descriptor.headers["Accept"] == JSON_CONTENT_TYPE
    assert descriptor.headers["User-Agent"] == "fedigate-tests"
    assert json.loads(descriptor.content) == {"status": "hi", "visibility": "public"}


def test_build_request_without_token_or_body() -> None:
    descriptor = _builder().build_request(f"{BASE_URL}/api/v1/instance", "GET")

    assert "Authorization" not in descriptor.headers
    assert "Content-Type" not in descriptor.headers
    assert descriptor.content is None
    assert descriptor.access_token is None


def test_build_request_form_body() -> None:
    descriptor = _builder().build_request(
        f"{BASE_URL}/api/v1/accounts/update_credentials",
        "PATCH",
        body={"display_name": "Ada L", "note": None, "bot": True},
        content_type=FORM_CONTENT_TYPE,
        access_token=ACCESS_TOKEN,
    )

    assert descriptor.content == b"display_name=Ada+L&bot=true"
    assert descriptor.content_type == FORM_CONTENT_TYPE


def test_build_request_rejects_unsupported_content_type() -> None:
    with pytest.raises(RequestBuildError) as exc_info:
        _builder().build_request(
            f"{BASE_URL}/api/v1/media",
            "POST",
            body={"file": "x"},
            content_type="multipart/form-data",
        )
    assert exc_info.value.reason == RequestBuildError.UNSUPPORTED_CONTENT_TYPE


def test_encode_body_passes_prepared_bytes_through() -> None:
    assert encode_body(b'{"a": 1}', JSON_CONTENT_TYPE) == b'{"a": 1}'
    assert encode_body(b"a=1", FORM_CONTENT_TYPE) == b"a=1"


@pytest.mark.parametrize("content_type", ["text/plain", "application/octet-stream"])
def test_encode_body_rejects_bytes_with_unsupported_content_type(content_type: str) -> None:
    with pytest.raises(RequestBuildError) as exc_info:
        encode_body(b"raw", content_type)
    assert exc_info.value.reason == RequestBuildError.UNSUPPORTED_CONTENT_TYPE


def test_encode_body_rejects_unserializable_json() -> None:
    with pytest.raises(RequestBuildError) as exc_info:
        encode_body({"when": object()}, JSON_CONTENT_TYPE)
    assert exc_info.value.reason == RequestBuildError.UNSERIALIZABLE_BODY
    assert isinstance(exc_info.value.cause, TypeError)


def test_descriptor_never_exposes_token_in_repr_or_redacted_headers() -> None:
    descriptor = _builder().build_request(
        f"{BASE_URL}/api/v1/timelines/home",
        "GET",
        access_token=ACCESS_TOKEN,
    )

    assert ACCESS_TOKEN not in repr(descriptor)
    assert descriptor.redacted_headers()["Authorization"] == "<redacted>"
    assert descriptor.redacted_headers()["Accept"] == JSON_CONTENT_TYPE


def test_metrics_path_prefers_route_template() -> None:
    builder = _builder()
    url = f"{BASE_URL}/api/v1/statuses/42/favourite"

    templated = builder.build_request(url, "POST", route="/api/v1/statuses/{id}/favourite")
    plain = builder.build_request(url, "POST")

    assert templated.metrics_path == "/api/v1/statuses/{id}/favourite"
    assert templated.path == "/api/v1/statuses/42/favourite"
    assert plain.metrics_path == "/api/v1/statuses/42/favourite"
