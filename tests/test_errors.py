from __future__ import annotations

import httpx
import pytest

from fedigate.core.errors import (
    AppError,
    DecodingError,
    ErrorKind,
    HTTPStatusError,
    MissingCredentialsError,
    NetworkError,
    RateLimitExceededError,
    map_transport_error,
    validate_status,
)


@pytest.mark.parametrize("status_code", [200, 201, 204, 299])
def test_success_statuses_produce_no_error(status_code: int) -> None:
    assert validate_status(status_code) is None


@pytest.mark.parametrize(
    ("status_code", "reason"),
    [
        (401, HTTPStatusError.UNAUTHORIZED),
        (403, HTTPStatusError.FORBIDDEN),
        (404, HTTPStatusError.NOT_FOUND),
        (500, HTTPStatusError.SERVER_ERROR),
        (422, HTTPStatusError.SERVER_ERROR),
        (302, HTTPStatusError.SERVER_ERROR),
        (429, HTTPStatusError.SERVER_ERROR),
    ],
)
def test_error_statuses_map_to_reasons(status_code: int, reason: str) -> None:
    error = validate_status(status_code)
    assert isinstance(error, HTTPStatusError)
    assert error.reason == reason
    assert error.kind is ErrorKind.HTTP
    assert error.status_code == status_code


def test_server_error_keeps_status() -> None:
    error = validate_status(500)
    assert error is not None
    assert error.code == "http.server_error"
    assert "status=500" in str(error)


@pytest.mark.parametrize("status_code", [None, "200", 200.0, True])
def test_unusable_status_is_invalid_response(status_code: object) -> None:
    error = validate_status(status_code)
    assert error is not None
    assert error.reason == HTTPStatusError.INVALID_RESPONSE


def test_validate_status_is_pure() -> None:
    first = validate_status(404)
    second = validate_status(404)
    assert first is not second
    assert (first.code, first.status_code) == (second.code, second.status_code)


def test_transport_errors_map_to_network_kinds() -> None:
    request = httpx.Request("GET", "https://mastodon.example/api/v1/timelines/home")

    timeout = map_transport_error(httpx.ReadTimeout("slow", request=request))
    connect_timeout = map_transport_error(httpx.ConnectTimeout("slow", request=request))
    lost = map_transport_error(httpx.ConnectError("down", request=request))
    reset = map_transport_error(httpx.ReadError("reset", request=request))
    protocol = map_transport_error(httpx.RemoteProtocolError("garbled", request=request))

    assert timeout.reason == NetworkError.TIMED_OUT
    assert connect_timeout.reason == NetworkError.TIMED_OUT
    assert lost.reason == NetworkError.CONNECTIVITY_LOST
    assert reset.reason == NetworkError.CONNECTIVITY_LOST
    assert protocol.reason == NetworkError.REQUEST_FAILED
    assert all(isinstance(error, NetworkError) for error in (timeout, lost, protocol))


def test_unexpected_errors_map_to_other_with_cause() -> None:
    cause = RuntimeError("boom")
    error = map_transport_error(cause)

    assert type(error) is AppError
    assert error.kind is ErrorKind.OTHER
    assert error.code == "other.unknown_error"
    assert error.cause is cause
    assert error.__cause__ is cause


def test_error_codes_and_user_messages() -> None:
    assert MissingCredentialsError().code == "credentials.missing"
    assert RateLimitExceededError().code == "rate_limit.exceeded"
    assert DecodingError(DecodingError.MALFORMED).code == "decoding.malformed"
    assert "Too many requests" in RateLimitExceededError().user_message
    assert NetworkError(NetworkError.TIMED_OUT).user_message != ""
