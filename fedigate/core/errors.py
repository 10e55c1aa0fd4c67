"""Typed error taxonomy shared by every layer of the gateway."""

from __future__ import annotations

from enum import Enum
from typing import Optional

import httpx


class ErrorKind(str, Enum):
    NETWORK = "network"
    HTTP = "http"
    DECODING = "decoding"
    CREDENTIALS = "credentials"
    RATE_LIMIT = "rate_limit"
    OTHER = "other"


_USER_MESSAGES = {
    ErrorKind.NETWORK: "The server could not be reached. Check your connection and try again.",
    ErrorKind.HTTP: "The server rejected the request.",
    ErrorKind.DECODING: "The server sent a response that could not be read.",
    ErrorKind.CREDENTIALS: "You are not signed in to an instance.",
    ErrorKind.RATE_LIMIT: "Too many requests. Wait a moment before trying again.",
    ErrorKind.OTHER: "Something went wrong.",
}


class AppError(RuntimeError):
    """Base gateway error.

    Every error carries a ``kind`` (the family from :class:`ErrorKind`), a
    snake_case ``reason`` inside that family and, where one exists, the
    underlying ``cause``. The cause is also chained as ``__cause__`` so
    tracebacks show the original transport or validation failure.
    """

    kind: ErrorKind = ErrorKind.OTHER

    def __init__(
        self,
        reason: str,
        *,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.reason = reason
        self.detail = detail
        self.status_code = status_code
        self.cause = cause
        message = self.code
        if status_code is not None:
            message = f"{message} status={status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def code(self) -> str:
        return f"{self.kind.value}.{self.reason}"

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self.kind]


class NetworkError(AppError):
    kind = ErrorKind.NETWORK

    CONNECTIVITY_LOST = "connectivity_lost"
    TIMED_OUT = "timed_out"
    REQUEST_FAILED = "request_failed"


class HTTPStatusError(AppError):
    kind = ErrorKind.HTTP

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    INVALID_RESPONSE = "invalid_response"


class DecodingError(AppError):
    kind = ErrorKind.DECODING

    MALFORMED = "malformed"


class MissingCredentialsError(AppError):
    kind = ErrorKind.CREDENTIALS

    MISSING = "missing"

    def __init__(self, detail: Optional[str] = None, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(self.MISSING, detail=detail, cause=cause)


class RateLimitExceededError(AppError):
    kind = ErrorKind.RATE_LIMIT

    EXCEEDED = "exceeded"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(self.EXCEEDED, detail=detail)


class RequestBuildError(AppError):
    kind = ErrorKind.OTHER

    INVALID_URL = "invalid_url"
    UNSUPPORTED_CONTENT_TYPE = "unsupported_content_type"
    INVALID_HASHTAG = "invalid_hashtag"
    UNSERIALIZABLE_BODY = "unserializable_body"


UNKNOWN_ERROR = "unknown_error"

_STATUS_REASONS = {
    401: HTTPStatusError.UNAUTHORIZED,
    403: HTTPStatusError.FORBIDDEN,
    404: HTTPStatusError.NOT_FOUND,
}


def validate_status(status_code: object) -> Optional[HTTPStatusError]:
    """Map an HTTP status to its error, or ``None`` for 2xx."""

    if isinstance(status_code, bool) or not isinstance(status_code, int):
        return HTTPStatusError(HTTPStatusError.INVALID_RESPONSE, detail=f"unusable status {status_code!r}")
    if 200 <= status_code <= 299:
        return None
    reason = _STATUS_REASONS.get(status_code, HTTPStatusError.SERVER_ERROR)
    return HTTPStatusError(reason, status_code=status_code)


def map_transport_error(exc: BaseException) -> AppError:
    # Timeouts are checked first: httpx.ConnectTimeout is also a transport error.
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(NetworkError.TIMED_OUT, detail=exc.__class__.__name__, cause=exc)
    if isinstance(exc, httpx.NetworkError):
        return NetworkError(NetworkError.CONNECTIVITY_LOST, detail=exc.__class__.__name__, cause=exc)
    if isinstance(exc, httpx.HTTPError):
        return NetworkError(NetworkError.REQUEST_FAILED, detail=exc.__class__.__name__, cause=exc)
    return AppError(UNKNOWN_ERROR, detail=exc.__class__.__name__, cause=exc)
