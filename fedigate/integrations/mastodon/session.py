"""Request execution, response validation and payload decoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import time
from typing import Any, List, Mapping, Optional, Type, TypeVar
import uuid

import httpx
from pydantic import TypeAdapter, ValidationError

from fedigate.core.errors import DecodingError, RateLimitExceededError, map_transport_error, validate_status
from fedigate.core.logger import get_logger
from fedigate.core.metrics import record_api_error, record_api_request, record_rate_limit_block
from fedigate.core.rate_limit import TokenBucketLimiter
from fedigate.integrations.mastodon.request_builder import RequestDescriptor


T = TypeVar("T")

BODY_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class ResponseEnvelope:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


def _preview(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    if len(text) > BODY_PREVIEW_CHARS:
        return text[:BODY_PREVIEW_CHARS] + "..."
    return text


def _error_locations(exc: ValidationError) -> List[str]:
    return [".".join(str(part) for part in error["loc"]) or "<root>" for error in exc.errors()]


@lru_cache(maxsize=None)
def _type_adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(response_type)


def decode_body(response_type: Type[T], body: bytes) -> T:
    """Decode a JSON body into ``response_type``; raises pydantic's ValidationError."""

    return _type_adapter(response_type).validate_json(body)


class SessionExecutor:
    """Runs request descriptors against the API.

    Admission is decided by the token bucket before any I/O. A rejected call
    raises :class:`RateLimitExceededError` immediately; an admitted call has
    spent its token even if it is later cancelled or fails.
    """

    def __init__(
        self,
        limiter: TokenBucketLimiter,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._limiter = limiter
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds
        self._logger = get_logger("fedigate.session")

    @property
    def limiter(self) -> TokenBucketLimiter:
        return self._limiter

    def _admit(self, descriptor: RequestDescriptor, cost: int) -> None:
        if self._limiter.try_consume(cost):
            return
        self._logger.warning(
            "rate_limit_exceeded",
            method=descriptor.method,
            url=descriptor.url,
            cost=cost,
        )
        record_rate_limit_block(kind="client")
        record_api_error(code=f"{RateLimitExceededError.kind.value}.{RateLimitExceededError.EXCEEDED}")
        raise RateLimitExceededError(f"{descriptor.method} {descriptor.path}")

    async def _send(self, descriptor: RequestDescriptor, timeout: Optional[float]) -> httpx.Response:
        effective_timeout = timeout if timeout is not None else self._timeout_seconds
        if self._http_client is not None:
            return await self._http_client.request(
                descriptor.method,
                descriptor.url,
                content=descriptor.content,
                headers=dict(descriptor.headers),
                timeout=effective_timeout,
            )
        async with httpx.AsyncClient(timeout=effective_timeout) as client:
            return await client.request(
                descriptor.method,
                descriptor.url,
                content=descriptor.content,
                headers=dict(descriptor.headers),
            )

    async def execute(
        self,
        descriptor: RequestDescriptor,
        *,
        timeout: Optional[float] = None,
        cost: int = 1,
    ) -> ResponseEnvelope:
        """Admit, send and validate; the body is returned undecoded."""

        self._admit(descriptor, cost)

        log = self._logger.bind(
            request_id=uuid.uuid4().hex[:12],
            method=descriptor.method,
            url=descriptor.url,
        )
        log.info("mastodon_request_sent")
        log.debug("mastodon_request_headers", headers=descriptor.redacted_headers())

        started_at = time.perf_counter()
        try:
            response = await self._send(descriptor, timeout)
        except Exception as exc:
            error = map_transport_error(exc)
            log.error("mastodon_request_failed", error=error.code, exception=exc.__class__.__name__)
            record_api_error(code=error.code)
            raise error from exc
        duration = time.perf_counter() - started_at

        envelope = ResponseEnvelope(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )
        record_api_request(
            method=descriptor.method,
            path=descriptor.metrics_path,
            status_code=envelope.status_code,
            duration_seconds=duration,
        )
        log.debug(
            "mastodon_response_received",
            status_code=envelope.status_code,
            duration_ms=round(duration * 1000, 2),
            body_preview=_preview(envelope.body),
        )

        error = validate_status(envelope.status_code)
        if error is not None:
            log.warning(
                "mastodon_response_rejected",
                status_code=envelope.status_code,
                error=error.code,
                body_preview=_preview(envelope.body),
            )
            record_api_error(code=error.code)
            raise error
        return envelope

    async def perform_request(
        self,
        descriptor: RequestDescriptor,
        response_type: Type[T],
        *,
        timeout: Optional[float] = None,
        cost: int = 1,
    ) -> T:
        envelope = await self.execute(descriptor, timeout=timeout, cost=cost)
        try:
            return decode_body(response_type, envelope.body)
        except ValidationError as exc:
            self._logger.error(
                "mastodon_decode_failed",
                url=descriptor.url,
                error_count=exc.error_count(),
                locations=_error_locations(exc)[:10],
            )
            error = DecodingError(DecodingError.MALFORMED, detail=descriptor.path, cause=exc)
            record_api_error(code=error.code)
            raise error from exc

    async def perform_request_optional(
        self,
        descriptor: RequestDescriptor,
        response_type: Type[T],
        *,
        timeout: Optional[float] = None,
        cost: int = 1,
    ) -> Optional[T]:
        """Like :meth:`perform_request`, but an empty or undecodable body yields ``None``."""

        envelope = await self.execute(descriptor, timeout=timeout, cost=cost)
        if not envelope.body.strip():
            self._logger.debug("mastodon_optional_empty_body", url=descriptor.url)
            return None
        try:
            return decode_body(response_type, envelope.body)
        except ValidationError as exc:
            self._logger.debug(
                "mastodon_optional_decode_skipped",
                url=descriptor.url,
                locations=_error_locations(exc)[:10],
            )
            return None
