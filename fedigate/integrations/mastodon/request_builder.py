"""Endpoint URL composition and request descriptor assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fedigate.core.errors import MissingCredentialsError, RequestBuildError
from fedigate.core.logger import get_logger
from fedigate.storage.secrets import SecretStore


JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

QueryItems = Sequence[Tuple[str, Any]]
RequestBody = Union[Mapping[str, Any], bytes]

_REDACTED = "<redacted>"


@dataclass(frozen=True)
class RequestDescriptor:
    url: str
    method: str
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    access_token: Optional[str] = field(default=None, repr=False)
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), repr=False)
    route: Optional[str] = None

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def metrics_path(self) -> str:
        """Metrics label: the route template when set, else the concrete path."""

        return self.route or self.path

    def redacted_headers(self) -> dict[str, str]:
        return {
            name: (_REDACTED if name.lower() == "authorization" else value)
            for name, value in self.headers.items()
        }


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_body(body: RequestBody, content_type: str) -> bytes:
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type not in {JSON_CONTENT_TYPE, FORM_CONTENT_TYPE}:
        raise RequestBuildError(RequestBuildError.UNSUPPORTED_CONTENT_TYPE, detail=content_type)
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)

    if media_type == JSON_CONTENT_TYPE:
        try:
            return json.dumps(dict(body)).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise RequestBuildError(RequestBuildError.UNSERIALIZABLE_BODY, cause=exc) from exc
    pairs = [(str(key), _query_value(value)) for key, value in body.items() if value is not None]
    return urlencode(pairs).encode("utf-8")


class RequestBuilder:
    def __init__(
        self,
        secret_store: SecretStore,
        *,
        service: str,
        base_url_account: str = "base_url",
        access_token_account: str = "access_token",
        user_agent: str = "fedigate",
    ) -> None:
        self._secret_store = secret_store
        self._service = service
        self._base_url_account = base_url_account
        self._access_token_account = access_token_account
        self._user_agent = user_agent
        self._logger = get_logger("fedigate.request_builder")

    def _read_secret(self, account: str) -> Optional[str]:
        try:
            value = self._secret_store.read(self._service, account)
        except Exception as exc:
            self._logger.error("secret_store_read_failed", service=self._service, account=account)
            raise MissingCredentialsError(f"secret store read failed for {account}", cause=exc) from exc
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    def access_token(self) -> Optional[str]:
        return self._read_secret(self._access_token_account)

    def require_access_token(self) -> str:
        token = self.access_token()
        if token is None:
            self._logger.warning("access_token_missing", service=self._service)
            raise MissingCredentialsError("access token not configured")
        return token

    def base_url(self) -> str:
        base_url = self._read_secret(self._base_url_account)
        if base_url is None:
            self._logger.error("base_url_missing", service=self._service)
            raise MissingCredentialsError("base url not configured")
        return base_url

    def endpoint_url(
        self,
        path: str,
        base_url_override: Optional[str] = None,
        query_items: Optional[QueryItems] = None,
    ) -> str:
        """Join ``path`` onto the instance base URL.

        Query items already present in ``path`` keep their position and the
        supplied ``query_items`` are appended after them; duplicates are kept.
        Items whose value is ``None`` are skipped.
        """

        base = base_url_override.strip() if base_url_override is not None else self.base_url()
        base_parts = urlsplit(base)
        if base_parts.scheme not in {"http", "https"} or not base_parts.netloc:
            self._logger.error("endpoint_url_invalid_base", base_url=base)
            raise RequestBuildError(RequestBuildError.INVALID_URL, detail=f"invalid base url {base!r}")

        path_part, _, existing_query = path.partition("?")
        merged = parse_qsl(existing_query, keep_blank_values=True)
        for name, value in query_items or ():
            if value is None:
                continue
            merged.append((name, _query_value(value)))

        full_path = base_parts.path.rstrip("/") + "/" + path_part.lstrip("/")
        try:
            url = urlunsplit((base_parts.scheme, base_parts.netloc, full_path, urlencode(merged), ""))
        except (TypeError, ValueError) as exc:
            raise RequestBuildError(RequestBuildError.INVALID_URL, detail=path, cause=exc) from exc

        self._logger.debug("endpoint_url_built", url=url)
        return url

    def build_request(
        self,
        url: str,
        method: str,
        body: Optional[RequestBody] = None,
        content_type: str = JSON_CONTENT_TYPE,
        access_token: Optional[str] = None,
        route: Optional[str] = None,
    ) -> RequestDescriptor:
        headers = {
            "Accept": JSON_CONTENT_TYPE,
            "User-Agent": self._user_agent,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        content: Optional[bytes] = None
        sent_content_type: Optional[str] = None
        if body is not None:
            content = encode_body(body, content_type)
            headers["Content-Type"] = content_type
            sent_content_type = content_type

        self._logger.debug(
            "request_built",
            method=method.upper(),
            url=url,
            authenticated=bool(access_token),
            content_type=sent_content_type,
        )
        return RequestDescriptor(
            url=url,
            method=method.upper(),
            content=content,
            content_type=sent_content_type,
            access_token=access_token or None,
            headers=MappingProxyType(headers),
            route=route,
        )
