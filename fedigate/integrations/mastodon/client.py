"""Mastodon API facade: one coroutine per logical endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Type, TypeVar
from urllib.parse import quote

import httpx

from fedigate.core.config import Settings, get_settings
from fedigate.core.errors import RequestBuildError
from fedigate.core.logger import configure_logging, get_logger
from fedigate.core.rate_limit import TokenBucketLimiter
from fedigate.integrations.mastodon.request_builder import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    QueryItems,
    RequestBody,
    RequestBuilder,
)
from fedigate.integrations.mastodon.session import SessionExecutor
from fedigate.schemas.mastodon import (
    Account,
    InstanceInfo,
    OAuthConfig,
    Post,
    PostContext,
    RegisteredApp,
    SearchResults,
    StatusPostRequest,
    Tag,
    TokenResponse,
    User,
    Visibility,
)
from fedigate.storage.secrets import SecretStore, build_secret_store


T = TypeVar("T")


@dataclass
class ClientContext:
    """Everything a client needs, passed in explicitly."""

    limiter: TokenBucketLimiter
    secret_store: SecretStore
    settings: Settings
    http_client: Optional[httpx.AsyncClient] = None


def build_default_context(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ClientContext:
    resolved = settings or get_settings()
    return ClientContext(
        limiter=TokenBucketLimiter(
            resolved.rate_limit_capacity,
            resolved.rate_limit_refill_per_second,
        ),
        secret_store=build_secret_store(resolved),
        settings=resolved,
        http_client=http_client,
    )


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


class MastodonClient:
    def __init__(self, context: ClientContext) -> None:
        configure_logging(context.settings)
        self._settings = context.settings
        self._builder = RequestBuilder(
            context.secret_store,
            service=context.settings.secret_service_name,
            base_url_account=context.settings.secret_base_url_account,
            access_token_account=context.settings.secret_access_token_account,
            user_agent=context.settings.http_user_agent,
        )
        self._executor = SessionExecutor(
            context.limiter,
            http_client=context.http_client,
            timeout_seconds=context.settings.http_timeout_seconds,
        )
        self._logger = get_logger("fedigate.mastodon")

    @property
    def builder(self) -> RequestBuilder:
        return self._builder

    @property
    def executor(self) -> SessionExecutor:
        return self._executor

    # Generic authenticated verbs.

    async def get(
        self,
        endpoint: str,
        response_type: Type[T],
        *,
        query_items: Optional[QueryItems] = None,
        timeout: Optional[float] = None,
        route: Optional[str] = None,
    ) -> T:
        access_token = self._builder.require_access_token()
        url = self._builder.endpoint_url(endpoint, query_items=query_items)
        request = self._builder.build_request(url, "GET", access_token=access_token, route=route)
        return await self._executor.perform_request(request, response_type, timeout=timeout)

    async def post(
        self,
        endpoint: str,
        response_type: Type[T],
        *,
        body: Optional[RequestBody] = None,
        content_type: str = JSON_CONTENT_TYPE,
        timeout: Optional[float] = None,
        route: Optional[str] = None,
    ) -> T:
        access_token = self._builder.require_access_token()
        url = self._builder.endpoint_url(endpoint)
        request = self._builder.build_request(
            url, "POST", body=body, content_type=content_type, access_token=access_token, route=route
        )
        return await self._executor.perform_request(request, response_type, timeout=timeout)

    async def post_optional(
        self,
        endpoint: str,
        response_type: Type[T],
        *,
        body: Optional[RequestBody] = None,
        content_type: str = JSON_CONTENT_TYPE,
        timeout: Optional[float] = None,
        route: Optional[str] = None,
    ) -> Optional[T]:
        access_token = self._builder.require_access_token()
        url = self._builder.endpoint_url(endpoint)
        request = self._builder.build_request(
            url, "POST", body=body, content_type=content_type, access_token=access_token, route=route
        )
        return await self._executor.perform_request_optional(request, response_type, timeout=timeout)

    async def patch(
        self,
        endpoint: str,
        response_type: Type[T],
        *,
        body: Optional[RequestBody] = None,
        content_type: str = FORM_CONTENT_TYPE,
        timeout: Optional[float] = None,
        route: Optional[str] = None,
    ) -> T:
        access_token = self._builder.require_access_token()
        url = self._builder.endpoint_url(endpoint)
        request = self._builder.build_request(
            url, "PATCH", body=body, content_type=content_type, access_token=access_token, route=route
        )
        return await self._executor.perform_request(request, response_type, timeout=timeout)

    # Timelines.

    async def home_timeline(
        self,
        *,
        max_id: Optional[str] = None,
        min_id: Optional[str] = None,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Post]:
        return await self.get(
            "/api/v1/timelines/home",
            List[Post],
            query_items=[("max_id", max_id), ("min_id", min_id), ("limit", limit)],
            timeout=timeout if timeout is not None else self._settings.timeline_timeout_seconds,
        )

    async def hashtag_timeline(
        self,
        hashtag: str,
        *,
        max_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Post]:
        tag = hashtag.strip().lstrip("#")
        if not tag:
            raise RequestBuildError(RequestBuildError.INVALID_HASHTAG, detail=repr(hashtag))
        return await self.get(
            f"/api/v1/timelines/tag/{_segment(tag)}",
            List[Post],
            query_items=[("max_id", max_id), ("limit", limit)],
            route="/api/v1/timelines/tag/{hashtag}",
        )

    # Statuses.

    async def post_status(
        self,
        status: str,
        *,
        visibility: Visibility = Visibility.PUBLIC,
        in_reply_to_id: Optional[str] = None,
    ) -> Post:
        request = StatusPostRequest(status=status, visibility=visibility, in_reply_to_id=in_reply_to_id)
        return await self.post("/api/v1/statuses", Post, body=request.to_body())

    async def status_context(self, status_id: str) -> PostContext:
        return await self.get(
            f"/api/v1/statuses/{_segment(status_id)}/context",
            PostContext,
            route="/api/v1/statuses/{id}/context",
        )

    async def favourite(self, status_id: str) -> Optional[Post]:
        return await self.post_optional(
            f"/api/v1/statuses/{_segment(status_id)}/favourite",
            Post,
            route="/api/v1/statuses/{id}/favourite",
        )

    async def unfavourite(self, status_id: str) -> Optional[Post]:
        return await self.post_optional(
            f"/api/v1/statuses/{_segment(status_id)}/unfavourite",
            Post,
            route="/api/v1/statuses/{id}/unfavourite",
        )

    async def reblog(self, status_id: str) -> Optional[Post]:
        return await self.post_optional(
            f"/api/v1/statuses/{_segment(status_id)}/reblog",
            Post,
            route="/api/v1/statuses/{id}/reblog",
        )

    async def unreblog(self, status_id: str) -> Optional[Post]:
        return await self.post_optional(
            f"/api/v1/statuses/{_segment(status_id)}/unreblog",
            Post,
            route="/api/v1/statuses/{id}/unreblog",
        )

    # Accounts.

    async def verify_credentials(self) -> User:
        return await self.get("/api/v1/accounts/verify_credentials", User)

    async def account(self, account_id: str) -> Account:
        return await self.get(
            f"/api/v1/accounts/{_segment(account_id)}",
            Account,
            route="/api/v1/accounts/{id}",
        )

    async def account_statuses(
        self,
        account_id: str,
        *,
        only_media: Optional[bool] = None,
        exclude_replies: Optional[bool] = None,
        max_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Post]:
        return await self.get(
            f"/api/v1/accounts/{_segment(account_id)}/statuses",
            List[Post],
            query_items=[
                ("only_media", only_media),
                ("exclude_replies", exclude_replies),
                ("max_id", max_id),
                ("limit", limit),
            ],
            route="/api/v1/accounts/{id}/statuses",
        )

    async def account_followers(
        self,
        account_id: str,
        *,
        max_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Account]:
        return await self.get(
            f"/api/v1/accounts/{_segment(account_id)}/followers",
            List[Account],
            query_items=[("max_id", max_id), ("limit", limit)],
            route="/api/v1/accounts/{id}/followers",
        )

    async def account_following(
        self,
        account_id: str,
        *,
        max_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Account]:
        return await self.get(
            f"/api/v1/accounts/{_segment(account_id)}/following",
            List[Account],
            query_items=[("max_id", max_id), ("limit", limit)],
            route="/api/v1/accounts/{id}/following",
        )

    async def update_credentials(self, fields: Mapping[str, str]) -> User:
        return await self.patch("/api/v1/accounts/update_credentials", User, body=dict(fields))

    # Discovery.

    async def search(
        self,
        query: str,
        *,
        type: Optional[str] = None,
        limit: Optional[int] = None,
        resolve: Optional[bool] = None,
        exclude_unreviewed: Optional[bool] = None,
        account_id: Optional[str] = None,
        max_id: Optional[str] = None,
        min_id: Optional[str] = None,
        offset: Optional[int] = None,
    ) -> SearchResults:
        return await self.get(
            "/api/v2/search",
            SearchResults,
            query_items=[
                ("q", query),
                ("type", type),
                ("limit", limit),
                ("resolve", resolve),
                ("exclude_unreviewed", exclude_unreviewed),
                ("account_id", account_id),
                ("max_id", max_id),
                ("min_id", min_id),
                ("offset", offset),
            ],
        )

    async def trending_tags(self) -> List[Tag]:
        return await self.get("/api/v1/trends/tags", List[Tag])

    async def trending_statuses(self) -> List[Post]:
        return await self.get("/api/v1/trends/statuses", List[Post])

    # Unauthenticated instance and OAuth endpoints.

    async def register_app(
        self,
        instance_url: str,
        *,
        client_name: Optional[str] = None,
        redirect_uris: Optional[str] = None,
        scopes: Optional[str] = None,
        website: Optional[str] = None,
    ) -> OAuthConfig:
        redirect_uri = redirect_uris or self._settings.oauth_redirect_uri
        scope = scopes or self._settings.oauth_scopes
        body = {
            "client_name": client_name or self._settings.oauth_client_name,
            "redirect_uris": redirect_uri,
            "scopes": scope,
        }
        site = website or self._settings.oauth_website
        if site:
            body["website"] = site

        url = self._builder.endpoint_url("/api/v1/apps", base_url_override=instance_url)
        request = self._builder.build_request(url, "POST", body=body, content_type=JSON_CONTENT_TYPE)
        self._logger.info("oauth_app_registration_started", url=url)
        registered = await self._executor.perform_request(request, RegisteredApp)
        self._logger.info("oauth_app_registered", client_id=registered.client_id)
        return OAuthConfig(
            client_id=registered.client_id,
            client_secret=registered.client_secret,
            redirect_uri=registered.redirect_uri or redirect_uri,
            scope=scope,
        )

    def authorization_url(self, instance_url: str, config: OAuthConfig) -> str:
        """URL the user opens to grant access; building it spends no token."""

        return self._builder.endpoint_url(
            "/oauth/authorize",
            base_url_override=instance_url,
            query_items=[
                ("client_id", config.client_id),
                ("redirect_uri", config.redirect_uri),
                ("response_type", "code"),
                ("scope", config.scope),
            ],
        )

    async def exchange_authorization_code(
        self,
        instance_url: str,
        code: str,
        config: OAuthConfig,
    ) -> TokenResponse:
        body = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "redirect_uri": config.redirect_uri,
            "scope": config.scope,
        }
        url = self._builder.endpoint_url("/oauth/token", base_url_override=instance_url)
        request = self._builder.build_request(url, "POST", body=body, content_type=FORM_CONTENT_TYPE)
        token = await self._executor.perform_request(request, TokenResponse)
        self._logger.info("oauth_code_exchanged", token_type=token.token_type, scope=token.scope)
        return token

    async def instance_info(self, instance_url: Optional[str] = None) -> InstanceInfo:
        url = self._builder.endpoint_url("/api/v1/instance", base_url_override=instance_url)
        request = self._builder.build_request(url, "GET")
        return await self._executor.perform_request(request, InstanceInfo)
