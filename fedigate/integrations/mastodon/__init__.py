"""Mastodon API integration."""

from fedigate.integrations.mastodon.client import ClientContext, MastodonClient, build_default_context
from fedigate.integrations.mastodon.request_builder import RequestBuilder, RequestDescriptor
from fedigate.integrations.mastodon.session import ResponseEnvelope, SessionExecutor

__all__ = [
    "ClientContext",
    "MastodonClient",
    "RequestBuilder",
    "RequestDescriptor",
    "ResponseEnvelope",
    "SessionExecutor",
    "build_default_context",
]
