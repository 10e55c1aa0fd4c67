"""Pydantic schemas for Mastodon API payloads.

Wire keys are snake_case. Where a Python field name differs from its wire
key the mapping is declared explicitly with ``Field(alias=...)``; every other
field uses the wire key verbatim. Unknown keys are ignored so that newer
servers do not break decoding.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
import re
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)

# strptime reads at most six fractional digits.
_EXTRA_FRACTION_DIGITS = re.compile(r"(\.\d{6})\d+")


def parse_api_datetime(value: Any) -> Any:
    """Parse ISO-8601 with fractional seconds, falling back to whole seconds."""

    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date format: {value!r}")
    normalized = _EXTRA_FRACTION_DIGITS.sub(r"\1", value, count=1)
    for date_format in _DATE_FORMATS:
        try:
            return datetime.strptime(normalized, date_format)
        except ValueError:
            continue
    raise ValueError(f"Invalid date format: {value}")


ApiDateTime = Annotated[datetime, BeforeValidator(parse_api_datetime)]


class ApiModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class Visibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"
    DIRECT = "direct"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    GIFV = "gifv"
    AUDIO = "audio"
    UNKNOWN = "unknown"


class Tag(ApiModel):
    name: str
    url: Optional[str] = None


class Mention(ApiModel):
    id: str
    username: str
    url: str
    acct: str


class Emoji(ApiModel):
    shortcode: str
    url: str
    static_url: str
    visible_in_picker: bool = True
    category: Optional[str] = None


class ProfileField(ApiModel):
    name: str
    value: str
    verified_at: Optional[ApiDateTime] = None


class MediaAttachment(ApiModel):
    id: str
    type: MediaType
    url: Optional[str] = None
    preview_url: Optional[str] = None
    remote_url: Optional[str] = None
    description: Optional[str] = None
    blurhash: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    @field_validator("type", mode="before")
    @classmethod
    def _fallback_unknown_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value not in {member.value for member in MediaType}:
            return MediaType.UNKNOWN
        return value


class Card(ApiModel):
    url: str
    title: str
    summary: str = Field(alias="description")
    type: str
    image: Optional[str] = None
    author_name: Optional[str] = None
    author_url: Optional[str] = None
    provider_name: Optional[str] = None
    provider_url: Optional[str] = None
    html: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    embed_url: Optional[str] = None
    blurhash: Optional[str] = None


class Account(ApiModel):
    id: str
    username: str
    acct: str
    url: str
    avatar: str
    display_name: Optional[str] = None
    avatar_static: Optional[str] = None
    header: Optional[str] = None
    header_static: Optional[str] = None
    note: Optional[str] = None
    is_bot: Optional[bool] = Field(default=None, alias="bot")
    is_locked: Optional[bool] = Field(default=None, alias="locked")
    discoverable: Optional[bool] = None
    indexable: Optional[bool] = None
    suspended: Optional[bool] = None
    created_at: Optional[ApiDateTime] = None
    followers_count: Optional[int] = None
    following_count: Optional[int] = None
    statuses_count: Optional[int] = None
    last_status_at: Optional[str] = None
    fields: List[ProfileField] = Field(default_factory=list)
    emojis: List[Emoji] = Field(default_factory=list)


class Source(ApiModel):
    privacy: Optional[str] = None
    sensitive: Optional[bool] = None
    language: Optional[str] = None
    note: Optional[str] = None
    fields: List[ProfileField] = Field(default_factory=list)
    follow_requests_count: Optional[int] = None


class Role(ApiModel):
    id: str
    name: str
    permissions: str


class User(Account):
    """The signed-in account as returned by verify/update credentials."""

    created_at: ApiDateTime
    group: bool = False
    hide_collections: Optional[bool] = None
    noindex: Optional[bool] = None
    source: Optional[Source] = None
    roles: List[Role] = Field(default_factory=list)


class Post(ApiModel):
    """A status. ``favourited``/``reblogged`` arrive as flags on the wire."""

    id: str
    content: str
    created_at: ApiDateTime
    account: Optional[Account] = None
    is_favourited: bool = Field(default=False, alias="favourited")
    is_reblogged: bool = Field(default=False, alias="reblogged")
    reblogs_count: int = 0
    favourites_count: int = 0
    replies_count: int = 0
    media_attachments: List[MediaAttachment] = Field(default_factory=list)
    mentions: List[Mention] = Field(default_factory=list)
    tags: List[Tag] = Field(default_factory=list)
    card: Optional[Card] = None
    url: Optional[str] = None
    visibility: Optional[Visibility] = None
    in_reply_to_id: Optional[str] = None
    spoiler_text: str = ""
    sensitive: bool = False
    reblog: Optional[Post] = None


class PostContext(ApiModel):
    ancestors: List[Post] = Field(default_factory=list)
    descendants: List[Post] = Field(default_factory=list)


class SearchResults(ApiModel):
    accounts: List[Account] = Field(default_factory=list)
    statuses: List[Post] = Field(default_factory=list)
    hashtags: List[Tag] = Field(default_factory=list)


class RegisteredApp(ApiModel):
    client_id: str
    client_secret: str
    name: Optional[str] = None
    id: Optional[str] = None
    website: Optional[str] = None
    redirect_uri: Optional[str] = None
    vapid_key: Optional[str] = None


class OAuthConfig(ApiModel):
    client_id: str
    client_secret: str
    redirect_uri: str
    scope: str


class TokenResponse(ApiModel):
    access_token: str
    token_type: str
    scope: str
    created_at: int


class InstanceInfo(ApiModel):
    title: str
    description: str = ""
    thumbnail: Optional[str] = None


class StatusPostRequest(ApiModel):
    status: str
    visibility: Visibility = Visibility.PUBLIC
    in_reply_to_id: Optional[str] = None

    def to_body(self) -> Dict[str, str]:
        body = {"status": self.status, "visibility": self.visibility.value}
        if self.in_reply_to_id:
            body["in_reply_to_id"] = self.in_reply_to_id
        return body
