"""Command-line access to the Mastodon gateway."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Optional, Sequence

from pydantic import BaseModel

from fedigate.core.config import get_settings
from fedigate.core.errors import AppError
from fedigate.core.metrics import render_prometheus_metrics
from fedigate.integrations.mastodon.client import MastodonClient, build_default_context
from fedigate.schemas.mastodon import Visibility


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_jsonable(item) for item in value]
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fedigate", description="Talk to a Mastodon instance.")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics to stderr afterwards.")
    commands = parser.add_subparsers(dest="command", required=True)

    timeline = commands.add_parser("timeline", help="Fetch the home timeline.")
    timeline.add_argument("--max-id")
    timeline.add_argument("--min-id")
    timeline.add_argument("--limit", type=int)

    post = commands.add_parser("post", help="Publish a status.")
    post.add_argument("text")
    post.add_argument("--visibility", choices=[item.value for item in Visibility], default=Visibility.PUBLIC.value)
    post.add_argument("--in-reply-to")

    search = commands.add_parser("search", help="Search accounts, statuses and hashtags.")
    search.add_argument("query")
    search.add_argument("--type", choices=["accounts", "statuses", "hashtags"])
    search.add_argument("--limit", type=int)
    search.add_argument("--resolve", action="store_true")

    commands.add_parser("trending-tags", help="List trending hashtags.")

    register = commands.add_parser("register-app", help="Register an OAuth application on an instance.")
    register.add_argument("instance_url")
    register.add_argument("--client-name")
    register.add_argument("--redirect-uri")
    register.add_argument("--scopes")
    register.add_argument("--website")
    return parser


def _command(client: MastodonClient, args: argparse.Namespace) -> Callable[[], Awaitable[Any]]:
    if args.command == "timeline":
        return lambda: client.home_timeline(max_id=args.max_id, min_id=args.min_id, limit=args.limit)
    if args.command == "post":
        return lambda: client.post_status(
            args.text,
            visibility=Visibility(args.visibility),
            in_reply_to_id=args.in_reply_to,
        )
    if args.command == "search":
        return lambda: client.search(
            args.query,
            type=args.type,
            limit=args.limit,
            resolve=True if args.resolve else None,
        )
    if args.command == "trending-tags":
        return client.trending_tags
    if args.command == "register-app":
        return lambda: client.register_app(
            args.instance_url,
            client_name=args.client_name,
            redirect_uris=args.redirect_uri,
            scopes=args.scopes,
            website=args.website,
        )
    raise ValueError(f"unknown command {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    client = MastodonClient(build_default_context(settings))

    exit_code = 0
    try:
        result = asyncio.run(_command(client, args)())
    except AppError as exc:
        print(f"error={exc.code} message={exc.user_message}", file=sys.stderr)
        exit_code = 1
    else:
        print(json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False))

    if args.metrics:
        print(
            render_prometheus_metrics(
                app_name=settings.app_name,
                app_version=settings.app_version,
                env=settings.env,
            ),
            file=sys.stderr,
        )
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
