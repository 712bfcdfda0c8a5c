"""Command-line interface for the thread tools.

Runs the same tools the server exposes, against the live workspace, and
prints the JSON envelope.  Logs go to stderr so stdout stays parseable.

Usage::

    python -m slackmcp.cli threads C123 --min-replies 2 --sort replies
    python -m slackmcp.cli collect C123 2024-05-01 2024-05-02 --keyword deploy
    python -m slackmcp.cli collect C123 --last 24h
    python -m slackmcp.cli resolve channel general
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from slackmcp.app import configure_logging, initialize_services
from slackmcp.config import get_settings
from slackmcp.domain.errors import SlackMcpError
from slackmcp.domain.models import ToolResponse
from slackmcp.domain.types import IdentifierKind, MatchType, ThreadSortKey

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per tool.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Query workspace threads")
    subparsers = parser.add_subparsers(dest="command", required=True)

    threads = subparsers.add_parser("threads", help="List active threads in a channel")
    threads.add_argument("channel", help="Channel id")
    threads.add_argument("--min-replies", type=int, help="Minimum reply count")
    threads.add_argument(
        "--sort",
        type=str,
        choices=[key.value for key in ThreadSortKey],
        default=ThreadSortKey.TIMESTAMP.value,
        help="Sort key, descending (default: timestamp)",
    )
    threads.add_argument("--limit", type=int, default=20, help="Maximum threads (default: 20)")

    collect = subparsers.add_parser("collect", help="Collect threads active in a time range")
    collect.add_argument("channel", help="Channel id")
    collect.add_argument("start", nargs="?", help="Range start (Unix seconds or ISO-8601)")
    collect.add_argument("end", nargs="?", help="Range end (Unix seconds or ISO-8601)")
    collect.add_argument(
        "--last",
        type=str,
        help='Shorthand range ending now (e.g., "24h", "7d"); replaces start and end',
    )
    collect.add_argument("--max-threads", type=int, help="Maximum threads to collect")
    collect.add_argument(
        "--keyword",
        action="append",
        default=[],
        dest="keywords",
        help="Keyword filter, repeatable",
    )
    collect.add_argument(
        "--match",
        type=str,
        choices=[m.value for m in MatchType],
        default=MatchType.ANY.value,
        dest="match_type",
        help="Keyword match mode (default: any)",
    )

    details = subparsers.add_parser("details", help="Show one thread with participants")
    details.add_argument("channel", help="Channel id")
    details.add_argument("thread_anchor", help="Timestamp of the thread parent")

    resolve = subparsers.add_parser("resolve", help="Resolve a user or channel name or id")
    resolve.add_argument("kind", help="user, principal or channel")
    resolve.add_argument("query", metavar="name-or-id", help="Name or id to look up")

    refresh = subparsers.add_parser("refresh-cache", help="Refresh the identifier cache")
    refresh.add_argument(
        "--kind",
        type=str,
        choices=[k.value for k in IdentifierKind],
        help="Refresh one kind only (default: all)",
    )

    return parser


def parse_last_duration(last: str, now: datetime | None = None) -> datetime:
    """Convert a shorthand duration to the moment that far in the past.

    Supported formats:
        - ``Nd`` -- N days ago (e.g., ``7d``)
        - ``Nh`` -- N hours ago (e.g., ``24h``)

    Raises:
        ValueError: If the format is not recognized.
    """
    if not last or len(last) < 2:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg)

    unit = last[-1]
    try:
        value = int(last[:-1])
    except ValueError:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg) from None

    now = now or datetime.now(tz=UTC)
    if unit == "d":
        return now - timedelta(days=value)
    if unit == "h":
        return now - timedelta(hours=value)
    msg = f"Unrecognized duration format: {last!r}. Use 'd' for days or 'h' for hours."
    raise ValueError(msg)


def tool_call_for(args: argparse.Namespace) -> tuple[str, dict[str, Any]]:
    """Map parsed arguments to a tool name and its arguments."""
    if args.command == "threads":
        arguments: dict[str, Any] = {
            "channel": args.channel,
            "sort_by": args.sort,
            "limit": args.limit,
        }
        if args.min_replies is not None:
            arguments["min_replies"] = args.min_replies
        return "list_active_threads", arguments

    if args.command == "collect":
        if args.last:
            now = datetime.now(tz=UTC)
            start: Any = parse_last_duration(args.last, now).isoformat()
            end: Any = now.isoformat()
        else:
            start, end = args.start, args.end
        arguments = {
            "channel": args.channel,
            "start_date": start,
            "end_date": end,
            "keywords": args.keywords,
            "match_type": args.match_type,
        }
        if args.max_threads is not None:
            arguments["max_threads"] = args.max_threads
        return "collect_threads_by_timerange", arguments

    if args.command == "details":
        return "get_thread_details", {"channel": args.channel, "thread_ts": args.thread_anchor}

    if args.command == "resolve":
        return "resolve_identifier", {"kind": args.kind, "query": args.query}

    msg = f"No tool for command {args.command!r}"
    raise ValueError(msg)


async def refresh_cache(services: dict[str, Any], kind: str | None) -> ToolResponse:
    """Refresh one or all identifier kinds and report the cache status."""
    cache = services["cache"]
    kinds = [IdentifierKind(kind)] if kind else list(IdentifierKind)
    try:
        for each in kinds:
            await cache.refresh(each)
    except SlackMcpError as exc:
        return ToolResponse.from_error(exc)
    finally:
        await cache.aclose()
    return ToolResponse.ok(cache.status())


async def run(args: argparse.Namespace, services: dict[str, Any]) -> ToolResponse:
    """Execute the parsed command against *services*."""
    if args.command == "refresh-cache":
        return await refresh_cache(services, args.kind)

    name, arguments = tool_call_for(args)
    try:
        return await services["tools"].call(name, arguments)
    finally:
        await services["cache"].aclose()


def main(argv: list[str] | None = None, services: dict[str, Any] | None = None) -> int:
    """Parse arguments, run the command and print the JSON envelope.

    Returns:
        Exit status: 0 on success, 1 on failure.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "collect" and not args.last and (args.start is None or args.end is None):
        parser.error("collect needs start and end, or --last")
    if getattr(args, "last", None):
        try:
            parse_last_duration(args.last)
        except ValueError as exc:
            parser.error(str(exc))

    if services is None:
        settings = get_settings()
        configure_logging(production=settings.production, stream=sys.stderr)
        services = initialize_services(settings)

    response = asyncio.run(run(args, services))
    print(response.model_dump_json(indent=2))
    logger.debug("cli_command_finished", command=args.command, success=response.success)
    return 0 if response.success else 1


if __name__ == "__main__":
    sys.exit(main())
