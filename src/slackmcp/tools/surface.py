"""The action tools exposed next to the resources.

Each tool has a pydantic argument model (its JSON schema is published by
``list_tools``) and an async handler.  ``ToolSurface.call`` validates the
arguments, runs the handler and always returns a ``ToolResponse``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, Field

from slackmcp.cache.store import IdentifierCache
from slackmcp.domain.errors import InvalidParameterError, NotFoundError, SlackMcpError
from slackmcp.domain.models import ThreadFilters, ToolResponse
from slackmcp.domain.types import MatchType, Timestamp, parse_kind
from slackmcp.resources.catalog import parse_params
from slackmcp.threads.engine import ThreadEngine
from slackmcp.threads.timerange import parse_time_range

logger = structlog.get_logger()


class ListActiveThreadsArgs(ThreadFilters):
    channel: str = Field(validation_alias=AliasChoices("channel", "channel_id"))


class GetThreadDetailsArgs(BaseModel):
    channel: str = Field(validation_alias=AliasChoices("channel", "channel_id"))
    thread_ts: Timestamp = Field(validation_alias=AliasChoices("thread_ts", "thread_anchor"))


class CollectThreadsArgs(BaseModel):
    channel: str = Field(validation_alias=AliasChoices("channel", "channel_id"))
    start_date: str | float = Field(validation_alias=AliasChoices("start_date", "start"))
    end_date: str | float = Field(validation_alias=AliasChoices("end_date", "end"))
    max_threads: int | None = Field(default=None, ge=1, le=100)
    keywords: list[str] = Field(default_factory=list, max_length=10)
    match_type: MatchType = MatchType.ANY
    include_parent: bool = True


class ResolveIdentifierArgs(BaseModel):
    kind: str
    query: str = Field(
        min_length=1, validation_alias=AliasChoices("query", "name_or_id", "name", "id")
    )


Handler = Callable[[Any], Awaitable[ToolResponse]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler


class ToolSurface:
    """Dispatches tool calls to the thread engine and identifier cache."""

    def __init__(self, engine: ThreadEngine, cache: IdentifierCache) -> None:
        self._engine = engine
        self._cache = cache
        self._tools: dict[str, ToolSpec] = {
            spec.name: spec
            for spec in (
                ToolSpec(
                    "list_active_threads",
                    "List threads with activity in a channel, filtered and sorted.",
                    ListActiveThreadsArgs,
                    self._list_active_threads,
                ),
                ToolSpec(
                    "get_thread_details",
                    "Get one thread with its participants and activity status.",
                    GetThreadDetailsArgs,
                    self._get_thread_details,
                ),
                ToolSpec(
                    "collect_threads_by_timerange",
                    "Collect complete threads with any message between start_date and "
                    "end_date (Unix seconds or ISO-8601), optionally filtered by keywords.",
                    CollectThreadsArgs,
                    self._collect_threads_by_timerange,
                ),
                ToolSpec(
                    "resolve_identifier",
                    "Resolve a user or channel name or id to its record.",
                    ResolveIdentifierArgs,
                    self._resolve_identifier,
                ),
            )
        }

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.args_model.model_json_schema(by_alias=False),
            }
            for spec in self._tools.values()
        ]

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResponse:
        """Run tool *name* with *arguments*.

        Domain failures come back as failed envelopes; unexpected exceptions
        are logged and reported as ``INTERNAL_ERROR``.
        """
        log = logger.bind(tool=name)
        spec = self._tools.get(name)
        if spec is None:
            log.info("tool_not_found")
            return ToolResponse.from_error(NotFoundError(f"Unknown tool: {name}", {"tool": name}))

        try:
            args = parse_params(spec.args_model, arguments or {})
            response = await spec.handler(args)
        except SlackMcpError as exc:
            log.info("tool_call_failed", error_code=exc.error_code.value, error=str(exc))
            return ToolResponse.from_error(exc)
        except Exception:
            log.exception("tool_call_crashed")
            return ToolResponse.internal_error(f"Unexpected error in tool {name}")

        log.debug("tool_call_succeeded", degraded=response.degraded)
        return response

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _list_active_threads(self, args: ListActiveThreadsArgs) -> ToolResponse:
        result = await self._engine.list_active_threads(args.channel, args)
        return ToolResponse.ok(result.model_dump(mode="json"), degraded=result.degraded)

    async def _get_thread_details(self, args: GetThreadDetailsArgs) -> ToolResponse:
        details = await self._engine.get_thread_details(args.channel, args.thread_ts)
        return ToolResponse.ok(details.model_dump(mode="json"))

    async def _collect_threads_by_timerange(self, args: CollectThreadsArgs) -> ToolResponse:
        time_range = parse_time_range(args.start_date, args.end_date)
        result = await self._engine.collect_threads_in_range(
            args.channel,
            time_range,
            max_threads=args.max_threads,
            keywords=args.keywords,
            match_type=args.match_type,
        )
        return ToolResponse.ok(
            result.to_payload(include_parent=args.include_parent),
            degraded=result.degraded,
            skipped_count=result.stats.skipped_anchors,
        )

    async def _resolve_identifier(self, args: ResolveIdentifierArgs) -> ToolResponse:
        try:
            kind = parse_kind(args.kind)
        except ValueError as exc:
            raise InvalidParameterError("kind", str(exc)) from None
        record = await self._cache.resolve(kind, args.query)
        return ToolResponse.ok(
            {
                "kind": kind.value,
                "query": args.query,
                "found": record is not None,
                "record": record.model_dump(mode="json") if record is not None else None,
            }
        )
