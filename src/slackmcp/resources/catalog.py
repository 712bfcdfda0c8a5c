"""Built-in ``slack://`` resources and their generators.

``ResourceCatalog`` registers every template on a ``ResourceLocator`` and
binds the generators to a ``ThreadEngine`` and an ``IdentifierCache``.
``read_resource(address)`` resolves an address, runs its generator and
wraps the outcome in a ``ToolResponse`` envelope.  Missing required query
parameters are reported here, never by the locator.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from slackmcp.cache.store import IdentifierCache
from slackmcp.domain.errors import InvalidParameterError, SlackMcpError
from slackmcp.domain.models import ChannelRecord, PrincipalRecord, ThreadFilters, ToolResponse
from slackmcp.domain.types import (
    IdentifierKind,
    MatchType,
    RefreshPolicy,
    ThreadSortKey,
    Timestamp,
    parse_kind,
    parse_timestamp,
)
from slackmcp.resources.locator import ResourceDescriptor, ResourceLocator
from slackmcp.threads.engine import ThreadEngine
from slackmcp.threads.timerange import parse_time_range

logger = structlog.get_logger()

P = TypeVar("P", bound=BaseModel)

SEARCH_EXAMPLE = "slack://workspace/threads?query=project%20discussion&limit=20&sort=activity"


# ---------------------------------------------------------------------------
# Query parameter models
# ---------------------------------------------------------------------------


class ThreadLookupParams(BaseModel):
    channel: str | None = None


class ThreadRepliesParams(BaseModel):
    channel: str | None = None
    oldest: Timestamp | None = None
    latest: Timestamp | None = None
    limit: int = Field(default=100, ge=1, le=1000)


class CollectParams(BaseModel):
    start: str | None = None
    end: str | None = None
    max_threads: int | None = Field(default=None, ge=1, le=100)
    keywords: str | None = None
    match_type: MatchType = MatchType.ANY
    include_parent: bool = True

    def keyword_list(self) -> list[str]:
        return [k for k in (self.keywords or "").split(",") if k.strip()]


class ThreadSearchParams(BaseModel):
    query: str | None = None
    limit: int = Field(default=20, ge=1, le=100)
    sort: ThreadSortKey = ThreadSortKey.ACTIVITY
    min_replies: int | None = Field(default=None, ge=0)
    max_replies: int | None = Field(default=None, ge=0)
    channel: str | None = None

    def channel_list(self) -> list[str] | None:
        if not self.channel:
            return None
        return [c.strip() for c in self.channel.split(",") if c.strip()]


class ChannelListParams(BaseModel):
    include_archived: bool = False
    types: str = "public_channel,private_channel"


class UserListParams(BaseModel):
    include_deleted: bool = False


class IdentifierParams(BaseModel):
    q: str | None = None
    limit: int = Field(default=10, ge=1, le=100)


def parse_params(model: type[P], query_params: dict[str, str]) -> P:
    """Validate query parameters into *model*.

    Raises:
        InvalidParameterError: Naming the first offending parameter.
    """
    try:
        return model.model_validate(query_params)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0]
        name = ".".join(str(part) for part in first["loc"]) or "parameters"
        raise InvalidParameterError(
            name, f"Invalid parameter '{name}': {first['msg']}", {"errors": errors}
        ) from None


def _required(value: str | None, name: str, example: str) -> str:
    if value is None or not value.strip():
        raise InvalidParameterError(
            name, f"Query parameter '{name}' is required", {"example_usage": example}
        )
    return value.strip()


def _thread_anchor(raw: str) -> Decimal:
    try:
        return parse_timestamp(raw)
    except ValueError:
        raise InvalidParameterError(
            "threadAnchor", f"Invalid thread timestamp: {raw!r}"
        ) from None


def _channel_payload(record: ChannelRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _principal_payload(record: PrincipalRecord) -> dict[str, Any]:
    payload = record.model_dump(mode="json")
    payload["label"] = record.label
    return payload


class ResourceCatalog:
    """Registers the ``slack://`` resources and serves reads."""

    def __init__(
        self,
        engine: ThreadEngine,
        cache: IdentifierCache,
        locator: ResourceLocator | None = None,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self.locator = locator or ResourceLocator()
        self._register_builtin()

    def _register_builtin(self) -> None:
        register = self.locator.register
        register(
            ResourceDescriptor(
                template="slack://workspace/channels",
                name="Workspace Channels",
                description="Channels known to the identifier cache",
                refresh_policy=RefreshPolicy.CACHED,
            ),
            self._workspace_channels,
        )
        register(
            ResourceDescriptor(
                template="slack://workspace/users",
                name="Workspace Users",
                description="Members known to the identifier cache",
                refresh_policy=RefreshPolicy.CACHED,
            ),
            self._workspace_users,
        )
        register(
            ResourceDescriptor(
                template="slack://workspace/threads",
                name="Workspace Thread Search",
                description="Search thread parents across accessible channels (requires query)",
                refresh_policy=RefreshPolicy.CACHED,
                refresh_interval_seconds=300,
            ),
            self._workspace_threads,
        )
        register(
            ResourceDescriptor(
                template="slack://search/threads",
                name="Thread Search",
                description="Thread search with reply-count and channel filters (requires query)",
                refresh_policy=RefreshPolicy.CACHED,
                refresh_interval_seconds=300,
            ),
            self._search_threads,
        )
        register(
            ResourceDescriptor(
                template="slack://cache/status",
                name="Identifier Cache Status",
                description="Record counts, expiry and refresh state per identifier kind",
                requires_remote_auth=False,
                refresh_policy=RefreshPolicy.DYNAMIC,
            ),
            self._cache_status,
        )
        register(
            ResourceDescriptor(
                template="slack://channels/{channelId}/threads",
                name="Channel Threads",
                description="Threads with activity in a channel, filtered and sorted",
                refresh_policy=RefreshPolicy.CACHED,
                refresh_interval_seconds=60,
            ),
            self._channel_threads,
        )
        register(
            ResourceDescriptor(
                template="slack://channels/{channelId}/threads/collect",
                name="Thread Collection by Time Range",
                description="Complete threads with any message inside start..end",
                refresh_policy=RefreshPolicy.DYNAMIC,
            ),
            self._collect_threads,
        )
        register(
            ResourceDescriptor(
                template="slack://threads/{threadAnchor}/details",
                name="Thread Details",
                description="Complete thread information including participants (requires channel)",
                refresh_policy=RefreshPolicy.CACHED,
                refresh_interval_seconds=60,
            ),
            self._thread_details,
        )
        register(
            ResourceDescriptor(
                template="slack://threads/{threadAnchor}/replies",
                name="Thread Replies",
                description="Thread replies in order with oldest/latest/limit (requires channel)",
                refresh_policy=RefreshPolicy.CACHED,
                refresh_interval_seconds=30,
            ),
            self._thread_replies,
        )
        register(
            ResourceDescriptor(
                template="slack://identifiers/{kind}",
                name="Identifier Lookup",
                description="Resolve a user or channel name or id (requires q)",
                refresh_policy=RefreshPolicy.CACHED,
            ),
            self._identifiers,
        )

    def list_resources(self) -> list[dict[str, Any]]:
        return [d.model_dump(mode="json") for d in self.locator.descriptors]

    async def read_resource(self, address: str) -> ToolResponse:
        """Resolve *address*, run its generator and wrap the result.

        Never raises for domain failures: they come back as failed envelopes.
        """
        log = logger.bind(uri=address)
        try:
            resolution = self.locator.resolve(address)
            result = await resolution.generator(resolution.path_params, resolution.query_params)
        except SlackMcpError as exc:
            log.info("resource_read_failed", error_code=exc.error_code.value, error=str(exc))
            return ToolResponse.from_error(exc)
        except Exception:
            log.exception("resource_read_crashed")
            return ToolResponse.internal_error(f"Unexpected error reading {address}")

        if isinstance(result, ToolResponse):
            return result
        return ToolResponse.ok(result)

    # ------------------------------------------------------------------
    # Generators
    # ------------------------------------------------------------------

    async def _channel_threads(
        self, path: dict[str, str], query: dict[str, str]
    ) -> ToolResponse:
        filters = parse_params(ThreadFilters, query)
        result = await self._engine.list_active_threads(path["channelId"], filters)
        return ToolResponse.ok(result.model_dump(mode="json"), degraded=result.degraded)

    async def _collect_threads(self, path: dict[str, str], query: dict[str, str]) -> ToolResponse:
        params = parse_params(CollectParams, query)
        example = f"slack://channels/{path['channelId']}/threads/collect?start=...&end=..."
        time_range = parse_time_range(
            _required(params.start, "start", example), _required(params.end, "end", example)
        )
        result = await self._engine.collect_threads_in_range(
            path["channelId"],
            time_range,
            max_threads=params.max_threads,
            keywords=params.keyword_list(),
            match_type=params.match_type,
        )
        return ToolResponse.ok(
            result.to_payload(include_parent=params.include_parent),
            degraded=result.degraded,
            skipped_count=result.stats.skipped_anchors,
        )

    async def _thread_details(self, path: dict[str, str], query: dict[str, str]) -> dict[str, Any]:
        params = parse_params(ThreadLookupParams, query)
        anchor = _thread_anchor(path["threadAnchor"])
        example = f"slack://threads/{path['threadAnchor']}/details?channel=C123"
        channel = _required(params.channel, "channel", example)
        details = await self._engine.get_thread_details(channel, anchor)
        return details.model_dump(mode="json")

    async def _thread_replies(self, path: dict[str, str], query: dict[str, str]) -> dict[str, Any]:
        params = parse_params(ThreadRepliesParams, query)
        anchor = _thread_anchor(path["threadAnchor"])
        example = f"slack://threads/{path['threadAnchor']}/replies?channel=C123&limit=100"
        channel = _required(params.channel, "channel", example)
        replies = await self._engine.get_thread_replies(
            channel, anchor, oldest=params.oldest, latest=params.latest, limit=params.limit
        )
        return replies.model_dump(mode="json")

    async def _workspace_threads(
        self, path: dict[str, str], query: dict[str, str]
    ) -> dict[str, Any]:
        params = parse_params(ThreadSearchParams, query)
        needle = _required(params.query, "query", SEARCH_EXAMPLE)
        result = await self._engine.search_threads(needle, limit=params.limit, sort_by=params.sort)
        return result.model_dump(mode="json")

    async def _search_threads(self, path: dict[str, str], query: dict[str, str]) -> dict[str, Any]:
        params = parse_params(ThreadSearchParams, query)
        needle = _required(
            params.query, "query", "slack://search/threads?query=deploy&min_replies=2"
        )
        result = await self._engine.search_threads(
            needle,
            limit=params.limit,
            sort_by=params.sort,
            min_replies=params.min_replies,
            max_replies=params.max_replies,
            channel_ids=params.channel_list(),
        )
        return result.model_dump(mode="json")

    async def _workspace_channels(
        self, path: dict[str, str], query: dict[str, str]
    ) -> dict[str, Any]:
        params = parse_params(ChannelListParams, query)
        wanted = {t.strip() for t in params.types.split(",") if t.strip()}
        records = await self._cache.records(IdentifierKind.CHANNEL)
        channels = [
            _channel_payload(r)
            for r in records.values()
            if isinstance(r, ChannelRecord)
            and (params.include_archived or not r.is_archived)
            and ("private_channel" if r.is_private else "public_channel") in wanted
        ]
        return {"channels": channels, "total": len(channels)}

    async def _workspace_users(
        self, path: dict[str, str], query: dict[str, str]
    ) -> dict[str, Any]:
        params = parse_params(UserListParams, query)
        records = await self._cache.records(IdentifierKind.PRINCIPAL)
        users = [
            _principal_payload(r)
            for r in records.values()
            if isinstance(r, PrincipalRecord) and (params.include_deleted or not r.deleted)
        ]
        return {"users": users, "total": len(users)}

    async def _cache_status(self, path: dict[str, str], query: dict[str, str]) -> dict[str, Any]:
        return self._cache.status()

    async def _identifiers(self, path: dict[str, str], query: dict[str, str]) -> dict[str, Any]:
        params = parse_params(IdentifierParams, query)
        try:
            kind = parse_kind(path["kind"])
        except ValueError as exc:
            raise InvalidParameterError("kind", str(exc)) from None
        needle = _required(params.q, "q", f"slack://identifiers/{kind.value}?q=general")
        record = await self._cache.resolve(kind, needle)
        matches = await self._cache.search(kind, needle, limit=params.limit)
        return {
            "kind": kind.value,
            "query": needle,
            "record": record.model_dump(mode="json") if record is not None else None,
            "matches": [m.model_dump(mode="json") for m in matches],
        }
