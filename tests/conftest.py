"""Shared pytest fixtures for the thread server test suite.

``FakeConversationService`` stands in for the Slack Web API: it serves
messages, members and channels from memory with cursor pagination, records
every call, and can be told to fail or stall specific calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

from slackmcp.cache.store import IdentifierCache
from slackmcp.domain.errors import NotFoundError
from slackmcp.domain.models import ChannelRecord, MessageRecord, PrincipalRecord
from slackmcp.domain.types import parse_timestamp
from slackmcp.slack.models import Page
from slackmcp.threads.engine import ThreadEngine

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_message(
    ts: str | int,
    user: str | None = "U1",
    text: str = "",
    thread_ts: str | int | None = None,
    reply_count: int = 0,
    latest_reply: str | int | None = None,
    reply_users: tuple[str, ...] = (),
    files: bool = False,
) -> MessageRecord:
    """Build a message the way ``conversations.history`` would return it."""
    payload: dict[str, Any] = {"ts": str(ts), "text": text}
    if user is not None:
        payload["user"] = user
    if thread_ts is not None:
        payload["thread_ts"] = str(thread_ts)
    if reply_count:
        payload["reply_count"] = reply_count
        payload["latest_reply"] = str(latest_reply) if latest_reply is not None else None
        payload["reply_users"] = list(reply_users)
    if files:
        payload["files"] = [{"id": "F1"}]
    return MessageRecord.from_slack(payload)


class FakeConversationService:
    """In-memory ``ConversationService`` with cursor pagination."""

    def __init__(
        self,
        history: dict[str, list[MessageRecord]] | None = None,
        threads: dict[tuple[str, Decimal], list[MessageRecord]] | None = None,
        principals: list[PrincipalRecord] | None = None,
        channels: list[ChannelRecord] | None = None,
        page_size: int = 100,
    ) -> None:
        self.history = history or {}
        self.threads = threads or {}
        self.principals = principals or []
        self.channels = channels or []
        self.page_size = page_size
        self.calls: list[tuple[str, dict[str, Any]]] = []
        # method name -> exception raised on every call
        self.errors: dict[str, Exception] = {}
        # thread anchor -> exception raised by fetch_replies for that thread
        self.reply_errors: dict[Decimal, Exception] = {}
        # method name -> event the call waits on before answering
        self.gates: dict[str, asyncio.Event] = {}

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == method]

    async def _enter(self, method: str, params: dict[str, Any]) -> None:
        self.calls.append((method, params))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        if method in self.errors:
            raise self.errors[method]

    def _page(self, items: list[Any], cursor: str | None, limit: int) -> Page[Any]:
        start = int(cursor) if cursor else 0
        size = min(limit, self.page_size)
        end = start + size
        next_cursor = str(end) if end < len(items) else None
        return Page[Any](items=items[start:end], next_cursor=next_cursor)

    async def fetch_history(
        self,
        channel_id: str,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        inclusive: bool = True,
        cursor: str | None = None,
        limit: int = 200,
    ) -> Page[MessageRecord]:
        await self._enter(
            "fetch_history",
            {
                "channel_id": channel_id,
                "oldest": oldest,
                "latest": latest,
                "inclusive": inclusive,
                "cursor": cursor,
                "limit": limit,
            },
        )
        if channel_id not in self.history:
            raise NotFoundError("conversations.history failed: channel_not_found")

        def in_range(m: MessageRecord) -> bool:
            if oldest is not None and (m.id < oldest or (not inclusive and m.id == oldest)):
                return False
            if latest is not None and (m.id > latest or (not inclusive and m.id == latest)):
                return False
            return True

        # Newest first, like the real endpoint.
        messages = sorted(
            (m for m in self.history[channel_id] if in_range(m)), key=lambda m: m.id, reverse=True
        )
        return self._page(messages, cursor, limit)

    async def fetch_replies(
        self,
        channel_id: str,
        anchor: Decimal,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        inclusive: bool = True,
        cursor: str | None = None,
        limit: int = 200,
    ) -> Page[MessageRecord]:
        await self._enter(
            "fetch_replies",
            {
                "channel_id": channel_id,
                "anchor": anchor,
                "inclusive": inclusive,
                "cursor": cursor,
                "limit": limit,
            },
        )
        if anchor in self.reply_errors:
            raise self.reply_errors[anchor]
        key = (channel_id, anchor)
        if key not in self.threads:
            raise NotFoundError("conversations.replies failed: thread_not_found")
        return self._page(sorted(self.threads[key], key=lambda m: m.id), cursor, limit)

    async def list_principals(
        self, *, cursor: str | None = None, limit: int = 200
    ) -> Page[PrincipalRecord]:
        await self._enter("list_principals", {"cursor": cursor, "limit": limit})
        return self._page(self.principals, cursor, limit)

    async def list_channels(
        self,
        *,
        cursor: str | None = None,
        limit: int = 200,
        types: str = "public_channel,private_channel",
        include_archived: bool = True,
    ) -> Page[ChannelRecord]:
        await self._enter("list_channels", {"cursor": cursor, "limit": limit})
        return self._page(self.channels, cursor, limit)

    async def channel_info(self, channel_id: str) -> ChannelRecord:
        await self._enter("channel_info", {"channel_id": channel_id})
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        raise NotFoundError("conversations.info failed: channel_not_found")

    def add_thread(
        self, channel_id: str, parent: MessageRecord, replies: list[MessageRecord]
    ) -> None:
        """Put *parent* in the channel history and its replies under its anchor."""
        self.history.setdefault(channel_id, []).append(parent)
        self.threads[(channel_id, parent.id)] = [parent, *replies]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def msg() -> Callable[..., MessageRecord]:
    """Factory for ``MessageRecord`` instances."""
    return make_message


@pytest.fixture
def ts() -> Callable[[object], Decimal]:
    """Parse a timestamp literal the way the domain does."""
    return parse_timestamp


@pytest.fixture
def principals() -> list[PrincipalRecord]:
    return [
        PrincipalRecord(id="U1", name="alice", real_name="Alice Smith", display_name="alice"),
        PrincipalRecord(id="U2", name="bob", real_name="Bob Jones", display_name="bobby"),
        PrincipalRecord(id="U3", name="carol", real_name="Carol King", deleted=True),
    ]


@pytest.fixture
def channels() -> list[ChannelRecord]:
    return [
        ChannelRecord(id="C0", name="general-chat"),
        ChannelRecord(id="C1", name="General"),
        ChannelRecord(id="C2", name="random"),
        ChannelRecord(id="C3", name="old-project", is_archived=True),
        ChannelRecord(id="C4", name="secret", is_private=True),
    ]


@pytest.fixture
def c1_service(
    principals: list[PrincipalRecord], channels: list[ChannelRecord]
) -> FakeConversationService:
    """Channel C1: t=100 (no replies), t=200 (replies at 205 and 210), t=300 (no replies)."""
    service = FakeConversationService(principals=principals, channels=channels)
    service.history["C1"] = [
        make_message(100, text="Morning all"),
        make_message(300, user="U2", text="Lunch?"),
    ]
    service.add_thread(
        "C1",
        make_message(
            200,
            text="Deploy plan for today?",
            reply_count=2,
            latest_reply=210,
            reply_users=("U2",),
        ),
        [
            make_message(205, user="U2", text="Looks good", thread_ts=200),
            make_message(210, user="U1", text="Shipping now", thread_ts=200),
        ],
    )
    return service


@pytest.fixture
def fake_service(
    principals: list[PrincipalRecord], channels: list[ChannelRecord]
) -> FakeConversationService:
    return FakeConversationService(principals=principals, channels=channels)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def cache(
    c1_service: FakeConversationService, clock: Callable[[], datetime]
) -> IdentifierCache:
    """In-memory identifier cache over the C1 service."""
    return IdentifierCache(c1_service, clock=clock)


@pytest.fixture
def engine(
    c1_service: FakeConversationService,
    cache: IdentifierCache,
    clock: Callable[[], datetime],
) -> ThreadEngine:
    return ThreadEngine(c1_service, cache, clock=clock)
