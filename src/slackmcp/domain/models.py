"""Pydantic v2 models for messages, thread projections and collection results."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from slackmcp.domain.errors import InvalidTimeRangeError, SlackMcpError
from slackmcp.domain.types import (
    CollectionState,
    ErrorCode,
    IdentifierKind,
    MatchType,
    ParticipantRole,
    ThreadSortKey,
    ThreadStatus,
    Timestamp,
    parse_timestamp,
    timestamp_to_datetime,
)


def normalize_name(name: str) -> str:
    """Normalize a display name for comparison.

    Strips whitespace and a leading ``#`` or ``@`` sigil, then lowercases.
    """
    return name.strip().lstrip("#@").strip().lower()


class PrincipalRecord(BaseModel):
    """A workspace member as returned by the member enumeration call."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    real_name: str = ""
    display_name: str = ""
    email: str = ""
    is_bot: bool = False
    deleted: bool = False

    @classmethod
    def from_slack(cls, payload: dict[str, Any]) -> PrincipalRecord:
        """Build a record from a ``users.list`` member object."""
        profile = payload.get("profile") or {}
        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            real_name=payload.get("real_name") or profile.get("real_name") or "",
            display_name=profile.get("display_name") or payload.get("display_name") or "",
            email=profile.get("email") or payload.get("email") or "",
            is_bot=bool(payload.get("is_bot", False)),
            deleted=bool(payload.get("deleted", False)),
        )

    @property
    def label(self) -> str:
        """Best human-readable name for the principal."""
        return self.display_name or self.real_name or self.name or self.id

    def names(self) -> list[str]:
        """All non-empty names this principal can be looked up by."""
        return [n for n in (self.display_name, self.real_name, self.name) if n]


class ChannelRecord(BaseModel):
    """A conversation as returned by the channel enumeration call."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    is_private: bool = False
    is_archived: bool = False
    is_member: bool = False
    topic: str = ""
    purpose: str = ""
    num_members: int = 0

    @classmethod
    def from_slack(cls, payload: dict[str, Any]) -> ChannelRecord:
        """Build a record from a ``conversations.list`` channel object."""
        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            is_private=bool(payload.get("is_private", False)),
            is_archived=bool(payload.get("is_archived", False)),
            is_member=bool(payload.get("is_member", False)),
            topic=(payload.get("topic") or {}).get("value", ""),
            purpose=(payload.get("purpose") or {}).get("value", ""),
            num_members=int(payload.get("num_members") or 0),
        )

    @property
    def label(self) -> str:
        return self.name or self.id

    def names(self) -> list[str]:
        return [self.name] if self.name else []


IdentifierRecord = PrincipalRecord | ChannelRecord

RECORD_TYPES: dict[IdentifierKind, type[PrincipalRecord] | type[ChannelRecord]] = {
    IdentifierKind.PRINCIPAL: PrincipalRecord,
    IdentifierKind.CHANNEL: ChannelRecord,
}


class TimeRange(BaseModel):
    """A window of message timestamps.

    Both bounds are fixed-point seconds.  ``inclusive`` controls whether
    messages exactly on a bound belong to the range.
    """

    model_config = ConfigDict(frozen=True)

    oldest: Timestamp
    latest: Timestamp
    inclusive: bool = True

    @model_validator(mode="after")
    def oldest_must_not_exceed_latest(self) -> TimeRange:
        """Ensure ``oldest <= latest``."""
        if self.oldest > self.latest:
            raise ValueError(f"oldest ({self.oldest}) must not exceed latest ({self.latest})")
        return self

    @classmethod
    def between(cls, oldest: object, latest: object, inclusive: bool = True) -> TimeRange:
        """Build a range, raising ``InvalidTimeRangeError`` for bad bounds.

        Args:
            oldest: Lower bound (anything ``parse_timestamp`` accepts).
            latest: Upper bound.
            inclusive: Whether the bounds themselves are in range.

        Returns:
            The validated ``TimeRange``.

        Raises:
            InvalidTimeRangeError: If a bound is not a number or
                ``oldest > latest``.
        """
        try:
            low = parse_timestamp(oldest)
            high = parse_timestamp(latest)
        except ValueError as exc:
            raise InvalidTimeRangeError(str(exc)) from None
        if low > high:
            raise InvalidTimeRangeError(
                f"Invalid time range: oldest ({low}) is after latest ({high})",
                {"oldest": str(low), "latest": str(high)},
            )
        return cls(oldest=low, latest=high, inclusive=inclusive)

    def contains(self, ts: Decimal) -> bool:
        """Return ``True`` if *ts* falls inside the range."""
        if self.inclusive:
            return self.oldest <= ts <= self.latest
        return self.oldest < ts < self.latest

    @property
    def duration_hours(self) -> float:
        return round(float(self.latest - self.oldest) / 3600, 2)


class MessageRecord(BaseModel):
    """A single message from the remote service.  Read-only.

    ``id`` is the message timestamp and orders messages within a channel.
    """

    model_config = ConfigDict(frozen=True)

    id: Timestamp
    author_id: str | None = None
    text: str = ""
    thread_anchor: Timestamp | None = None
    reply_count: int = 0
    last_reply_at: Timestamp | None = None
    reply_users: tuple[str, ...] = ()
    subtype: str | None = None
    has_attachments: bool = False

    @classmethod
    def from_slack(cls, payload: dict[str, Any]) -> MessageRecord:
        """Build a record from a raw ``conversations.*`` message object."""
        return cls(
            id=payload["ts"],
            author_id=payload.get("user") or payload.get("bot_id"),
            text=payload.get("text") or "",
            thread_anchor=payload.get("thread_ts"),
            reply_count=int(payload.get("reply_count") or 0),
            last_reply_at=payload.get("latest_reply"),
            reply_users=tuple(payload.get("reply_users") or ()),
            subtype=payload.get("subtype"),
            has_attachments=bool(payload.get("files") or payload.get("attachments")),
        )

    @property
    def is_thread_parent(self) -> bool:
        return self.reply_count > 0

    @property
    def is_thread_reply(self) -> bool:
        return self.thread_anchor is not None and self.thread_anchor != self.id

    @property
    def last_activity_at(self) -> Decimal:
        """Last reply time for a parent, otherwise the message's own id."""
        return self.last_reply_at if self.last_reply_at is not None else self.id


class ThreadSummary(BaseModel):
    """Lightweight projection of a thread parent, built per request."""

    model_config = ConfigDict(frozen=True)

    thread_anchor: Timestamp
    channel_id: str
    title: str
    reply_count: int
    last_activity_at: Timestamp
    participant_count: int
    preview_text: str
    status: ThreadStatus = ThreadStatus.ACTIVE


class ThreadParticipant(BaseModel):
    """A principal's participation in one thread."""

    model_config = ConfigDict(frozen=True)

    principal_id: str
    display_name: str | None = None
    message_count: int
    first_reply_at: Timestamp
    last_reply_at: Timestamp
    role: ParticipantRole


class ThreadDetails(BaseModel):
    """Complete information about one thread including its participants."""

    model_config = ConfigDict(frozen=True)

    thread_anchor: Timestamp
    channel_id: str
    channel_name: str | None = None
    parent_message: MessageRecord
    participants: list[ThreadParticipant]
    reply_count: int
    last_activity_at: Timestamp
    age_hours: int
    status: ThreadStatus
    created_at: datetime
    updated_at: datetime


class ThreadStats(BaseModel):
    """Statistics computed over one collected thread."""

    model_config = ConfigDict(frozen=True)

    reply_count: int
    participant_count: int
    first_reply_at: Timestamp | None = None
    last_reply_at: Timestamp | None = None
    parent_author_id: str | None = None
    parent_preview: str = ""


class CollectedThread(BaseModel):
    """A complete thread conversation returned by time-range collection.

    The parent is always the anchor message and replies are ordered by id.
    """

    model_config = ConfigDict(frozen=True)

    thread_anchor: Timestamp
    parent_message: MessageRecord
    replies: list[MessageRecord]
    stats: ThreadStats
    keyword_matches: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def parent_must_be_anchor_and_replies_sorted(self) -> CollectedThread:
        """Ensure the parent is the anchor and replies are ascending by id."""
        if self.parent_message.id != self.thread_anchor:
            raise ValueError(
                f"parent id {self.parent_message.id} does not match anchor {self.thread_anchor}"
            )
        ids = [reply.id for reply in self.replies]
        if ids != sorted(ids):
            raise ValueError("replies must be sorted ascending by id")
        return self

    @property
    def messages(self) -> list[MessageRecord]:
        """Parent followed by every reply."""
        return [self.parent_message, *self.replies]

    def to_payload(self, include_parent: bool = True) -> dict[str, Any]:
        """JSON-ready dict, optionally without the parent message."""
        exclude = None if include_parent else {"parent_message"}
        return self.model_dump(mode="json", exclude=exclude)


class CollectionStats(BaseModel):
    """Summary of one time-range collection request."""

    channel_id: str
    range_start: datetime
    range_end: datetime
    duration_hours: float
    messages_scanned: int = 0
    history_pages: int = 0
    scan_truncated: bool = False
    total_threads_found: int = 0
    threads_collected: int = 0
    threads_returned: int = 0
    skipped_anchors: int = 0
    total_messages_collected: int = 0
    keywords_applied: list[str] = Field(default_factory=list)
    match_type: MatchType | None = None


class CollectionResult(BaseModel):
    """Threads collected for a time range plus the request's outcome."""

    threads: list[CollectedThread]
    stats: CollectionStats
    state: CollectionState
    partial_failures: list[str] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.state == CollectionState.PARTIAL_FAILURE

    def to_payload(self, include_parent: bool = True) -> dict[str, Any]:
        return {
            "threads": [t.to_payload(include_parent) for t in self.threads],
            "stats": self.stats.model_dump(mode="json"),
            "state": self.state.value,
            "partial_failures": list(self.partial_failures),
        }


class ThreadFilters(BaseModel):
    """Filters for listing threads with activity in a channel.

    Accepts the query-parameter spellings used by resource addresses
    (``sort``, ``author``) as well as the field names.
    """

    model_config = ConfigDict(populate_by_name=True)

    limit: int = Field(default=20, ge=1, le=1000)
    scan_limit: int = Field(default=200, ge=1, le=1000)
    min_replies: int | None = Field(default=None, ge=0)
    max_replies: int | None = Field(default=None, ge=0)
    oldest: Timestamp | None = None
    latest: Timestamp | None = None
    has_attachments: bool | None = None
    author_id: str | None = Field(
        default=None, validation_alias=AliasChoices("author_id", "author", "user")
    )
    query: str | None = None
    sort_by: ThreadSortKey = Field(
        default=ThreadSortKey.TIMESTAMP, validation_alias=AliasChoices("sort_by", "sort")
    )

    def accepts(self, message: MessageRecord) -> bool:
        """Return ``True`` if a thread parent passes every filter."""
        if not message.is_thread_parent:
            return False
        if self.min_replies is not None and message.reply_count < self.min_replies:
            return False
        if self.max_replies is not None and message.reply_count > self.max_replies:
            return False
        if self.oldest is not None and message.id < self.oldest:
            return False
        if self.latest is not None and message.id > self.latest:
            return False
        if self.has_attachments is not None and message.has_attachments != self.has_attachments:
            return False
        if self.author_id is not None and message.author_id != self.author_id:
            return False
        if self.query and self.query.strip().lower() not in message.text.lower():
            return False
        return True


class ChannelThreadsResult(BaseModel):
    """Threads listed for one channel."""

    channel_id: str
    threads: list[ThreadSummary]
    total: int
    has_more: bool
    channel_info: ChannelRecord | None = None
    # set when the history scan hit the operation deadline
    degraded: bool = False


class ThreadReplies(BaseModel):
    """One thread's parent and a filtered, ordered page of its replies."""

    thread_anchor: Timestamp
    channel_id: str
    parent_message: MessageRecord
    replies: list[MessageRecord]
    total_replies: int
    has_more: bool
    participant_count: int
    created_at: datetime
    last_activity_at: Timestamp


class ThreadSearchResult(BaseModel):
    """Thread parents matching a text query across channels."""

    query: str
    threads: list[ThreadSummary]
    total: int
    has_more: bool
    channels_searched: list[str]


class ToolResponse(BaseModel):
    """Envelope returned by every tool call and resource read.

    ``degraded`` and ``skipped_count`` mark partial successes so callers can
    decide whether to retry.
    """

    success: bool
    data: Any = None
    error_code: str | None = None
    message: str | None = None
    degraded: bool = False
    skipped_count: int = 0
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @classmethod
    def ok(cls, data: Any, degraded: bool = False, skipped_count: int = 0) -> ToolResponse:
        return cls(success=True, data=data, degraded=degraded, skipped_count=skipped_count)

    @classmethod
    def from_error(cls, exc: SlackMcpError) -> ToolResponse:
        """Failure envelope carrying the error's stable code."""
        data = exc.details or None
        return cls(success=False, error_code=exc.error_code.value, message=str(exc), data=data)

    @classmethod
    def internal_error(cls, message: str) -> ToolResponse:
        return cls(success=False, error_code=ErrorCode.INTERNAL_ERROR.value, message=message)


def thread_status(last_activity_at: Decimal, now: datetime, window_hours: int) -> ThreadStatus:
    """Classify a thread as active or archived by the age of its last activity."""
    age = now - timestamp_to_datetime(last_activity_at)
    if age.total_seconds() > window_hours * 3600:
        return ThreadStatus.ARCHIVED
    return ThreadStatus.ACTIVE
