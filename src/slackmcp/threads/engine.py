"""Thread discovery and collection over a channel's flat message stream.

``ThreadEngine`` turns paginated channel history into thread records:

- ``list_active_threads``: thread parents with activity, filtered, sorted
  and summarized.
- ``collect_threads_in_range``: the three-step scan / identify / collect
  reconciliation that also finds threads whose parent lies outside the
  range but which received a reply inside it.
- ``get_thread_details`` / ``get_thread_replies``: one thread, complete.
- ``search_threads``: thread parents matching a text query across channels.

Every operation runs under an overall deadline.  Identifier lookups go
through the ``IdentifierCache`` and degrade to raw ids when it is unavailable.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TypeVar

import structlog

from slackmcp.cache.store import IdentifierCache
from slackmcp.config import Settings
from slackmcp.domain.errors import (
    CollectionFailedError,
    InvalidParameterError,
    NotFoundError,
    SlackMcpError,
    UnavailableError,
)
from slackmcp.domain.models import (
    ChannelRecord,
    ChannelThreadsResult,
    CollectedThread,
    CollectionResult,
    CollectionStats,
    IdentifierRecord,
    MessageRecord,
    ThreadDetails,
    ThreadFilters,
    ThreadParticipant,
    ThreadReplies,
    ThreadSearchResult,
    ThreadStats,
    ThreadSummary,
    TimeRange,
    thread_status,
)
from slackmcp.domain.types import (
    CollectionEvent,
    IdentifierKind,
    MatchType,
    ParticipantRole,
    ThreadSortKey,
    format_timestamp,
    timestamp_to_datetime,
)
from slackmcp.observability.metrics import ANCHORS_SKIPPED, THREADS_COLLECTED
from slackmcp.slack.client import ConversationService
from slackmcp.threads.machine import CollectionStateMachine
from slackmcp.threads.text import derive_preview, derive_title

logger = structlog.get_logger()

T = TypeVar("T")

MAX_THREADS_LIMIT = 100
MAX_KEYWORDS = 10
PARENT_PREVIEW_LENGTH = 100
SEARCH_PAGE_SIZE = 100

SORT_KEYS: dict[ThreadSortKey, Callable[[MessageRecord], Decimal | int]] = {
    ThreadSortKey.TIMESTAMP: lambda m: m.id,
    ThreadSortKey.REPLIES: lambda m: m.reply_count,
    ThreadSortKey.ACTIVITY: lambda m: m.last_activity_at,
}


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Deadline:
    """Overall deadline shared by every remote call of one operation."""

    def __init__(self, seconds: float) -> None:
        self._loop = asyncio.get_running_loop()
        self._expires_at = self._loop.time() + seconds

    def remaining(self) -> float:
        return self._expires_at - self._loop.time()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* within the time left on the deadline.

        Raises:
            TimeoutError: If the deadline passes before or during the call.
        """
        remaining = self.remaining()
        if remaining <= 0:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise TimeoutError("operation deadline exceeded")
        return await asyncio.wait_for(awaitable, remaining)


@dataclass(frozen=True)
class SkippedAnchor:
    """An anchor whose replies could not be collected."""

    anchor: Decimal
    reason: str


def identify_anchors(messages: Iterable[MessageRecord]) -> list[Decimal]:
    """Return the de-duplicated thread anchors touched by *messages*, ascending.

    A message with replies is its own anchor.  A reply contributes the
    anchor of its thread, which may lie outside the scanned range.
    """
    anchors: set[Decimal] = set()
    for message in messages:
        if message.thread_anchor is not None and message.thread_anchor != message.id:
            anchors.add(message.thread_anchor)
        elif message.reply_count > 0:
            anchors.add(message.id)
    return sorted(anchors)


def build_thread_stats(parent: MessageRecord, replies: Sequence[MessageRecord]) -> ThreadStats:
    authors = {m.author_id for m in (parent, *replies) if m.author_id}
    return ThreadStats(
        reply_count=len(replies),
        participant_count=len(authors),
        first_reply_at=replies[0].id if replies else None,
        last_reply_at=replies[-1].id if replies else None,
        parent_author_id=parent.author_id,
        parent_preview=parent.text[:PARENT_PREVIEW_LENGTH],
    )


def match_keywords(
    thread: CollectedThread, keywords: Sequence[str], match_type: MatchType
) -> list[str] | None:
    """Return the keywords found in *thread*, or ``None`` if it does not qualify.

    Matching is case-insensitive over the parent and every reply.
    """
    text = " ".join(m.text for m in thread.messages).lower()
    found = [k for k in keywords if k in text]
    if match_type == MatchType.ALL:
        return found if len(found) == len(keywords) else None
    return found or None


def normalize_keywords(keywords: Iterable[str] | None) -> list[str]:
    """Lowercase, strip and de-duplicate keywords, keeping their order.

    Raises:
        InvalidParameterError: If more than ``MAX_KEYWORDS`` remain.
    """
    normalized: list[str] = []
    for keyword in keywords or ():
        k = keyword.strip().lower()
        if k and k not in normalized:
            normalized.append(k)
    if len(normalized) > MAX_KEYWORDS:
        raise InvalidParameterError(
            "keywords", f"At most {MAX_KEYWORDS} keywords are allowed, got {len(normalized)}"
        )
    return normalized


class ThreadEngine:
    """Reconstructs threads from channel history via a ``ConversationService``."""

    def __init__(
        self,
        service: ConversationService,
        cache: IdentifierCache | None = None,
        *,
        history_page_limit: int = 200,
        reply_page_limit: int = 200,
        max_history_pages: int = 20,
        reply_fetch_concurrency: int = 8,
        operation_timeout: float = 60.0,
        max_threads: int = 50,
        active_window_hours: int = 168,
        channel_scan_limit: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._service = service
        self._cache = cache
        self._history_page_limit = history_page_limit
        self._reply_page_limit = reply_page_limit
        self._max_history_pages = max_history_pages
        self._concurrency = reply_fetch_concurrency
        self._operation_timeout = operation_timeout
        self._max_threads = max_threads
        self._active_window_hours = active_window_hours
        self._channel_scan_limit = channel_scan_limit
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        service: ConversationService,
        cache: IdentifierCache | None = None,
    ) -> ThreadEngine:
        return cls(
            service,
            cache,
            history_page_limit=settings.history_page_limit,
            reply_page_limit=settings.reply_page_limit,
            max_history_pages=settings.max_history_pages,
            reply_fetch_concurrency=settings.reply_fetch_concurrency,
            operation_timeout=settings.operation_timeout_seconds,
            max_threads=settings.max_threads_per_collection,
            active_window_hours=settings.active_thread_window_hours,
            channel_scan_limit=settings.channel_scan_limit,
        )

    # ------------------------------------------------------------------
    # Operation A: threads with activity in a channel
    # ------------------------------------------------------------------

    async def list_active_threads(
        self, channel_id: str, filters: ThreadFilters | None = None
    ) -> ChannelThreadsResult:
        """List thread parents in *channel_id*, filtered, sorted and truncated.

        Ties on the sort key keep ascending id order.

        Raises:
            NotFoundError: If the channel does not exist.
            RemoteServiceError: If the history fetch fails.
        """
        filters = filters or ThreadFilters()
        deadline = Deadline(self._operation_timeout)
        log = logger.bind(channel_id=channel_id)

        messages, truncated, timed_out = await self._scan_recent(channel_id, filters, deadline)
        by_id = {m.id: m for m in messages if filters.accepts(m)}
        candidates = [by_id[k] for k in sorted(by_id)]
        ranked = sorted(candidates, key=SORT_KEYS[filters.sort_by], reverse=True)
        selected = ranked[: filters.limit]

        now = self._clock()
        summaries = [self._summarize(channel_id, m, now) for m in selected]
        channel_info = await self._channel_record(channel_id, deadline)

        log.info(
            "active_threads_listed",
            scanned=len(messages),
            matched=len(candidates),
            returned=len(summaries),
            sort_by=filters.sort_by.value,
            degraded=timed_out,
        )
        return ChannelThreadsResult(
            channel_id=channel_id,
            threads=summaries,
            total=len(summaries),
            has_more=len(candidates) > filters.limit or truncated,
            channel_info=channel_info,
            degraded=timed_out,
        )

    async def _scan_recent(
        self, channel_id: str, filters: ThreadFilters, deadline: Deadline
    ) -> tuple[list[MessageRecord], bool, bool]:
        """Scan recent history up to the filters' scan limit.

        Returns:
            The messages read, whether more history remains unread, and
            whether the scan stopped at the deadline.
        """
        messages: list[MessageRecord] = []
        cursor: str | None = None
        pages = 0
        while len(messages) < filters.scan_limit and pages < self._max_history_pages:
            limit = min(self._history_page_limit, filters.scan_limit - len(messages))
            try:
                page = await deadline.run(
                    self._service.fetch_history(
                        channel_id,
                        oldest=filters.oldest,
                        latest=filters.latest,
                        cursor=cursor,
                        limit=limit,
                    )
                )
            except TimeoutError:
                logger.warning("history_scan_timeout", channel_id=channel_id, pages=pages)
                return messages, True, True
            pages += 1
            messages.extend(page.items)
            if not page.has_more or page.next_cursor == cursor:
                return messages, False, False
            cursor = page.next_cursor
        return messages, True, False

    def _summarize(self, channel_id: str, message: MessageRecord, now: datetime) -> ThreadSummary:
        participants = set(message.reply_users)
        if message.author_id:
            participants.add(message.author_id)
        return ThreadSummary(
            thread_anchor=message.id,
            channel_id=channel_id,
            title=derive_title(message.text),
            reply_count=message.reply_count,
            last_activity_at=message.last_activity_at,
            participant_count=len(participants),
            preview_text=derive_preview(message.text),
            status=thread_status(message.last_activity_at, now, self._active_window_hours),
        )

    # ------------------------------------------------------------------
    # Operation B: complete threads with activity in a time range
    # ------------------------------------------------------------------

    async def collect_threads_in_range(
        self,
        channel_id: str,
        time_range: TimeRange,
        *,
        max_threads: int | None = None,
        keywords: Iterable[str] | None = None,
        match_type: MatchType = MatchType.ANY,
    ) -> CollectionResult:
        """Collect every thread with at least one message inside *time_range*.

        1. Scan: page through history bounded by the range, sequentially.
        2. Identify: derive the ascending, de-duplicated anchor list.
        3. Collect: fetch each anchor's replies with bounded concurrency.

        An anchor whose fetch fails is skipped and counted.  Threads are
        returned in ascending anchor order.

        Args:
            channel_id: Channel to scan.
            time_range: Validated range; bounds are passed to the remote.
            max_threads: Cap on anchors collected (1-100).
            keywords: Optional case-insensitive content filter.
            match_type: Whether any or all keywords must appear.

        Raises:
            InvalidParameterError: If ``max_threads`` or ``keywords`` are out of bounds.
            NotFoundError: If the channel does not exist.
            RemoteServiceError: If the scan fails.
            CollectionFailedError: If anchors were found but none collected.
        """
        limit = self._max_threads if max_threads is None else max_threads
        if not 1 <= limit <= MAX_THREADS_LIMIT:
            raise InvalidParameterError(
                "max_threads", f"max_threads must be between 1 and {MAX_THREADS_LIMIT}, got {limit}"
            )
        terms = normalize_keywords(keywords)

        machine = CollectionStateMachine()
        deadline = Deadline(self._operation_timeout)
        log = logger.bind(
            channel_id=channel_id,
            oldest=format_timestamp(time_range.oldest),
            latest=format_timestamp(time_range.latest),
        )

        # Step 1: scan
        try:
            messages, pages, truncated = await self._scan_range(
                channel_id, time_range, deadline, machine
            )
        except SlackMcpError as exc:
            machine.fail()
            log.error("collection_scan_failed", error_code=exc.error_code.value, error=str(exc))
            raise
        machine.trigger(CollectionEvent.SCAN_COMPLETE)

        # Step 2: identify
        anchors = identify_anchors(messages)
        selected = anchors[:limit]
        log.debug("anchors_identified", anchors=len(anchors), selected=len(selected))

        threads: list[CollectedThread] = []
        skipped: list[SkippedAnchor] = []
        if selected:
            machine.trigger(CollectionEvent.ANCHORS_IDENTIFIED)

            # Step 3: collect
            outcomes = await self._collect_anchors(channel_id, selected, deadline)
            threads = [o for o in outcomes if isinstance(o, CollectedThread)]
            skipped = [o for o in outcomes if isinstance(o, SkippedAnchor)]
            for miss in skipped:
                machine.record_partial_failure(
                    f"thread {format_timestamp(miss.anchor)}: {miss.reason}"
                )
            if skipped:
                ANCHORS_SKIPPED.inc(len(skipped))
            if not threads:
                machine.fail()
                log.error("collection_failed", anchors=len(selected), skipped=len(skipped))
                raise CollectionFailedError(channel_id, len(skipped))

        collected_count = len(threads)
        if terms:
            threads = self._filter_by_keywords(threads, terms, match_type)

        state = machine.complete()
        THREADS_COLLECTED.inc(len(threads))

        stats = CollectionStats(
            channel_id=channel_id,
            range_start=timestamp_to_datetime(time_range.oldest),
            range_end=timestamp_to_datetime(time_range.latest),
            duration_hours=time_range.duration_hours,
            messages_scanned=len(messages),
            history_pages=pages,
            scan_truncated=truncated,
            total_threads_found=len(anchors),
            threads_collected=collected_count,
            threads_returned=len(threads),
            skipped_anchors=len(skipped),
            total_messages_collected=sum(1 + len(t.replies) for t in threads),
            keywords_applied=terms,
            match_type=match_type if terms else None,
        )
        log.info(
            "collection_completed",
            state=state.value,
            pages=pages,
            scanned=len(messages),
            anchors=len(anchors),
            collected=collected_count,
            returned=len(threads),
            skipped=len(skipped),
        )
        return CollectionResult(
            threads=threads,
            stats=stats,
            state=state,
            partial_failures=machine.partial_failures,
        )

    async def _scan_range(
        self,
        channel_id: str,
        time_range: TimeRange,
        deadline: Deadline,
        machine: CollectionStateMachine,
    ) -> tuple[list[MessageRecord], int, bool]:
        messages: list[MessageRecord] = []
        cursor: str | None = None
        pages = 0
        truncated = False
        while True:
            if pages >= self._max_history_pages:
                machine.record_partial_failure(f"history scan stopped at the {pages}-page cap")
                logger.warning("scan_truncated", channel_id=channel_id, pages=pages)
                truncated = True
                break
            try:
                page = await deadline.run(
                    self._service.fetch_history(
                        channel_id,
                        oldest=time_range.oldest,
                        latest=time_range.latest,
                        inclusive=time_range.inclusive,
                        cursor=cursor,
                        limit=self._history_page_limit,
                    )
                )
            except TimeoutError:
                machine.record_partial_failure(f"history scan timed out after {pages} pages")
                logger.warning("scan_timeout", channel_id=channel_id, pages=pages)
                truncated = True
                break
            pages += 1
            messages.extend(m for m in page.items if time_range.contains(m.id))
            if not page.has_more or page.next_cursor == cursor:
                break
            cursor = page.next_cursor
        return messages, pages, truncated

    async def _collect_anchors(
        self, channel_id: str, anchors: Sequence[Decimal], deadline: Deadline
    ) -> list[CollectedThread | SkippedAnchor]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def collect(anchor: Decimal) -> CollectedThread | SkippedAnchor:
            async with semaphore:
                try:
                    parent, replies = await self._fetch_thread(channel_id, anchor, deadline)
                except SlackMcpError as exc:
                    reason = exc.error_code.value
                    logger.warning(
                        "anchor_collection_failed",
                        channel_id=channel_id,
                        thread_anchor=format_timestamp(anchor),
                        error_code=reason,
                        error=str(exc),
                    )
                    return SkippedAnchor(anchor, reason)
                except TimeoutError:
                    logger.warning(
                        "anchor_collection_timeout",
                        channel_id=channel_id,
                        thread_anchor=format_timestamp(anchor),
                    )
                    return SkippedAnchor(anchor, "timeout")
            return CollectedThread(
                thread_anchor=anchor,
                parent_message=parent,
                replies=replies,
                stats=build_thread_stats(parent, replies),
            )

        return list(await asyncio.gather(*(collect(a) for a in anchors)))

    async def _fetch_thread(
        self, channel_id: str, anchor: Decimal, deadline: Deadline
    ) -> tuple[MessageRecord, list[MessageRecord]]:
        """Fetch a thread's parent and every reply, replies ascending by id.

        Raises:
            NotFoundError: If the remote returns no parent (deleted thread).
        """
        parent: MessageRecord | None = None
        replies: dict[Decimal, MessageRecord] = {}
        cursor: str | None = None
        while True:
            page = await deadline.run(
                self._service.fetch_replies(
                    channel_id,
                    anchor,
                    inclusive=True,
                    cursor=cursor,
                    limit=self._reply_page_limit,
                )
            )
            for message in page.items:
                if message.id == anchor:
                    parent = message
                else:
                    replies[message.id] = message
            if not page.has_more or page.next_cursor == cursor:
                break
            cursor = page.next_cursor

        if parent is None:
            raise NotFoundError(
                f"Thread not found: {format_timestamp(anchor)}",
                {"channel_id": channel_id, "thread_anchor": format_timestamp(anchor)},
            )
        return parent, [replies[k] for k in sorted(replies)]

    @staticmethod
    def _filter_by_keywords(
        threads: Sequence[CollectedThread], keywords: Sequence[str], match_type: MatchType
    ) -> list[CollectedThread]:
        kept: list[CollectedThread] = []
        for thread in threads:
            found = match_keywords(thread, keywords, match_type)
            if found is not None:
                kept.append(thread.model_copy(update={"keyword_matches": found}))
        return kept

    # ------------------------------------------------------------------
    # Single thread views
    # ------------------------------------------------------------------

    async def get_thread_details(self, channel_id: str, thread_anchor: Decimal) -> ThreadDetails:
        """Complete information about one thread, participants included.

        Raises:
            NotFoundError: If the channel or thread does not exist.
            RemoteServiceError: If the reply fetch fails.
        """
        deadline = Deadline(self._operation_timeout)
        parent, replies = await self._fetch_thread_or_timeout(channel_id, thread_anchor, deadline)

        principals = await self._records(IdentifierKind.PRINCIPAL, deadline)
        participants = self._participants(parent, replies, principals)
        channel = await self._channel_record(channel_id, deadline)
        last_activity = max([parent.last_activity_at, *(r.id for r in replies)])
        now = self._clock()
        created_at = timestamp_to_datetime(thread_anchor)

        return ThreadDetails(
            thread_anchor=thread_anchor,
            channel_id=channel_id,
            channel_name=channel.label if channel is not None else None,
            parent_message=parent,
            participants=participants,
            reply_count=len(replies),
            last_activity_at=last_activity,
            age_hours=round((now - created_at).total_seconds() / 3600),
            status=thread_status(last_activity, now, self._active_window_hours),
            created_at=created_at,
            updated_at=timestamp_to_datetime(last_activity),
        )

    async def get_thread_replies(
        self,
        channel_id: str,
        thread_anchor: Decimal,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        limit: int = 100,
    ) -> ThreadReplies:
        """One thread's replies, optionally bounded, oldest first.

        Raises:
            NotFoundError: If the channel or thread does not exist.
            InvalidParameterError: If ``limit`` is not positive.
        """
        if limit < 1:
            raise InvalidParameterError("limit", f"limit must be positive, got {limit}")
        deadline = Deadline(self._operation_timeout)
        parent, replies = await self._fetch_thread_or_timeout(channel_id, thread_anchor, deadline)

        in_bounds = [
            r
            for r in replies
            if (oldest is None or r.id >= oldest) and (latest is None or r.id <= latest)
        ]
        authors = {m.author_id for m in (parent, *replies) if m.author_id}
        last_activity = max([parent.last_activity_at, *(r.id for r in replies)])

        return ThreadReplies(
            thread_anchor=thread_anchor,
            channel_id=channel_id,
            parent_message=parent,
            replies=in_bounds[:limit],
            total_replies=len(in_bounds),
            has_more=len(in_bounds) > limit,
            participant_count=len(authors),
            created_at=timestamp_to_datetime(thread_anchor),
            last_activity_at=last_activity,
        )

    async def _fetch_thread_or_timeout(
        self, channel_id: str, thread_anchor: Decimal, deadline: Deadline
    ) -> tuple[MessageRecord, list[MessageRecord]]:
        try:
            return await self._fetch_thread(channel_id, thread_anchor, deadline)
        except TimeoutError:
            raise UnavailableError(
                f"Timed out fetching thread {format_timestamp(thread_anchor)}",
                {"channel_id": channel_id, "thread_anchor": format_timestamp(thread_anchor)},
            ) from None

    @staticmethod
    def _participants(
        parent: MessageRecord,
        replies: Sequence[MessageRecord],
        principals: dict[str, IdentifierRecord],
    ) -> list[ThreadParticipant]:
        counts: dict[str, int] = {}
        first: dict[str, Decimal] = {}
        last: dict[str, Decimal] = {}
        for message in (parent, *replies):
            author = message.author_id
            if not author:
                continue
            counts[author] = counts.get(author, 0) + 1
            first.setdefault(author, message.id)
            last[author] = message.id

        participants: list[ThreadParticipant] = []
        for author in counts:
            participants.append(
                ThreadParticipant(
                    principal_id=author,
                    display_name=principals[author].label if author in principals else None,
                    message_count=counts[author],
                    first_reply_at=first[author],
                    last_reply_at=last[author],
                    role=(
                        ParticipantRole.CREATOR
                        if author == parent.author_id
                        else ParticipantRole.PARTICIPANT
                    ),
                )
            )
        return participants

    # ------------------------------------------------------------------
    # Workspace search
    # ------------------------------------------------------------------

    async def search_threads(
        self,
        query: str,
        *,
        limit: int = 20,
        sort_by: ThreadSortKey = ThreadSortKey.ACTIVITY,
        min_replies: int | None = None,
        max_replies: int | None = None,
        channel_ids: Sequence[str] | None = None,
    ) -> ThreadSearchResult:
        """Find thread parents whose text contains *query*.

        Searches *channel_ids* or, by default, the first
        ``channel_scan_limit`` non-archived channels known to the cache.  A
        channel whose history cannot be read is skipped.

        Raises:
            InvalidParameterError: If *query* is blank.
            UnavailableError: If no channel list was given and the cache
                cannot supply one.
        """
        needle = query.strip().lower()
        if not needle:
            raise InvalidParameterError("query", "query must not be empty")

        if channel_ids is None:
            channel_ids = await self._default_search_channels()
        filters = ThreadFilters(min_replies=min_replies, max_replies=max_replies, query=needle)
        deadline = Deadline(self._operation_timeout)
        now = self._clock()

        matched: list[tuple[str, MessageRecord]] = []
        searched: list[str] = []
        for channel_id in channel_ids:
            try:
                page = await deadline.run(
                    self._service.fetch_history(channel_id, limit=SEARCH_PAGE_SIZE)
                )
            except SlackMcpError as exc:
                logger.warning(
                    "search_channel_failed", channel_id=channel_id, error_code=exc.error_code.value
                )
                continue
            except TimeoutError:
                logger.warning("search_timeout", channel_id=channel_id, searched=len(searched))
                break
            searched.append(channel_id)
            matched.extend((channel_id, m) for m in page.items if filters.accepts(m))

        key = SORT_KEYS[sort_by]
        ranked = sorted(matched, key=lambda pair: key(pair[1]), reverse=True)
        summaries = [self._summarize(cid, m, now) for cid, m in ranked[:limit]]
        logger.info(
            "threads_searched", query=needle, channels=len(searched), matched=len(matched)
        )
        return ThreadSearchResult(
            query=query,
            threads=summaries,
            total=len(summaries),
            has_more=len(matched) > limit,
            channels_searched=searched,
        )

    async def _default_search_channels(self) -> list[str]:
        if self._cache is None:
            raise UnavailableError("No channel list available for workspace search")
        records = await self._cache.records(IdentifierKind.CHANNEL)
        active = [r for r in records.values() if isinstance(r, ChannelRecord) and not r.is_archived]
        return [r.id for r in active[: self._channel_scan_limit]]

    # ------------------------------------------------------------------
    # Identifier enrichment
    # ------------------------------------------------------------------

    async def _records(
        self, kind: IdentifierKind, deadline: Deadline
    ) -> dict[str, IdentifierRecord]:
        """Every cached record of *kind*, or an empty mapping if none can be had.

        One lookup per request, bounded by *deadline*.
        """
        if self._cache is None:
            return {}
        try:
            return await deadline.run(self._cache.records(kind))
        except (UnavailableError, TimeoutError):
            logger.debug("cache_enrichment_unavailable", kind=kind.value)
            return {}

    async def _channel_record(self, channel_id: str, deadline: Deadline) -> ChannelRecord | None:
        """Channel metadata from the cache, else from a direct lookup."""
        record = (await self._records(IdentifierKind.CHANNEL, deadline)).get(channel_id)
        if isinstance(record, ChannelRecord):
            return record
        try:
            return await deadline.run(self._service.channel_info(channel_id))
        except SlackMcpError as exc:
            logger.debug(
                "channel_info_unavailable", channel_id=channel_id, error_code=exc.error_code.value
            )
        except TimeoutError:
            logger.debug("channel_info_timeout", channel_id=channel_id)
        return None
