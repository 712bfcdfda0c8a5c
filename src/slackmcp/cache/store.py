"""Identifier cache: TTL-governed principal and channel snapshots.

One ``IdentifierCache`` is owned by the application and injected into the
thread engine and the resource catalog.  Each kind has its own snapshot,
replaced wholesale after a successful full enumeration, never mutated.

Lookup policy:

- No snapshot in memory or on disk (cold start): the caller waits for the
  first refresh, bounded by ``cold_start_timeout``.  A timeout or remote
  failure raises ``UnavailableError``.
- Expired snapshot: the stale value is returned immediately and a single
  background refresh is scheduled.
- Fresh snapshot: served from memory.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from slackmcp.cache.models import SNAPSHOT_TYPES, Snapshot
from slackmcp.cache.snapshot import SnapshotStore
from slackmcp.config import Settings
from slackmcp.domain.errors import SlackMcpError, UnavailableError
from slackmcp.domain.models import IdentifierRecord, normalize_name
from slackmcp.domain.types import IdentifierKind
from slackmcp.observability.metrics import CACHE_REFRESHES
from slackmcp.slack.client import ConversationService

logger = structlog.get_logger()

Clock = Callable[[], datetime]

DEFAULT_TTLS: dict[IdentifierKind, timedelta] = {
    IdentifierKind.PRINCIPAL: timedelta(hours=1),
    IdentifierKind.CHANNEL: timedelta(minutes=15),
}


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class IdentifierCache:
    """Resolves principal and channel ids to records and names to ids."""

    def __init__(
        self,
        service: ConversationService,
        store: SnapshotStore | None = None,
        *,
        ttls: dict[IdentifierKind, timedelta] | None = None,
        page_limit: int = 200,
        cold_start_timeout: float = 30.0,
        clock: Clock = _utcnow,
    ) -> None:
        """Initialize the cache.

        Args:
            service: Remote service used for enumeration.
            store: Snapshot persistence.  ``None`` keeps snapshots in memory only.
            ttls: Per-kind time-to-live.  Missing kinds use ``DEFAULT_TTLS``.
            page_limit: Page size for enumeration calls.
            cold_start_timeout: Seconds a cold-start lookup may wait.
            clock: Returns the current aware UTC time.
        """
        self._service = service
        self._store = store
        self._ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._page_limit = page_limit
        self._cold_start_timeout = cold_start_timeout
        self._clock = clock
        self._snapshots: dict[IdentifierKind, Snapshot] = {}
        self._inflight: dict[IdentifierKind, asyncio.Task[Snapshot]] = {}

    @classmethod
    def from_settings(cls, settings: Settings, service: ConversationService) -> IdentifierCache:
        return cls(
            service,
            SnapshotStore(settings.cache_dir),
            ttls={
                IdentifierKind.PRINCIPAL: timedelta(seconds=settings.principal_ttl_seconds),
                IdentifierKind.CHANNEL: timedelta(seconds=settings.channel_ttl_seconds),
            },
            page_limit=settings.cache_page_limit,
            cold_start_timeout=settings.cold_start_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def snapshot(self, kind: IdentifierKind) -> Snapshot | None:
        """Return the live snapshot for *kind*, loading it from disk if needed.

        Never calls the remote service.
        """
        snap = self._snapshots.get(kind)
        if snap is None and self._store is not None:
            snap = self._store.load(kind)
            if snap is not None:
                self._snapshots[kind] = snap
                logger.info("cache_snapshot_loaded", kind=kind.value, records=len(snap.value))
        return snap

    def has_snapshot(self, kind: IdentifierKind) -> bool:
        return self.snapshot(kind) is not None

    def is_refreshing(self, kind: IdentifierKind) -> bool:
        task = self._inflight.get(kind)
        return task is not None and not task.done()

    async def records(self, kind: IdentifierKind) -> dict[str, IdentifierRecord]:
        """Return every record of *kind* keyed by id.

        Raises:
            UnavailableError: On a cold start the remote could not satisfy.
        """
        snap = await self._ensure(kind)
        return dict(snap.value)

    async def get(self, kind: IdentifierKind, record_id: str) -> IdentifierRecord | None:
        """Look up one record by id.

        Raises:
            UnavailableError: On a cold start the remote could not satisfy.
        """
        snap = await self._ensure(kind)
        return snap.value.get(record_id)

    async def find_by_name(self, kind: IdentifierKind, name: str) -> IdentifierRecord | None:
        """Find a record by display name.

        A case-insensitive exact match wins over a substring match.

        Raises:
            UnavailableError: On a cold start the remote could not satisfy.
        """
        matches = await self.search(kind, name, limit=1)
        if not matches:
            logger.info("cache_name_miss", kind=kind.value, name=name)
            return None
        return matches[0]

    async def search(
        self, kind: IdentifierKind, name: str, limit: int = 10
    ) -> list[IdentifierRecord]:
        """Return up to *limit* records whose names match *name*.

        Exact matches come first, then substring matches, each in snapshot order.
        """
        needle = normalize_name(name)
        if not needle:
            return []
        snap = await self._ensure(kind)
        exact: list[IdentifierRecord] = []
        partial: list[IdentifierRecord] = []
        for record in snap.value.values():
            names = [normalize_name(n) for n in record.names()]
            if needle in names:
                exact.append(record)
            elif any(needle in n for n in names):
                partial.append(record)
        return [*exact, *partial][:limit]

    async def resolve(self, kind: IdentifierKind, query: str) -> IdentifierRecord | None:
        """Resolve an id or a name to a record.  Ids are tried first."""
        query = query.strip()
        record = await self.get(kind, query)
        if record is not None:
            return record
        return await self.find_by_name(kind, query)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _ensure(self, kind: IdentifierKind) -> Snapshot:
        snap = self.snapshot(kind)
        if snap is None:
            return await self._cold_start(kind)
        if snap.is_expired(self._clock()) and not self.is_refreshing(kind):
            logger.info("cache_stale_serve", kind=kind.value, expires_at=snap.expires_at.isoformat())
            self.schedule_refresh(kind)
        return snap

    async def _cold_start(self, kind: IdentifierKind) -> Snapshot:
        logger.info("cache_cold_start", kind=kind.value)
        task = self.schedule_refresh(kind)
        try:
            return await asyncio.wait_for(asyncio.shield(task), self._cold_start_timeout)
        except TimeoutError:
            raise UnavailableError(
                f"Timed out loading {kind.value} records",
                {"kind": kind.value, "timeout": self._cold_start_timeout},
            ) from None
        except SlackMcpError as exc:
            raise UnavailableError(
                f"Could not load {kind.value} records: {exc}",
                {"kind": kind.value, "cause": exc.error_code.value},
            ) from exc

    def schedule_refresh(self, kind: IdentifierKind) -> asyncio.Task[Snapshot]:
        """Start a refresh of *kind* unless one is already running.

        Returns:
            The in-flight refresh task.
        """
        task = self._inflight.get(kind)
        if task is not None and not task.done():
            return task
        task = asyncio.get_running_loop().create_task(self._run_refresh(kind))
        self._inflight[kind] = task
        task.add_done_callback(lambda t, k=kind: self._refresh_done(k, t))
        return task

    def _refresh_done(self, kind: IdentifierKind, task: asyncio.Task[Snapshot]) -> None:
        if self._inflight.get(kind) is task:
            del self._inflight[kind]
        # Failures were logged by _run_refresh; mark the exception retrieved.
        if not task.cancelled():
            task.exception()

    async def refresh(self, kind: IdentifierKind) -> Snapshot:
        """Fetch every record of *kind* and swap in a new snapshot.

        Concurrent callers share one in-flight refresh.  On failure the
        previous snapshot stays in place.

        Raises:
            SlackMcpError: If the enumeration failed.
        """
        return await self.schedule_refresh(kind)

    async def _run_refresh(self, kind: IdentifierKind) -> Snapshot:
        log = logger.bind(kind=kind.value)
        log.info("cache_refresh_started")
        try:
            records = await self._fetch_all(kind)
        except SlackMcpError as exc:
            CACHE_REFRESHES.labels(kind=kind.value, outcome="failure").inc()
            log.warning("cache_refresh_failed", error_code=exc.error_code.value, error=str(exc))
            raise

        now = self._clock()
        snap = SNAPSHOT_TYPES[kind](value=records, fetched_at=now, expires_at=now + self._ttls[kind])
        self._snapshots[kind] = snap
        CACHE_REFRESHES.labels(kind=kind.value, outcome="success").inc()
        log.info("cache_refresh_succeeded", records=len(records))

        if self._store is not None:
            try:
                await asyncio.to_thread(self._store.save, kind, snap)
            except OSError as exc:
                log.warning("cache_persist_failed", error=str(exc))
        return snap

    async def _fetch_all(self, kind: IdentifierKind) -> dict[str, Any]:
        if kind is IdentifierKind.PRINCIPAL:
            fetch = self._service.list_principals
        else:
            fetch = self._service.list_channels

        records: dict[str, Any] = {}
        cursor: str | None = None
        while True:
            page = await fetch(cursor=cursor, limit=self._page_limit)
            for record in page.items:
                records[record.id] = record
            if not page.has_more or page.next_cursor == cursor:
                break
            cursor = page.next_cursor
        return records

    def invalidate(self, kind: IdentifierKind | None = None) -> None:
        """Mark the snapshot(s) expired so the next lookup refreshes them."""
        now = self._clock()
        kinds = [kind] if kind is not None else list(IdentifierKind)
        for k in kinds:
            snap = self.snapshot(k)
            if snap is not None:
                self._snapshots[k] = snap.model_copy(update={"expires_at": now})
                logger.info("cache_invalidated", kind=k.value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def warm(self) -> list[IdentifierKind]:
        """Load snapshots from disk and refresh missing or expired kinds.

        Must be called from a running event loop.  Does not wait.

        Returns:
            The kinds for which a background refresh was scheduled.
        """
        scheduled: list[IdentifierKind] = []
        now = self._clock()
        for kind in IdentifierKind:
            snap = self.snapshot(kind)
            if snap is None or snap.is_expired(now):
                self.schedule_refresh(kind)
                scheduled.append(kind)
        return scheduled

    async def aclose(self) -> None:
        """Cancel in-flight refreshes."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    def status(self) -> dict[str, Any]:
        """Per-kind record count, timestamps and refresh state."""
        now = self._clock()
        report: dict[str, Any] = {}
        for kind in IdentifierKind:
            snap = self.snapshot(kind)
            report[kind.value] = {
                "records": len(snap.value) if snap else 0,
                "fetched_at": snap.fetched_at.isoformat() if snap else None,
                "expires_at": snap.expires_at.isoformat() if snap else None,
                "stale": snap.is_expired(now) if snap else None,
                "refreshing": self.is_refreshing(kind),
            }
        return report
