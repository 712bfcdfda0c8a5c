"""Pydantic models for identifier-cache snapshots."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from slackmcp.domain.models import ChannelRecord, PrincipalRecord
from slackmcp.domain.types import IdentifierKind

V = TypeVar("V")


class CacheEntry(BaseModel, Generic[V]):
    """A cached value with its expiry.  Replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True)

    value: V
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` once *now* has reached ``expires_at``."""
        return now >= self.expires_at


class PrincipalSnapshot(CacheEntry[dict[str, PrincipalRecord]]):
    """Full principal table keyed by id."""


class ChannelSnapshot(CacheEntry[dict[str, ChannelRecord]]):
    """Full channel table keyed by id."""


Snapshot = PrincipalSnapshot | ChannelSnapshot

SNAPSHOT_TYPES: dict[IdentifierKind, type[PrincipalSnapshot] | type[ChannelSnapshot]] = {
    IdentifierKind.PRINCIPAL: PrincipalSnapshot,
    IdentifierKind.CHANNEL: ChannelSnapshot,
}
