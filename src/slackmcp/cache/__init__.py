"""Identifier cache: principal and channel snapshots with TTL and persistence."""

from slackmcp.cache.models import (
    SNAPSHOT_TYPES,
    CacheEntry,
    ChannelSnapshot,
    PrincipalSnapshot,
    Snapshot,
)
from slackmcp.cache.snapshot import SnapshotStore
from slackmcp.cache.store import IdentifierCache

__all__ = [
    "SNAPSHOT_TYPES",
    "CacheEntry",
    "ChannelSnapshot",
    "IdentifierCache",
    "PrincipalSnapshot",
    "Snapshot",
    "SnapshotStore",
]
