"""On-disk persistence for identifier-cache snapshots.

Each kind is stored as one JSON document (``principal.json``,
``channel.json``) holding the records keyed by id plus the fetch and expiry
times.  Writes go to a temporary file first and are moved into place with
``os.replace`` so a reader never sees a half-written snapshot.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from slackmcp.cache.models import SNAPSHOT_TYPES, Snapshot
from slackmcp.domain.types import IdentifierKind

logger = structlog.get_logger()


class SnapshotStore:
    """Reads and writes one snapshot file per identifier kind."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def path_for(self, kind: IdentifierKind) -> Path:
        return self._directory / f"{kind.value}.json"

    def load(self, kind: IdentifierKind) -> Snapshot | None:
        """Load the persisted snapshot for *kind*.

        Returns:
            The snapshot, or ``None`` when the file is missing or unreadable.
            A corrupt file is logged and ignored so the next refresh can
            overwrite it.
        """
        path = self.path_for(kind)
        if not path.exists():
            return None
        try:
            return SNAPSHOT_TYPES[kind].model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning("snapshot_load_failed", kind=kind.value, path=str(path), error=str(exc))
            return None

    def save(self, kind: IdentifierKind, snapshot: Snapshot) -> Path:
        """Atomically write *snapshot* for *kind* and return its path."""
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(kind)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{kind.value}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(snapshot.model_dump_json().encode("utf-8"))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("snapshot_saved", kind=kind.value, path=str(path), records=len(snapshot.value))
        return path
