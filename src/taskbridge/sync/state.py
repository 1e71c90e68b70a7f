"""Mapping store persistence layer.

Keeps the ``SyncMapping`` rows for one sync profile in a JSON state file
(``mappings_{profile}.json``) inside the state directory (typically
``.taskbridge/``), together with per-side incremental-fetch cursors and the
time of the last completed pass.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Load once, mutate, save** -- a sync pass loads the store, mutates it in
  memory as commands succeed, and persists at checkpoints.  Only one pass
  runs at a time (enforced by the caller), so no file locking is done.
* **Reverse indexes** -- point lookups by either remote id are served from
  in-memory indexes rebuilt on load.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .models import Side, SyncCursor, SyncMapping

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class MappingStore:
    """Load, save and query sync mappings for one profile.

    Args:
        state_dir: Directory where state files are stored.
        profile_name: Profile name (used in the filename).
    """

    def __init__(self, state_dir: Path, profile_name: str) -> None:
        self._state_dir = Path(state_dir)
        self.profile_name = profile_name
        self._mappings: dict[str, SyncMapping] = {}
        self._by_remote: dict[Side, dict[str, str]] = {
            Side.A: {},
            Side.B: {},
        }
        self._cursors: dict[Side, SyncCursor] = {}
        self.last_sync: str | None = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        """Path to the state file for this profile."""
        return self._state_dir / f"mappings_{self.profile_name}.json"

    def load(self) -> MappingStore:
        """Load state from disk, replacing anything held in memory.

        A missing file yields an empty store.

        Returns:
            ``self`` for chaining.
        """
        self._mappings = {}
        self._by_remote = {Side.A: {}, Side.B: {}}
        self._cursors = {}
        self.last_sync = None

        if not self.path.exists():
            return self

        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)

        self.last_sync = data.get("last_sync")
        for key, raw in data.get("mappings", {}).items():
            raw.setdefault("local_key", key)
            try:
                self._index(SyncMapping.model_validate(raw))
            except ValueError as exc:
                logger.warning("Dropping invalid mapping %s: %s", key, exc)
        for side_value, raw in data.get("cursors", {}).items():
            self._cursors[Side(side_value)] = SyncCursor.model_validate(raw)

        logger.debug(
            "Loaded %d mappings from %s", len(self._mappings), self.path
        )
        return self

    def save(self, *, mark_synced: bool = False) -> None:
        """Persist state to disk atomically.

        Writes to a temporary file in the same directory then atomically
        replaces the target.  Creates the state directory if needed.

        Args:
            mark_synced: Also stamp ``last_sync`` with the current UTC time.
        """
        self._state_dir.mkdir(parents=True, exist_ok=True)
        if mark_synced:
            self.last_sync = datetime.now(timezone.utc).isoformat()

        data = {
            "version": STATE_VERSION,
            "last_sync": self.last_sync,
            "profile": self.profile_name,
            "mappings": {
                key: mapping.model_dump(mode="json")
                for key, mapping in sorted(self._mappings.items())
            },
            "cursors": {
                side.value: cursor.model_dump(mode="json")
                for side, cursor in self._cursors.items()
            },
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Mapping access
    # ------------------------------------------------------------------

    def get(self, local_key: str) -> SyncMapping | None:
        """Return the mapping for *local_key*, or ``None``."""
        return self._mappings.get(local_key)

    def get_by_remote_id(
        self, side: Side, remote_id: str
    ) -> SyncMapping | None:
        """Return the mapping whose *side* id equals *remote_id*."""
        key = self._by_remote[side].get(remote_id)
        return self._mappings.get(key) if key is not None else None

    def upsert(self, mapping: SyncMapping) -> None:
        """Insert or replace *mapping* (keyed by ``local_key``)."""
        previous = self._mappings.get(mapping.local_key)
        if previous is not None:
            self._unindex(previous)
        self._index(mapping)

    def delete(self, local_key: str) -> None:
        """Remove the mapping for *local_key*.  No-op if absent."""
        mapping = self._mappings.get(local_key)
        if mapping is not None:
            self._unindex(mapping)

    def __iter__(self) -> Iterator[SyncMapping]:
        return iter(list(self._mappings.values()))

    def __len__(self) -> int:
        return len(self._mappings)

    def __contains__(self, local_key: object) -> bool:
        return local_key in self._mappings

    # ------------------------------------------------------------------
    # Cursors
    # ------------------------------------------------------------------

    def get_cursor(self, side: Side) -> SyncCursor | None:
        return self._cursors.get(side)

    def set_cursor(self, side: Side, cursor: SyncCursor | None) -> None:
        if cursor is None:
            self._cursors.pop(side, None)
        else:
            self._cursors[side] = cursor

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index(self, mapping: SyncMapping) -> None:
        self._mappings[mapping.local_key] = mapping
        for side in Side:
            remote_id = mapping.id_for(side)
            if remote_id is None:
                continue
            owner = self._by_remote[side].get(remote_id)
            if owner is not None and owner != mapping.local_key:
                logger.warning(
                    "Remote id %s (side %s) moved from mapping %s to %s",
                    remote_id,
                    side.value,
                    owner,
                    mapping.local_key,
                )
            self._by_remote[side][remote_id] = mapping.local_key

    def _unindex(self, mapping: SyncMapping) -> None:
        self._mappings.pop(mapping.local_key, None)
        for side in Side:
            remote_id = mapping.id_for(side)
            if (
                remote_id is not None
                and self._by_remote[side].get(remote_id) == mapping.local_key
            ):
                del self._by_remote[side][remote_id]
