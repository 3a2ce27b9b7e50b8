from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .workspace import destroy_workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultEntry:
    id: str
    workspace_root: Path
    output_dir: Path
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at


class ResultRegistry:
    """In-memory map of result id -> ResultEntry with TTL-based reclamation.

    Each entry owns its workspace directory: removing the entry (via sweep or
    drain) is the only path that deletes the directory, and a directory is only
    deleted after its entry is gone, so lookups never see an entry whose
    workspace was already reclaimed by the registry.

    lookup() does not re-check the TTL. An entry that is past its TTL stays
    retrievable until the next sweep removes it.

    A single threading.Lock guards the map: request handlers call in from the
    event loop, sweeps run on a worker thread. Filesystem deletion always
    happens after the lock is released.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, ResultEntry] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def new_entry(self, result_id: str, workspace_root: Path, output_dir: Path) -> ResultEntry:
        return ResultEntry(
            id=result_id,
            workspace_root=Path(workspace_root),
            output_dir=Path(output_dir),
            created_at=self.now(),
        )

    def register(self, entry: ResultEntry) -> None:
        with self._lock:
            self._entries[entry.id] = entry

    def lookup(self, result_id: str) -> ResultEntry | None:
        with self._lock:
            return self._entries.get(result_id)

    def sweep(self, now: float | None = None) -> int:
        """Remove entries older than the TTL and delete their workspaces.

        Returns the number of removed entries.
        """
        if now is None:
            now = self.now()
        with self._lock:
            expired = [e for e in self._entries.values() if e.age(now) > self.ttl_seconds]
            for entry in expired:
                del self._entries[entry.id]

        self._reclaim(expired)
        if expired:
            logger.info("swept %d expired result(s)", len(expired))
        return len(expired)

    def drain(self) -> int:
        """Remove every entry and delete its workspace (shutdown hook)."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        self._reclaim(entries)
        return len(entries)

    def _reclaim(self, entries: list[ResultEntry]) -> None:
        for entry in entries:
            try:
                destroy_workspace(entry.workspace_root)
            except Exception:
                logger.exception("failed to delete workspace for result %s", entry.id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, result_id: object) -> bool:
        with self._lock:
            return result_id in self._entries


async def run_sweeper(registry: ResultRegistry, interval_seconds: float) -> None:
    """Sweep the registry every interval_seconds until cancelled."""
    while True:
        await asyncio.sleep(max(1.0, interval_seconds))
        try:
            await asyncio.to_thread(registry.sweep)
        except Exception:
            logger.exception("result sweep failed")
