"""
Bounded in-process cache of parsed snapshot CSVs.

Keyed by storage_path: a path identifies immutable content, so entries
never go stale and need no TTL. The cache is bounded and evicts in
insertion order (FIFO), not by recency of access.
"""

import logging
from collections import OrderedDict
from typing import Optional

from registry.schemas import ParsedSnapshotResult

logger = logging.getLogger(__name__)


class SnapshotCache:
    """
    FIFO-bounded map of storage_path -> ParsedSnapshotResult.

    Owned by whoever builds the pipeline; there is no process-wide
    instance, so tests get isolated caches.
    """

    DEFAULT_MAX_ENTRIES = 20

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        """
        Initialize the cache.

        Args:
            max_entries: Maximum number of parsed results kept.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, ParsedSnapshotResult] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, storage_path: object) -> bool:
        return storage_path in self._entries

    def get(self, storage_path: str) -> Optional[ParsedSnapshotResult]:
        """Return the cached result without touching eviction order."""
        return self._entries.get(storage_path)

    def put(self, storage_path: str, result: ParsedSnapshotResult) -> None:
        """
        Insert a parsed result, evicting the oldest insertion when full.

        Re-inserting an existing key keeps the original entry: content at a
        storage path never changes.
        """
        if storage_path in self._entries:
            return

        while len(self._entries) >= self.max_entries:
            evicted_path, _ = self._entries.popitem(last=False)
            logger.debug(f"Snapshot cache evicted {evicted_path}")

        self._entries[storage_path] = result

    def keys(self) -> list[str]:
        """Cached storage paths, oldest insertion first."""
        return list(self._entries.keys())

    def clear(self) -> None:
        self._entries.clear()
