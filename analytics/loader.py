"""
Snapshot Loader.

Resolves a Snapshot to its ParsedSnapshotResult:
fetch bytes from the byte source -> decode -> parse -> cache.

Lookup order:
1. In-process SnapshotCache (keyed by storage_path)
2. Optional Redis tier
3. Byte source download + parse

Concurrent loads of the same storage_path share one in-flight task, so a
snapshot is fetched and inserted once no matter how many callers race.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from analytics.errors import SnapshotNotFoundError
from analytics.traffic_parser import parse_traffic_source_bytes
from memory.redis_store import RedisSnapshotStore
from memory.snapshot_cache import SnapshotCache
from registry.schemas import ParsedSnapshotResult, Snapshot

if TYPE_CHECKING:
    # Type-only: clients.storage imports analytics.errors
    from clients.storage import ByteSource

logger = logging.getLogger(__name__)


class SnapshotLoader:
    """Loads and caches parsed snapshot CSVs."""

    def __init__(
        self,
        byte_source: "ByteSource",
        cache: Optional[SnapshotCache] = None,
        shared_store: Optional[RedisSnapshotStore] = None,
    ) -> None:
        """
        Initialize the loader.

        Args:
            byte_source: Where raw CSV bytes come from.
            cache: In-process cache; a fresh 20-entry cache when omitted.
            shared_store: Optional Redis tier consulted on cache misses.
        """
        self.byte_source = byte_source
        self.cache = cache if cache is not None else SnapshotCache()
        self.shared_store = shared_store
        self._in_flight: dict[str, asyncio.Task] = {}

    async def load(self, snapshot: Snapshot) -> ParsedSnapshotResult:
        """
        Load the parsed result for a snapshot.

        Args:
            snapshot: Snapshot reference.

        Returns:
            ParsedSnapshotResult. Snapshots without a storage path, or whose
            object no longer exists, yield an empty result flagged
            ``data_missing``.

        Raises:
            SnapshotFetchError: On byte-source failures other than not-found.
            TrafficSourceError: If the stored CSV cannot be parsed.
        """
        storage_path = snapshot.storage_path
        if not storage_path:
            logger.info(f"Snapshot {snapshot.id} has no storage path, returning empty result")
            return ParsedSnapshotResult.empty()

        cached = self.cache.get(storage_path)
        if cached is not None:
            logger.debug(f"Snapshot cache hit: {storage_path}")
            return cached

        task = self._in_flight.get(storage_path)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_parse(snapshot))
            self._in_flight[storage_path] = task
            task.add_done_callback(lambda _: self._in_flight.pop(storage_path, None))
        else:
            logger.debug(f"Joining in-flight load for {storage_path}")

        # A cancelled caller must not cancel the load other callers share
        return await asyncio.shield(task)

    async def _fetch_and_parse(self, snapshot: Snapshot) -> ParsedSnapshotResult:
        storage_path = snapshot.storage_path

        if self.shared_store is not None:
            shared = await self.shared_store.get(storage_path)
            if shared is not None:
                logger.debug(f"Shared snapshot store hit: {storage_path}")
                self.cache.put(storage_path, shared)
                return shared

        try:
            raw = await self.byte_source.fetch(storage_path)
        except SnapshotNotFoundError:
            logger.warning(
                f"Snapshot {snapshot.id} data not found at {storage_path}, "
                f"treating as incomplete upload"
            )
            return ParsedSnapshotResult.empty()

        result = parse_traffic_source_bytes(raw, snapshot.column_mapping)

        self.cache.put(storage_path, result)
        if self.shared_store is not None:
            await self.shared_store.set(storage_path, result)

        logger.info(
            f"Loaded snapshot {snapshot.id}: {len(result.metrics)} sources "
            f"from {storage_path}"
        )
        return result
