"""
Redis-backed tier for parsed snapshot results.

Shares parsed CSVs between server processes and across restarts so a
snapshot is downloaded and parsed once per deployment rather than once
per process. The in-process SnapshotCache stays the first lookup; this
tier is consulted on a miss.

Redis problems are logged and treated as cache misses: the byte source
remains the source of truth.
"""

import logging
from typing import Any, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from config import config
from registry.schemas import ParsedSnapshotResult

logger = logging.getLogger(__name__)


class RedisSnapshotStore:
    """
    Parsed-result store using Redis.

    Keys look like ``{prefix}:parsed:{storage_path}`` and hold the JSON
    form of a ParsedSnapshotResult.
    """

    PREFIX_PARSED = "parsed"

    def __init__(
        self,
        url: Optional[str] = None,
        key_prefix: Optional[str] = None,
        ttl: Optional[int] = None,
        client: Optional[Any] = None,
    ) -> None:
        """
        Initialize the Redis store.

        Args:
            url: Redis URL (defaults to config.redis.url).
            key_prefix: Namespace for keys (defaults to config).
            ttl: Expiry in seconds; 0 or None keeps entries indefinitely.
            client: Pre-built async Redis client (used by tests).
        """
        self.url = url or config.redis.url
        self.key_prefix = key_prefix or config.redis.key_prefix
        self.ttl = config.redis.parsed_ttl if ttl is None else ttl
        self._client: Optional[Any] = client
        self._connected = client is not None

    async def _ensure_connection(self) -> Optional[Any]:
        """
        Ensure Redis connection is established.

        Returns:
            Redis client instance, or None if Redis is unreachable
        """
        if self._client is None or not self._connected:
            try:
                self._client = redis.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True
                )
                # Test connection
                await self._client.ping()
                self._connected = True
                logger.info("Redis connection established")
            except redis.RedisError as e:
                logger.error(f"Redis connection failed: {e}")
                self._client = None
                self._connected = False

        return self._client

    def _make_key(self, *parts: str) -> str:
        """Build a Redis key from parts."""
        return f"{self.key_prefix}:{':'.join(parts)}"

    async def get(self, storage_path: str) -> Optional[ParsedSnapshotResult]:
        """
        Get a parsed result by storage path.

        Args:
            storage_path: Snapshot storage path

        Returns:
            ParsedSnapshotResult or None on miss or Redis failure
        """
        client = await self._ensure_connection()
        if client is None:
            return None

        key = self._make_key(self.PREFIX_PARSED, storage_path)
        try:
            data = await client.get(key)
        except redis.RedisError as e:
            logger.error(f"Parsed snapshot get failed: {e}")
            return None

        if not data:
            return None

        try:
            return ParsedSnapshotResult.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached snapshot {storage_path}: {e}")
            return None

    async def set(self, storage_path: str, result: ParsedSnapshotResult) -> None:
        """
        Store a parsed result.

        Args:
            storage_path: Snapshot storage path
            result: Parsed result to store
        """
        client = await self._ensure_connection()
        if client is None:
            return

        key = self._make_key(self.PREFIX_PARSED, storage_path)
        try:
            await client.set(key, result.model_dump_json(), ex=self.ttl or None)
        except redis.RedisError as e:
            logger.error(f"Parsed snapshot set failed: {e}")

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._connected = False
