"""
Memory module initialization.

Provides the in-process snapshot cache and the optional Redis tier.
"""

from memory.snapshot_cache import SnapshotCache
from memory.redis_store import RedisSnapshotStore

__all__ = [
    "SnapshotCache",
    "RedisSnapshotStore"
]
