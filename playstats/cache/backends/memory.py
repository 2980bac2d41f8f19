"""In-process cache backend."""

import logging
import math
import time
from typing import Any, Callable, Optional

from cachetools import TLRUCache  # type: ignore

from .base import CacheBackend

logger = logging.getLogger(__name__)


def _expires_at(key: str, entry: tuple[bytes, Optional[int]], now: float) -> float:
    """Per-entry expiry for TLRUCache, entries without TTL never expire."""
    _, ttl = entry
    if ttl is None:
        return math.inf
    return now + ttl


class InMemoryCacheBackend(CacheBackend):
    """Per-process cache backend on top of a ``cachetools.TLRUCache``.

    Each entry expires after its own TTL. When ``max_items`` is reached the
    least recently used entry is discarded. Each worker process holds its own
    copy, which matches the per-node semantics of an edge cache.
    """

    def __init__(
        self,
        max_items: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize in-memory cache backend.

        Args:
            max_items: Maximum number of entries kept
            clock: Monotonic time source in seconds
        """
        self.max_items = max_items
        self._cache: TLRUCache = TLRUCache(
            maxsize=max_items, ttu=_expires_at, timer=clock
        )

        # Statistics tracking
        self._stats = {"hits": 0, "misses": 0}

    async def get(self, key: str) -> Optional[bytes]:
        """Retrieve data from memory, None once expired."""
        entry = self._cache.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        return entry[0]

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool:
        """Store data in memory."""
        self._cache[key] = (value, ttl)
        logger.debug(f"Cache SET for key: {key} (TTL: {ttl})")
        return True

    async def health_check(self) -> dict[str, Any]:
        """Report entry count."""
        self._cache.expire()
        return {
            "status": "connected",
            "backend": "memory",
            "entries": len(self._cache),
            "max_items": self.max_items,
        }

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        lookups = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / lookups) * 100 if lookups else 0.0

        self._cache.expire()
        return {
            "backend": "memory",
            "hit_rate": round(hit_rate, 2),
            "total_hits": self._stats["hits"],
            "total_misses": self._stats["misses"],
            "total_keys": len(self._cache),
        }

    async def close(self) -> None:
        """Drop all entries."""
        self._cache.clear()
