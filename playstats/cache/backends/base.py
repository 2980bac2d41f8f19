"""Abstract cache backend interface."""

import abc
from typing import Any, Optional


class CacheBackend(abc.ABC):
    """Abstract cache backend interface.

    Backends own entry expiry: a value stored with a TTL must stop being
    returned by `get` once the TTL has elapsed. Nothing in the response cache
    deletes entries explicitly.
    """

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Retrieve data from cache.

        Args:
            key: Cache key to retrieve

        Returns:
            Cached data as bytes, or None if not found or expired

        Raises:
            CacheError: On backend-specific errors (should be handled gracefully)
        """
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool:
        """Store data in cache.

        Args:
            key: Cache key to store under
            value: Data to cache as bytes
            ttl: Time to live in seconds, None for no expiry

        Returns:
            True if successfully stored, False on error
        """
        ...

    @abc.abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check backend health and return metrics.

        Returns:
            Dictionary with health status and backend-specific metrics
        """
        ...

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with cache hit/miss rates and other metrics.
            Base implementation returns empty dict.
        """
        return {}

    async def close(self) -> None:
        """Release backend resources."""
        return None


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheBackendUnavailable(CacheError):
    """Raised when cache backend is unavailable."""

    pass
