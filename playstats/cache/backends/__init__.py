"""Cache backend implementations."""

from .base import CacheBackend, CacheBackendUnavailable, CacheError
from .memory import InMemoryCacheBackend
from .redis import RedisCacheBackend

__all__ = [
    "CacheBackend",
    "CacheError",
    "CacheBackendUnavailable",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
]
