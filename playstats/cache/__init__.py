"""playstats response cache.

URL-keyed, cache-aside response caching for Starlette handlers with
per-endpoint TTLs and pluggable in-memory or Redis storage.
"""

from .backends.base import CacheBackend
from .decorators import CachedResponse, CacheLayer
from .settings import CacheRedisSettings, CacheSettings
from .utils import CacheKeyGenerator

__all__ = [
    "CacheBackend",
    "CacheSettings",
    "CacheRedisSettings",
    "CacheKeyGenerator",
    "CacheLayer",
    "CachedResponse",
]
