"""Cache utilities."""

from .keys import CacheKeyGenerator

__all__ = ["CacheKeyGenerator"]
