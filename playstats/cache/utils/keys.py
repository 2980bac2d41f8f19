"""Cache key generation utilities."""

import hashlib
import logging

from starlette.requests import Request

logger = logging.getLogger(__name__)


class CacheKeyGenerator:
    """Generate deterministic cache keys from request URLs.

    The key is built from the full URL only (scheme, host, path and query
    string, query parameter order preserved). Method and body never take
    part, so only idempotent GET handlers should share a cache.
    """

    def __init__(self, namespace: str, max_key_length: int = 2048):
        """Initialize cache key generator.

        Args:
            namespace: Application namespace prefixed to every key
            max_key_length: Maximum cache key length before the URL is hashed
        """
        self.namespace = namespace
        self.max_key_length = max_key_length

    def from_request(self, request: Request) -> str:
        """Generate cache key from HTTP request.

        Args:
            request: Starlette request object

        Returns:
            Deterministic cache key string
        """
        return self.from_url(str(request.url))

    def from_url(self, url: str) -> str:
        """Generate cache key from an absolute URL.

        Args:
            url: Full request URL

        Returns:
            Cache key string
        """
        cache_key = f"{self.namespace}:{url}"

        if len(cache_key) > self.max_key_length:
            url_hash = hashlib.sha256(url.encode("utf-8")).hexdigest()
            cache_key = f"{self.namespace}:hash:{url_hash}"

        logger.debug(f"Generated cache key: {cache_key}")
        return cache_key
