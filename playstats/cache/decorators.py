"""Cache-aside wrapping of request handlers."""

import asyncio
import base64
import functools
import json
import logging
import time
from typing import Awaitable, Callable, Optional

from attrs import define
from starlette.requests import Request
from starlette.responses import Response

from .backends import CacheBackend, CacheError
from .utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]


@define(frozen=True)
class CachedResponse:
    """Snapshot of a successful response as persisted in the cache."""

    key: str
    body: bytes
    headers: dict[str, str]
    status: int
    stored_at: float
    ttl: int

    def to_bytes(self) -> bytes:
        """Serialize to JSON, body base64 encoded."""
        return json.dumps(
            {
                "key": self.key,
                "content": base64.b64encode(self.body).decode("ascii"),
                "content_type": "base64",
                "status_code": self.status,
                "headers": self.headers,
                "cached_at": self.stored_at,
                "ttl": self.ttl,
            }
        ).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "CachedResponse":
        """Deserialize an entry written by `to_bytes`.

        Raises:
            ValueError: If the payload is not a valid cache entry
        """
        try:
            payload = json.loads(data.decode("utf-8"))
            return cls(
                key=payload["key"],
                body=base64.b64decode(payload["content"]),
                headers=dict(payload["headers"]),
                status=int(payload["status_code"]),
                stored_at=float(payload["cached_at"]),
                ttl=int(payload["ttl"]),
            )
        except (KeyError, TypeError, UnicodeDecodeError) as e:
            raise ValueError(f"Malformed cache entry: {e}") from e

    def to_response(self) -> Response:
        """Rebuild the HTTP response, status, headers and body verbatim."""
        return Response(content=self.body, status_code=self.status, headers=self.headers)


async def _read_body(response: Response) -> bytes:
    """Return the response body, draining streaming responses."""
    if not hasattr(response, "body_iterator"):
        return response.body

    body_content = b""
    # Handle both async and sync iterators
    if hasattr(response.body_iterator, "__aiter__"):
        async for chunk in response.body_iterator:
            body_content += chunk if isinstance(chunk, bytes) else chunk.encode()
    else:
        for chunk in response.body_iterator:
            body_content += chunk if isinstance(chunk, bytes) else chunk.encode()

    # Reset body iterator with an async iterator
    async def body_generator():
        yield body_content

    response.body_iterator = body_generator()
    return body_content


class CacheLayer:
    """Cache-aside wrapper for single-result, read-only handlers.

    On a hit the stored response is returned and the handler is not called.
    On a miss the handler runs, and only a status 200 response is persisted
    under the request URL with the given TTL. A layer built without a backend
    passes every request straight to the handler.
    """

    def __init__(
        self,
        cache_backend: Optional[CacheBackend],
        key_generator: CacheKeyGenerator,
        defer_writes: bool = False,
        cache_status_header: Optional[str] = "X-Cache",
    ):
        """Initialize cache layer.

        Args:
            cache_backend: Cache backend implementation, None disables caching
            key_generator: Cache key generator
            defer_writes: Persist entries in background tasks, see `drain`
            cache_status_header: Header name for cache status, None to omit
        """
        self.cache_backend = cache_backend
        self.key_generator = key_generator
        self.defer_writes = defer_writes
        self.cache_status_header = cache_status_header
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_writes(self) -> int:
        """Number of deferred writes not yet completed."""
        return len(self._pending)

    async def wrap(self, request: Request, ttl: int, handler: Handler) -> Response:
        """Serve `request` from cache, or through `handler` on a miss.

        Args:
            request: HTTP request, its full URL is the cache key
            ttl: Time to live in seconds for a stored response
            handler: Wrapped request handler

        Returns:
            Cached or freshly computed response
        """
        if self.cache_backend is None:
            return await handler(request)

        cache_key = self.key_generator.from_request(request)

        try:
            cached = await self._lookup(cache_key)
        except (CacheError, ValueError) as e:
            logger.warning(f"Error retrieving from cache: {e}")
            cached = None

        if cached is not None:
            logger.debug(f"Cache HIT for {request.url}")
            response = cached.to_response()
            self._mark(response, "HIT")
            return response

        logger.debug(f"Cache MISS for {request.url}")
        response = await handler(request)

        if response.status_code != 200:
            self._mark(response, "SKIP")
            return response

        response.headers["Cache-Control"] = f"public, max-age={ttl}"
        entry = CachedResponse(
            key=cache_key,
            body=await _read_body(response),
            headers=dict(response.headers),
            status=response.status_code,
            stored_at=time.time(),
            ttl=ttl,
        )

        if self.defer_writes:
            task = asyncio.create_task(self._store(entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            await self._store(entry)

        self._mark(response, "MISS")
        return response

    def cached(self, ttl: int) -> Callable[[Handler], Handler]:
        """Decorator form of `wrap`.

        Example:
            @cache.cached(ttl=300)
            async def stats(request: Request) -> Response:
                ...
        """

        def decorator(func: Handler) -> Handler:
            @functools.wraps(func)
            async def wrapper(request: Request) -> Response:
                return await self.wrap(request, ttl, func)

            return wrapper

        return decorator

    async def drain(self) -> None:
        """Wait for all deferred writes to complete."""
        while self._pending:
            logger.debug(f"Draining {len(self._pending)} pending cache writes")
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _lookup(self, cache_key: str) -> Optional[CachedResponse]:
        cached_data = await self.cache_backend.get(cache_key)
        if not cached_data:
            return None
        return CachedResponse.from_bytes(cached_data)

    async def _store(self, entry: CachedResponse) -> None:
        try:
            stored = await self.cache_backend.set(
                entry.key, entry.to_bytes(), ttl=entry.ttl
            )
        except Exception as e:
            logger.error(f"Error caching response: {e}")
            return

        if not stored:
            logger.warning(f"Cache backend refused entry for key: {entry.key}")

    def _mark(self, response: Response, status: str) -> None:
        if self.cache_status_header:
            response.headers[self.cache_status_header] = status
