"""playstats.api Application."""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=log_level,
    format="%(levelname)s - %(message)s",
)

import fastapi
import starlette
from fastapi import FastAPI

from playstats.cache import CacheKeyGenerator, CacheLayer, CacheSettings
from playstats.cache.backends import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
)

from . import __version__ as playstats_version
from .access import AccessGate
from .database import QueryExecutor, database_from_settings
from .dispatcher import Dispatcher
from .endpoints import PlayStatsFactory
from .settings import ApiSettings, DatabaseSettings

logger = logging.getLogger(__name__)


def cache_backend_from_settings(settings: CacheSettings) -> Optional[CacheBackend]:
    """Create the configured cache backend, None when caching is disabled."""
    if not settings.enable:
        return None

    if settings.backend == "redis":
        return RedisCacheBackend.from_settings(settings.redis)

    return InMemoryCacheBackend()


def create_app(
    settings: Optional[ApiSettings] = None,
    cache_settings: Optional[CacheSettings] = None,
    database: Optional[QueryExecutor] = None,
    cache_backend: Optional[CacheBackend] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Build the application.

    `database` and `cache_backend` default to the ones described by the
    environment settings. `clock` overrides the time source used for
    windowed queries.
    """
    settings = settings or ApiSettings()
    cache_settings = cache_settings or CacheSettings()

    if database is None:
        database = database_from_settings(DatabaseSettings())

    if cache_backend is None:
        cache_backend = cache_backend_from_settings(cache_settings)

    cache = CacheLayer(
        cache_backend,
        CacheKeyGenerator(
            cache_settings.namespace, max_key_length=cache_settings.max_key_length
        ),
        defer_writes=cache_settings.defer_writes,
        cache_status_header=cache_settings.status_header or None,
    )

    factory_options = {"clock": clock} if clock is not None else {}
    endpoints = PlayStatsFactory(database=database, cache=cache, **factory_options)
    dispatcher = Dispatcher(endpoints.router, AccessGate(settings.allowed_referers))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await cache.drain()
        if cache_backend is not None:
            await cache_backend.close()
        await database.close()
        logger.info("playstats shut down")

    app = FastAPI(
        title=settings.name,
        version=playstats_version,
        debug=settings.debug,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.cache = cache
    app.state.dispatcher = dispatcher

    # Health Check Endpoints
    @app.get("/_mgmt/ping", description="Liveliness", tags=["Liveliness/Readiness"])
    def ping():
        """Ping."""
        return {"message": "PONG"}

    @app.get("/_mgmt/health", description="Readiness", tags=["Liveliness/Readiness"])
    async def health():
        """Health check."""
        return {
            "status": "UP",
            "cache": await cache_backend.health_check()
            if cache_backend is not None
            else {"status": "disabled"},
            "versions": {
                "playstats": playstats_version,
                "fastapi": fastapi.__version__,
                "starlette": starlette.__version__,
            },
        }

    # Everything else goes through the referer gate and route table
    app.mount("/", dispatcher)

    return app


app = create_app()
