"""FastAPI application factory for the response cache.

Creates an application with:
- Response cache middleware on every GET route
- Lifecycle management for the Redis connection
- Cache health and Prometheus metrics endpoints
- ORJSON for fast JSON serialization

Host services add their own routers to the returned app and call
``app.state.cache.engine.invalidate(...)`` from their write paths.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
from starlette.responses import Response

from respcache.api.middleware import ResponseCacheMiddleware
from respcache.cache.availability import AvailabilityMonitor, AvailabilityState
from respcache.cache.codec import PayloadCodec
from respcache.cache.interceptor import CacheInterceptor
from respcache.cache.invalidation import InvalidationEngine, PendingInvalidations
from respcache.cache.policy import PolicyRegistry, load_registry
from respcache.cache.redis import CacheStore, RedisCacheStore, close_redis, get_redis
from respcache.config import Settings
from respcache.config import settings as default_settings
from respcache.observability import CacheMetrics, configure_logging

logger = logging.getLogger(__name__)


@dataclass
class CacheRuntime:
    """Everything the cache needs at request time, built once per app."""

    registry: PolicyRegistry
    store: CacheStore
    monitor: AvailabilityMonitor
    engine: InvalidationEngine
    interceptor: CacheInterceptor
    metrics: CacheMetrics


def build_runtime(
    settings: Settings,
    store: CacheStore,
    registry: PolicyRegistry | None = None,
) -> CacheRuntime:
    """Wire registry, monitor, engine and interceptor around a store."""
    registry = registry or load_registry(settings.policy_file)
    metrics = CacheMetrics(enabled=settings.enable_metrics)

    monitor = AvailabilityMonitor(store.ping, interval_ms=settings.availability_check_interval_ms)
    monitor.add_state_listener(lambda state: metrics.set_available(state is AvailabilityState.UP))
    engine = InvalidationEngine(
        registry,
        store,
        scan_count=settings.scan_count,
        monitor=monitor,
        pending=PendingInvalidations(settings.pending_invalidations_path),
        metrics=metrics,
    )
    interceptor = CacheInterceptor(
        registry,
        store,
        monitor,
        codec=PayloadCodec(settings.compression_level),
        ttl_override=settings.ttl_override,
        default_ttl=settings.default_ttl,
        metrics=metrics,
    )
    return CacheRuntime(
        registry=registry,
        store=store,
        monitor=monitor,
        engine=engine,
        interceptor=interceptor,
        metrics=metrics,
    )


def create_app(
    settings: Settings | None = None,
    store: CacheStore | None = None,
    registry: PolicyRegistry | None = None,
) -> FastAPI:
    """Create the application.

    Args:
        settings: Configuration; defaults to the environment-loaded settings.
        store: Backing store; defaults to Redis at ``settings.redis_url``.
        registry: Policy registry; defaults to ``settings.policy_file`` or
            the built-in tables.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Configure logging, connect Redis and build the cache runtime."""
        configure_logging(json_format=settings.env != "dev", level=settings.log_level)

        owns_redis = store is None
        backing = store or RedisCacheStore(await get_redis(settings.redis_url))
        app.state.cache = build_runtime(settings, backing, registry)
        logger.info(
            f"Response cache ready: {len(app.state.cache.registry.routes())} routes, "
            f"{len(app.state.cache.registry.event_names())} invalidation events"
        )

        yield

        await app.state.cache.monitor.stop()
        if owns_redis:
            await close_redis()
        logger.info("Response cache stopped")

    app = FastAPI(
        title=settings.app_name,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.add_middleware(ResponseCacheMiddleware)

    @app.get("/health/cache")
    async def cache_health(request: Request) -> dict[str, object]:
        runtime: CacheRuntime = request.app.state.cache
        available = await runtime.monitor.is_available()
        return {
            "status": "ok" if available else "degraded",
            "backend": runtime.monitor.state.value,
            "pendingInvalidations": len(runtime.engine.pending),
        }

    @app.get("/metrics")
    async def metrics(request: Request) -> Response:
        runtime: CacheRuntime = request.app.state.cache
        return Response(
            content=runtime.metrics.generate_latest(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app
