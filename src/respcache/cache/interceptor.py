"""Per-request read-through caching.

The interceptor is framework-neutral: it takes a ``CacheRequest`` and returns
a ``CacheDecision``. On a hit the decision carries the cached body and the
framework responds with it directly. On a miss the framework runs its handler
and then calls ``decision.complete(status_code, body)``, which stores 2xx
bodies for the next request.

No failure in here reaches the HTTP client: store and codec errors degrade to
behaving as if there were no cache.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from respcache.cache.codec import PayloadCodec
from respcache.cache.defaults import DEFAULT_TTL
from respcache.cache.keys import CacheKeys
from respcache.errors import CacheStoreError, PayloadCodecError

if TYPE_CHECKING:
    from respcache.cache.availability import AvailabilityMonitor
    from respcache.cache.policy import CachePolicy, PolicyRegistry
    from respcache.cache.redis import CacheStore
    from respcache.observability.metrics import CacheMetrics

logger = logging.getLogger(__name__)

READ_METHOD = "GET"


@dataclass(frozen=True)
class CacheRequest:
    """The parts of an HTTP request the cache looks at."""

    method: str
    path: str
    query: Mapping[str, Any] = field(default_factory=dict)
    user_id: str | None = None


@dataclass
class CacheDecision:
    """What to do with one request.

    ``served`` means ``body`` is the response. Otherwise, when ``key`` is set,
    the request is cacheable and ``complete`` must be awaited with the final
    response.
    """

    served: bool
    body: Any = None
    key: str | None = None
    ttl: int | None = None
    resource: str | None = None
    reason: str | None = None
    _interceptor: CacheInterceptor | None = field(default=None, repr=False)

    @classmethod
    def bypass(cls, reason: str) -> CacheDecision:
        return cls(served=False, reason=reason)

    @property
    def cacheable(self) -> bool:
        return not self.served and self.key is not None

    async def complete(self, status_code: int, body: Any) -> None:
        """Post-response hook: store the body if the response succeeded."""
        if self.served or self.key is None or self.ttl is None or self._interceptor is None:
            return
        await self._interceptor.store_response(
            self.key, status_code, body, self.ttl, self.resource
        )


class CacheInterceptor:
    """Read-through cache orchestrator for GET requests."""

    def __init__(
        self,
        registry: PolicyRegistry,
        store: CacheStore,
        monitor: AvailabilityMonitor,
        *,
        codec: PayloadCodec | None = None,
        ttl_override: int | None = None,
        default_ttl: int = DEFAULT_TTL,
        metrics: CacheMetrics | None = None,
    ):
        self.registry = registry
        self.store = store
        self.monitor = monitor
        self.codec = codec or PayloadCodec()
        self.ttl_override = ttl_override
        self.default_ttl = default_ttl
        self.metrics = metrics

    def resolve_ttl(self, policy: CachePolicy | None) -> int:
        """Policy TTL, then the per-interceptor override, then the default."""
        if policy is not None and policy.ttl_seconds:
            return policy.ttl_seconds
        if self.ttl_override:
            return self.ttl_override
        return self.default_ttl

    async def _prepare(self, request: CacheRequest) -> CacheDecision:
        """Decide whether a request is cacheable and derive its key."""
        if request.method.upper() != READ_METHOD:
            return CacheDecision.bypass("method")

        if not await self.monitor.is_available():
            return CacheDecision.bypass("unavailable")

        if not request.user_id:
            logger.debug("Skipping cache: No user or user ID in request")
            return CacheDecision.bypass("anonymous")

        path = CacheKeys.normalize_path(request.path)
        policy = self.registry.match_policy(path)
        if policy is None:
            logger.debug(f"Skipping cache: No configuration for {path}")
            return CacheDecision.bypass("no_policy")

        if not CacheKeys.validate_query(request.query, policy):
            logger.debug(f"Skipping cache: {path} has disallowed query parameters")
            return CacheDecision.bypass("query")

        key = CacheKeys.build(request.user_id, path, request.query, policy)
        if CacheKeys.is_sentinel(key):
            return CacheDecision.bypass("sentinel")

        return CacheDecision(
            served=False,
            key=key,
            ttl=self.resolve_ttl(policy),
            resource=CacheKeys.resource_type(path),
            _interceptor=self,
        )

    async def try_serve_from_cache(self, request: CacheRequest) -> CacheDecision:
        """Look the request up in the cache.

        Returns a served decision on a hit; otherwise a decision whose
        ``complete`` hook stores the eventual response.
        """
        decision = await self._prepare(request)
        if decision.key is None:
            self._record_bypass(decision.reason)
            return decision

        key, ttl = decision.key, decision.ttl or self.default_ttl
        try:
            stored = await self.store.get(key)
        except CacheStoreError as e:
            logger.error(f"Error retrieving cache for key={key}: {e}")
            self.monitor.mark_unavailable(str(e))
            self._record_error("get")
            return CacheDecision.bypass("store_error")

        body = self.codec.decode(stored) if stored is not None else None
        if body is None:
            logger.info(f"[CACHE MISS] {key}")
            if self.metrics is not None:
                self.metrics.record_miss(decision.resource or "")
            return decision

        try:
            await self.store.expire(key, ttl)
        except CacheStoreError as e:
            logger.debug(f"Failed to reset TTL for key={key}: {e}")

        logger.info(f"[CACHE HIT] {key}")
        if self.metrics is not None:
            self.metrics.record_hit(decision.resource or "")
        decision.served = True
        decision.body = body
        return decision

    async def store_if_cacheable(self, request: CacheRequest, status_code: int, body: Any) -> None:
        """Store a finished response without a prior decision."""
        decision = await self._prepare(request)
        await decision.complete(status_code, body)

    async def store_response(
        self,
        key: str,
        status_code: int,
        body: Any,
        ttl: int,
        resource: str | None = None,
    ) -> None:
        if not 200 <= status_code < 300:
            logger.debug(f"Not caching response with status code: {status_code}")
            return

        try:
            encoded = self.codec.encode(body)
        except PayloadCodecError as e:
            logger.debug(f"{e} (key={key})")
            self._record_error("encode")
            return

        try:
            await self.store.set(key, encoded, ttl)
        except CacheStoreError as e:
            logger.error(f"Failed to cache data for key={key}: {e}")
            self.monitor.mark_unavailable(str(e))
            self._record_error("set")
            return

        logger.debug(f"[CACHE SET] {key} (ttl={ttl}s)")
        if self.metrics is not None:
            self.metrics.record_store(resource or "")

    def _record_bypass(self, reason: str | None) -> None:
        if self.metrics is not None and reason:
            self.metrics.record_bypass(reason)

    def _record_error(self, operation: str) -> None:
        if self.metrics is not None:
            self.metrics.record_error(operation)
