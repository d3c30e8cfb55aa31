"""Prometheus metrics for the response cache.

Provides:
- Read path counters (hits, misses, bypasses by reason, stores, errors)
- Invalidation counters (keys deleted and failures, by event)
- Backing store availability gauge

Each CacheMetrics owns its CollectorRegistry so several instances (one per
app or test) can coexist without duplicate-registration errors.

Usage:
    metrics = CacheMetrics()
    metrics.record_hit("bookings")
    body = metrics.generate_latest()
"""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

logger = logging.getLogger(__name__)


class CacheMetrics:
    """Counters and gauges describing cache behaviour."""

    def __init__(self, enabled: bool = True, namespace: str = "respcache"):
        self.enabled = enabled
        self.registry = CollectorRegistry()

        self.hits_total = Counter(
            "cache_hits_total",
            "Responses served from cache",
            ["resource"],
            namespace=namespace,
            registry=self.registry,
        )
        self.misses_total = Counter(
            "cache_misses_total",
            "Cacheable requests not found in cache",
            ["resource"],
            namespace=namespace,
            registry=self.registry,
        )
        self.bypass_total = Counter(
            "cache_bypass_total",
            "Requests passed through without caching",
            ["reason"],
            namespace=namespace,
            registry=self.registry,
        )
        self.stores_total = Counter(
            "cache_stores_total",
            "Responses written to cache",
            ["resource"],
            namespace=namespace,
            registry=self.registry,
        )
        self.errors_total = Counter(
            "cache_errors_total",
            "Cache operations that failed and fell back to no caching",
            ["operation"],
            namespace=namespace,
            registry=self.registry,
        )
        self.invalidated_keys_total = Counter(
            "cache_invalidated_keys_total",
            "Cache keys deleted by invalidation events",
            ["event"],
            namespace=namespace,
            registry=self.registry,
        )
        self.invalidation_failures_total = Counter(
            "cache_invalidation_failures_total",
            "Invalidation events that did not complete",
            ["event"],
            namespace=namespace,
            registry=self.registry,
        )
        self.backend_available = Gauge(
            "cache_backend_available",
            "1 while the cache gate is open for the backing store",
            namespace=namespace,
            registry=self.registry,
        )

        if not enabled:
            logger.info("Metrics are disabled")

    def record_hit(self, resource: str) -> None:
        if self.enabled:
            self.hits_total.labels(resource=resource).inc()

    def record_miss(self, resource: str) -> None:
        if self.enabled:
            self.misses_total.labels(resource=resource).inc()

    def record_bypass(self, reason: str) -> None:
        if self.enabled:
            self.bypass_total.labels(reason=reason).inc()

    def record_store(self, resource: str) -> None:
        if self.enabled:
            self.stores_total.labels(resource=resource).inc()

    def record_error(self, operation: str) -> None:
        if self.enabled:
            self.errors_total.labels(operation=operation).inc()

    def record_invalidation(self, event: str, deleted: int, ok: bool) -> None:
        if not self.enabled:
            return
        if deleted:
            self.invalidated_keys_total.labels(event=event).inc(deleted)
        if not ok:
            self.invalidation_failures_total.labels(event=event).inc()

    def set_available(self, available: bool) -> None:
        if self.enabled:
            self.backend_available.set(1 if available else 0)

    def generate_latest(self) -> bytes:
        """Metrics in Prometheus exposition format."""
        if not self.enabled:
            return b"# Metrics disabled\n"
        return generate_latest(self.registry)
