"""Tests for cache metrics."""

from __future__ import annotations

from respcache.observability.metrics import CacheMetrics


def _value(metrics: CacheMetrics, name: str, **labels: str) -> float | None:
    return metrics.registry.get_sample_value(name, labels)


class TestCacheMetrics:
    """Tests for CacheMetrics."""

    def test_read_path_counters(self) -> None:
        metrics = CacheMetrics()

        metrics.record_hit("bookings")
        metrics.record_hit("bookings")
        metrics.record_miss("bookings")
        metrics.record_bypass("anonymous")
        metrics.record_store("bookings")

        assert _value(metrics, "respcache_cache_hits_total", resource="bookings") == 2
        assert _value(metrics, "respcache_cache_misses_total", resource="bookings") == 1
        assert _value(metrics, "respcache_cache_bypass_total", reason="anonymous") == 1
        assert _value(metrics, "respcache_cache_stores_total", resource="bookings") == 1

    def test_invalidation_counters(self) -> None:
        metrics = CacheMetrics()

        metrics.record_invalidation("booking-updated", 3, True)
        metrics.record_invalidation("booking-updated", 1, False)

        event = "booking-updated"
        assert _value(metrics, "respcache_cache_invalidated_keys_total", event=event) == 4
        assert _value(metrics, "respcache_cache_invalidation_failures_total", event=event) == 1

    def test_availability_gauge(self) -> None:
        metrics = CacheMetrics()

        metrics.set_available(False)

        assert _value(metrics, "respcache_cache_backend_available") == 0

    def test_instances_are_independent(self) -> None:
        first, second = CacheMetrics(), CacheMetrics()

        first.record_hit("user")

        assert _value(second, "respcache_cache_hits_total", resource="user") is None

    def test_disabled(self) -> None:
        metrics = CacheMetrics(enabled=False)

        metrics.record_hit("bookings")

        assert metrics.generate_latest() == b"# Metrics disabled\n"
        assert _value(metrics, "respcache_cache_hits_total", resource="bookings") is None

    def test_exposition(self) -> None:
        metrics = CacheMetrics()
        metrics.record_error("get")

        body = metrics.generate_latest().decode()

        assert 'respcache_cache_errors_total{operation="get"} 1.0' in body
