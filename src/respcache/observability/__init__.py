"""Observability for the response cache.

Provides structured logging and metrics:
- JSON structured logging with request and user correlation
- Prometheus counters for hits, misses, stores and invalidations
"""

from respcache.observability.logging import (
    LogContext,
    configure_logging,
    request_id_var,
    user_id_var,
)
from respcache.observability.metrics import CacheMetrics

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "user_id_var",
    # Metrics
    "CacheMetrics",
]
