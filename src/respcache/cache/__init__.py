"""Read-through response cache with event-driven invalidation.

- Endpoint policies decide which GET responses are cached and for how long
- Keys are deterministic per (scope, path, allowed query params)
- Bodies are stored zlib-compressed and base64-encoded in Redis
- Domain events purge affected keys with batched SCAN + DEL
- An availability gate makes every failure fall back to "no cache"
"""

from respcache.cache.availability import AvailabilityMonitor, AvailabilityState
from respcache.cache.codec import PayloadCodec
from respcache.cache.interceptor import CacheDecision, CacheInterceptor, CacheRequest
from respcache.cache.invalidation import (
    InvalidationContext,
    InvalidationEngine,
    InvalidationResult,
    PendingInvalidations,
)
from respcache.cache.keys import CacheKeys
from respcache.cache.policy import (
    CachePolicy,
    InvalidationRule,
    PolicyRegistry,
    RuleKind,
    load_registry,
)
from respcache.cache.redis import CacheStore, RedisCacheStore, close_redis, get_redis

__all__ = [
    # Policies
    "CachePolicy",
    "InvalidationRule",
    "PolicyRegistry",
    "RuleKind",
    "load_registry",
    # Keys and payloads
    "CacheKeys",
    "PayloadCodec",
    # Backing store
    "CacheStore",
    "RedisCacheStore",
    "get_redis",
    "close_redis",
    "AvailabilityMonitor",
    "AvailabilityState",
    # Read path
    "CacheDecision",
    "CacheInterceptor",
    "CacheRequest",
    # Invalidation
    "InvalidationContext",
    "InvalidationEngine",
    "InvalidationResult",
    "PendingInvalidations",
]
