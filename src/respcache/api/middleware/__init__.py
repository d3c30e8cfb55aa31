"""Middleware for services using the response cache.

- Read-through response caching for GET endpoints
"""

from respcache.api.middleware.response_cache import ResponseCacheMiddleware

__all__ = [
    "ResponseCacheMiddleware",
]
