"""Read-through response cache middleware.

Serves cacheable GET responses from Redis and stores successful downstream
responses for the next request. The caller identity is read from
``request.state``, which the authentication layer is expected to populate
(``request.state.user_id``, or ``request.state.user`` with an ``id``).

Headers:
- X-Cache: HIT when served from cache, MISS when the response was produced
  by the handler and is eligible for caching
"""

from __future__ import annotations

from typing import Any

from fastapi.responses import ORJSONResponse
from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from respcache.cache.codec import as_json_text
from respcache.cache.interceptor import CacheInterceptor, CacheRequest
from respcache.observability.logging import LogContext

CACHE_HEADER = "X-Cache"
REQUEST_ID_HEADER = "X-Request-ID"


def get_user_id(request: Request) -> str | None:
    """Authenticated caller id set on the request state, if any."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)

    user = getattr(request.state, "user", None)
    if user is None:
        return None
    if isinstance(user, dict):
        user_id = user.get("id")
    else:
        user_id = getattr(user, "id", None)
    return str(user_id) if user_id else None


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Serve GET responses from the response cache.

    Features:
    - Cache hits short-circuit the handler entirely
    - Only 2xx bodies are stored
    - Lazy interceptor lookup (``app.state.cache``, built at startup)
    """

    def __init__(self, app: ASGIApp, interceptor: CacheInterceptor | None = None) -> None:
        super().__init__(app)
        self._interceptor = interceptor

    def _get_interceptor(self, request: Request) -> CacheInterceptor | None:
        if self._interceptor is not None:
            return self._interceptor
        runtime = getattr(request.app.state, "cache", None)
        return runtime.interceptor if runtime is not None else None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        interceptor = self._get_interceptor(request)
        if interceptor is None or request.method != "GET":
            return await call_next(request)

        user_id = get_user_id(request)
        request_id = request.headers.get(REQUEST_ID_HEADER)
        cache_request = CacheRequest(
            method=request.method,
            path=request.url.path,
            query=dict(request.query_params),
            user_id=user_id,
        )

        with LogContext(request_id=request_id, user_id=user_id):
            decision = await interceptor.try_serve_from_cache(cache_request)
        if decision.served:
            return self._cached_response(decision.body)

        response = await call_next(request)
        if not decision.cacheable:
            return response

        body = b""
        async for chunk in response.body_iterator:  # type: ignore[attr-defined]
            body += chunk if isinstance(chunk, bytes) else chunk.encode()

        with LogContext(request_id=request_id, user_id=user_id):
            await decision.complete(response.status_code, body)

        # Repeated headers such as Set-Cookie must survive the rebuild
        headers = MutableHeaders(
            raw=[(k, v) for k, v in response.raw_headers if k.lower() != b"content-length"]
        )
        headers.append(CACHE_HEADER, "MISS")
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )

    @staticmethod
    def _cached_response(body: Any) -> Response:
        # Only JSON bodies are ever stored, so every hit is re-served as JSON.
        # A stored JSON string decodes to its JSON text, which is sent unchanged.
        if isinstance(body, str) and as_json_text(body) is not None:
            return Response(
                content=body, media_type="application/json", headers={CACHE_HEADER: "HIT"}
            )
        return ORJSONResponse(content=body, headers={CACHE_HEADER: "HIT"})
