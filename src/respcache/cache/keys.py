"""Cache key schema for cached API responses.

Key format: cache:{scope}:{resource_type}:{digest}

Where:
- scope: the caller's user id, or "admin" for paths under /api/admin
- resource_type: the path segment after /api/ (or /api/admin/)
- digest: first 10 hex chars of MD5(normalized_path + query_string)

The query string holds only allowlisted, non-blank params sorted by name, so a
given (scope, path, query) always maps to the same key across processes.
Requests that must not be cached get a random "nocache:" sentinel instead.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from respcache.cache.policy import ADMIN_PREFIX, CachePolicy, InvalidationRule, RuleKind

# Query values that clients send for "not set"
BLANK_QUERY_VALUES = frozenset({"", "undefined", "null"})


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple)):
        return all(_is_blank(v) for v in value)
    return str(value) in BLANK_QUERY_VALUES


class CacheKeys:
    """Cache key and invalidation pattern generator."""

    PREFIX = "cache"
    ADMIN_SCOPE = "admin"
    SENTINEL_PREFIX = "nocache:"
    DIGEST_LENGTH = 10

    @staticmethod
    def normalize_path(raw: str) -> str:
        """Normalize a request path so equivalent URLs share one key.

        Drops the query string and trailing slash, and roots the path
        under /api.
        """
        path = raw.split("?", 1)[0]
        if not path.startswith("/"):
            path = "/" + path
        if len(path) > 1 and path.endswith("/"):
            path = path.rstrip("/") or "/"
        if path == "/":
            return "/api"
        if path != "/api" and not path.startswith("/api/"):
            path = "/api" + path
        return path

    @staticmethod
    def validate_query(query: Mapping[str, Any], policy: CachePolicy) -> bool:
        """Check that a request's query params are cacheable under a policy."""
        if not policy.allowed_query_params:
            return all(_is_blank(value) for value in query.values())
        return all(
            key in policy.allowed_query_params
            for key, value in query.items()
            if not _is_blank(value)
        )

    @staticmethod
    def filter_query(query: Mapping[str, Any], policy: CachePolicy) -> dict[str, Any]:
        """Keep only allowlisted params that carry a value."""
        return {
            key: value
            for key, value in query.items()
            if key in policy.allowed_query_params and not _is_blank(value)
        }

    @classmethod
    def digest(cls, path: str, query_string: str = "") -> str:
        """Short content hash of a normalized path and query string."""
        # MD5 is used as a key fingerprint, not for security
        full = f"{path}{query_string}".encode()
        return hashlib.md5(full, usedforsecurity=False).hexdigest()[: cls.DIGEST_LENGTH]

    @staticmethod
    def query_string(query: Mapping[str, Any]) -> str:
        """Deterministic query string for already-filtered params."""
        if not query:
            return ""
        return "?" + urlencode(sorted((k, str(v)) for k, v in query.items()))

    @staticmethod
    def resource_type(path: str) -> str:
        """The path segment naming the cached resource.

        /api/bookings/123 -> "bookings", /api/admin/users -> "users".
        """
        segments = [s for s in path.split("/") if s]
        if segments[:1] == ["api"]:
            segments = segments[1:]
        if segments[:1] == ["admin"]:
            segments = segments[1:]
        return segments[0] if segments else "root"

    @staticmethod
    def is_admin_path(path: str) -> bool:
        return path == "/api/admin" or path.startswith("/api/admin/")

    @classmethod
    def sentinel(cls) -> str:
        """Unguessable key marking a request as uncacheable."""
        return f"{cls.SENTINEL_PREFIX}{secrets.token_hex(16)}"

    @classmethod
    def is_sentinel(cls, key: str) -> bool:
        return key.startswith(cls.SENTINEL_PREFIX)

    @classmethod
    def build(
        cls,
        scope: str,
        path: str,
        query: Mapping[str, Any] | None,
        policy: CachePolicy | None,
    ) -> str:
        """Build the cache key for a request.

        Returns a sentinel when there is no policy or the query is not
        allowed, so callers never store or look up such requests.
        """
        query = query or {}
        if policy is None or not cls.validate_query(query, policy):
            return cls.sentinel()

        normalized = cls.normalize_path(path)
        filtered = cls.filter_query(query, policy)
        digest = cls.digest(normalized, cls.query_string(filtered))
        resource = cls.resource_type(normalized)

        if cls.is_admin_path(normalized):
            return f"{cls.PREFIX}:{cls.ADMIN_SCOPE}:{resource}:{digest}"
        return f"{cls.PREFIX}:{scope}:{resource}:{digest}"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse a cache key into its components.

        Returns None for sentinels and keys that don't match the format.
        """
        parts = key.split(":")
        if len(parts) != 4 or parts[0] != cls.PREFIX:
            return None

        return {
            "prefix": parts[0],
            "scope": parts[1],
            "resource_type": parts[2],
            "digest": parts[3],
        }

    @classmethod
    def invalidation_pattern(
        cls,
        rule: InvalidationRule,
        user_id: str | None,
        variables: Mapping[str, str],
    ) -> str | None:
        """SCAN match pattern for a rule in a given event context.

        Returns None when a path-variable rule lacks its variable; such a
        rule must be skipped rather than widened to a wildcard.
        """
        if rule.kind is RuleKind.PATH_VARIABLE:
            value = variables.get(rule.variable_name or "")
            if not value:
                return None
            digest = cls.digest(cls.normalize_path(rule.render_path(value)))
            if rule.is_admin:
                clean = rule.pattern[len(ADMIN_PREFIX) :]
                return f"{cls.PREFIX}:{cls.ADMIN_SCOPE}:{clean}:{digest}*"
            return f"{cls.PREFIX}:{user_id or '*'}:{rule.pattern}:{digest}*"

        if rule.kind is RuleKind.USER_SCOPED and user_id:
            return f"{cls.PREFIX}:{user_id}:{rule.pattern}"

        if rule.is_admin:
            return f"{cls.PREFIX}:{cls.ADMIN_SCOPE}:{rule.pattern[len(ADMIN_PREFIX):]}"

        if user_id:
            return f"{cls.PREFIX}:{user_id}:{rule.pattern}:*"
        return f"{cls.PREFIX}:*:{rule.pattern}:*"
