"""Endpoint cache policies and event invalidation rules.

The registry is loaded once at startup and never mutated afterwards. Tests
that need different policies build their own registry and inject it.

Table format (both the built-in table and JSON policy files):

    {
        "endpoints": {
            "^/api/bookings$": {
                "ttlSeconds": 1800,
                "cachePerUser": true,
                "allowedQueryParams": ["page", "limit"],
                "invalidateOn": ["booking-updated"]
            }
        },
        "events": {
            "booking-updated": [
                {"pattern": "bookings:*", "userScoped": true},
                {"pattern": "admin:bookings:*"},
                {
                    "pattern": "admin:users",
                    "pathVariables": {
                        "urlTemplate": "/api/admin/users/{{userId}}",
                        "variableName": "userId"
                    }
                }
            ]
        }
    }
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

import orjson

from respcache.cache.defaults import DEFAULT_ENDPOINTS, DEFAULT_EVENTS
from respcache.errors import PolicyConfigError

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "admin:"


@dataclass(frozen=True)
class CachePolicy:
    """Caching behaviour for every path matched by ``route``."""

    route: str
    # None defers to the caller override or the global default
    ttl_seconds: int | None = None
    cache_per_user: bool = True
    allowed_query_params: frozenset[str] = frozenset()
    # Informational only; invalidation is driven by the event table
    invalidate_on: tuple[str, ...] = ()


class RuleKind(str, Enum):
    """Shape of an invalidation rule."""

    PLAIN = "plain"
    USER_SCOPED = "user_scoped"
    ADMIN_PREFIXED = "admin_prefixed"
    PATH_VARIABLE = "path_variable"


@dataclass(frozen=True)
class InvalidationRule:
    """A key pattern purged when an event fires.

    ``url_template`` and ``variable_name`` are only set for PATH_VARIABLE
    rules: the variable is taken from the invalidation context and substituted
    for ``{{variable_name}}`` in the template.
    """

    kind: RuleKind
    pattern: str
    url_template: str | None = None
    variable_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.pattern.startswith(ADMIN_PREFIX)

    def render_path(self, value: str) -> str:
        """Substitute a context value into the URL template."""
        if self.url_template is None or self.variable_name is None:
            raise ValueError(f"Rule {self.pattern!r} has no path variables")
        return self.url_template.replace("{{" + self.variable_name + "}}", value)


def parse_policy(route: str, raw: Mapping[str, Any]) -> CachePolicy:
    """Build a CachePolicy from one endpoint table entry."""
    try:
        re.compile(route)
    except re.error as e:
        raise PolicyConfigError(f"endpoints[{route!r}]", f"invalid route regex: {e}") from e

    ttl = raw.get("ttlSeconds", raw.get("ttl"))
    if ttl is not None and (not isinstance(ttl, int) or isinstance(ttl, bool) or ttl <= 0):
        raise PolicyConfigError(
            f"endpoints[{route!r}]", f"ttlSeconds must be a positive int, got {ttl!r}"
        )

    allowed = raw.get("allowedQueryParams", raw.get("allowQueryParams", []))
    invalidate_on = raw.get("invalidateOn", [])
    if not isinstance(allowed, list) or not isinstance(invalidate_on, list):
        raise PolicyConfigError(
            f"endpoints[{route!r}]", "allowedQueryParams and invalidateOn must be lists"
        )

    return CachePolicy(
        route=route,
        ttl_seconds=ttl,
        cache_per_user=bool(raw.get("cachePerUser", True)),
        allowed_query_params=frozenset(str(p) for p in allowed),
        invalidate_on=tuple(str(e) for e in invalidate_on),
    )


def parse_rule(event_name: str, raw: Mapping[str, Any]) -> InvalidationRule:
    """Classify one raw event rule into its tagged variant."""
    location = f"events[{event_name!r}]"
    pattern = raw.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise PolicyConfigError(location, "every rule needs a non-empty pattern")

    path_variables = raw.get("pathVariables")
    if path_variables is not None:
        template = path_variables.get("urlTemplate", path_variables.get("urlPattern"))
        variable = path_variables.get("variableName", path_variables.get("variable"))
        if not template or not variable:
            raise PolicyConfigError(location, "pathVariables needs urlTemplate and variableName")
        placeholder = "{{" + variable + "}}"
        if placeholder not in template:
            raise PolicyConfigError(location, f"urlTemplate has no {placeholder} placeholder")
        return InvalidationRule(
            kind=RuleKind.PATH_VARIABLE,
            pattern=pattern,
            url_template=template,
            variable_name=variable,
        )

    if raw.get("userScoped", raw.get("userId", False)):
        return InvalidationRule(kind=RuleKind.USER_SCOPED, pattern=pattern)
    if pattern.startswith(ADMIN_PREFIX):
        return InvalidationRule(kind=RuleKind.ADMIN_PREFIXED, pattern=pattern)
    return InvalidationRule(kind=RuleKind.PLAIN, pattern=pattern)


class PolicyRegistry:
    """Read-only lookup of endpoint policies and event rules."""

    def __init__(
        self,
        policies: list[CachePolicy],
        events: Mapping[str, tuple[InvalidationRule, ...]],
    ):
        self._policies = tuple(policies)
        self._compiled = tuple((re.compile(p.route), p) for p in self._policies)
        self._events = MappingProxyType(dict(events))

    @classmethod
    def from_table(
        cls,
        endpoints: Mapping[str, Mapping[str, Any]],
        events: Mapping[str, list[Mapping[str, Any]]],
    ) -> PolicyRegistry:
        """Build a registry from endpoint and event tables.

        Dict insertion order is the route evaluation order.
        """
        policies = [parse_policy(route, raw) for route, raw in endpoints.items()]
        rules = {
            name: tuple(parse_rule(name, raw) for raw in raw_rules)
            for name, raw_rules in events.items()
        }
        return cls(policies, rules)

    @classmethod
    def from_file(cls, path: Path) -> PolicyRegistry:
        """Load a registry from a JSON policy file."""
        try:
            data = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise PolicyConfigError(str(path), f"cannot read policy file: {e}") from e

        if not isinstance(data, dict):
            raise PolicyConfigError(str(path), "policy file must hold a JSON object")

        registry = cls.from_table(data.get("endpoints", {}), data.get("events", {}))
        logger.info(
            f"Loaded {len(registry.routes())} cache policies and "
            f"{len(registry.event_names())} invalidation events from {path}"
        )
        return registry

    @classmethod
    def default(cls) -> PolicyRegistry:
        """Registry built from the built-in tables."""
        return cls.from_table(DEFAULT_ENDPOINTS, DEFAULT_EVENTS)

    def match_policy(self, normalized_path: str) -> CachePolicy | None:
        """Return the first policy whose route matches, or None if uncacheable."""
        for pattern, policy in self._compiled:
            if pattern.search(normalized_path):
                return policy
        return None

    def rules_for(self, event_name: str) -> tuple[InvalidationRule, ...] | None:
        """Return the rules of an event, or None for unknown events."""
        return self._events.get(event_name)

    def routes(self) -> tuple[CachePolicy, ...]:
        return self._policies

    def event_names(self) -> tuple[str, ...]:
        return tuple(self._events)


def load_registry(policy_file: Path | None = None) -> PolicyRegistry:
    """Load the configured policy file, or the built-in tables."""
    if policy_file is not None:
        return PolicyRegistry.from_file(policy_file)
    return PolicyRegistry.default()
