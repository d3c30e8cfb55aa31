"""Event-driven cache invalidation.

Domain write paths call ``InvalidationEngine.invalidate(event_name, context)``
after they commit. The engine looks up the event's rules, turns each rule into
a SCAN match pattern, and deletes matching keys page by page.

Example:
    engine = InvalidationEngine(registry, store)
    result = await engine.invalidate("booking-updated", {"userId": "u1"})
    # purges cache:u1:bookings:* and cache:admin:bookings:*
    if not result.ok:
        ...  # retry at the business-logic level if needed

A scan or delete failure aborts the event: remaining patterns are not
processed and ``ok`` is False, since silently under-invalidating is worse than
reporting the failure.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

import orjson

from respcache.cache.keys import CacheKeys
from respcache.cache.redis import SCAN_DONE
from respcache.errors import CacheStoreError

if TYPE_CHECKING:
    from respcache.cache.availability import AvailabilityMonitor
    from respcache.cache.policy import InvalidationRule, PolicyRegistry
    from respcache.cache.redis import CacheStore
    from respcache.observability.metrics import CacheMetrics

logger = logging.getLogger(__name__)

# SCAN COUNT hint per page
SCAN_COUNT = 100

_USER_ID_KEYS = ("user_id", "userId")


@dataclass(frozen=True)
class InvalidationContext:
    """Runtime values an event's rules may need.

    ``user_id`` scopes user-scoped rules; ``variables`` feeds path-variable
    rules (for example ``{"userId": "..."}`` for /api/admin/users/{{userId}}).
    """

    user_id: str | None = None
    variables: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def coerce(
        cls, context: InvalidationContext | Mapping[str, Any] | None
    ) -> InvalidationContext:
        """Accept a context or a plain dict such as ``{"userId": "u1"}``."""
        if context is None:
            return cls()
        if isinstance(context, InvalidationContext):
            return context

        variables = {str(k): str(v) for k, v in context.items() if v is not None}
        user_id = next((variables[k] for k in _USER_ID_KEYS if variables.get(k)), None)
        return cls(user_id=user_id, variables=variables)

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "variables": dict(self.variables)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InvalidationContext:
        return cls(user_id=data.get("user_id"), variables=dict(data.get("variables") or {}))


class InvalidationResult(NamedTuple):
    """Outcome of one invalidation event."""

    deleted: int
    ok: bool


@dataclass(frozen=True)
class PendingInvalidation:
    """An event that could not run because the store was down."""

    event_name: str
    context: InvalidationContext

    def to_bytes(self) -> bytes:
        return orjson.dumps({"event": self.event_name, "context": self.context.to_dict()})

    @classmethod
    def from_bytes(cls, data: bytes) -> PendingInvalidation:
        parsed = orjson.loads(data)
        return cls(
            event_name=parsed["event"],
            context=InvalidationContext.from_dict(parsed.get("context") or {}),
        )


class PendingInvalidations:
    """Journal of invalidations deferred during an outage.

    Kept in memory, or appended to a newline-delimited JSON file when a path
    is given so deferred events survive a restart.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._entries: list[PendingInvalidation] = []

    def add(self, entry: PendingInvalidation) -> None:
        if self.path is None:
            self._entries.append(entry)
            return
        try:
            with self.path.open("ab") as f:
                f.write(entry.to_bytes() + b"\n")
        except OSError as e:
            logger.error(f"Failed to journal invalidation {entry.event_name} to {self.path}: {e}")

    def drain(self) -> list[PendingInvalidation]:
        """Remove and return every journaled entry."""
        if self.path is None:
            entries, self._entries = self._entries, []
            return entries

        if not self.path.exists():
            return []
        try:
            lines = self.path.read_bytes().splitlines()
            self.path.unlink()
        except OSError as e:
            logger.error(f"Error reading invalidation journal {self.path}: {e}")
            return []

        entries = []
        for line in lines:
            if not line.strip():
                continue
            try:
                entries.append(PendingInvalidation.from_bytes(line))
            except (orjson.JSONDecodeError, KeyError) as e:
                logger.error(f"Dropping malformed journal entry: {e}")
        return entries

    def __len__(self) -> int:
        if self.path is None:
            return len(self._entries)
        if not self.path.exists():
            return 0
        return sum(1 for line in self.path.read_bytes().splitlines() if line.strip())


class InvalidationEngine:
    """Resolves domain events to key patterns and purges matching keys."""

    def __init__(
        self,
        registry: PolicyRegistry,
        store: CacheStore,
        *,
        scan_count: int = SCAN_COUNT,
        monitor: AvailabilityMonitor | None = None,
        pending: PendingInvalidations | None = None,
        metrics: CacheMetrics | None = None,
    ):
        self.registry = registry
        self.store = store
        self.scan_count = scan_count
        self.monitor = monitor
        self.pending = pending if pending is not None else PendingInvalidations()
        self.metrics = metrics

        if monitor is not None:
            monitor.add_recovery_handler(self.replay_pending)

    async def invalidate(
        self,
        event_name: str,
        context: InvalidationContext | Mapping[str, Any] | None = None,
    ) -> InvalidationResult:
        """Purge every cache entry affected by ``event_name``.

        Unknown events are a no-op returning ``(0, False)``.
        """
        ctx = InvalidationContext.coerce(context)
        rules = self.registry.rules_for(event_name)
        if rules is None:
            logger.debug(f"No invalidation rules configured for event: {event_name}")
            return InvalidationResult(0, False)

        if self.monitor is not None and not await self.monitor.is_available():
            self.pending.add(PendingInvalidation(event_name, ctx))
            logger.warning(f"Redis unavailable, deferred invalidation for event: {event_name}")
            return InvalidationResult(0, False)

        patterns = self.resolve_patterns(event_name, rules, ctx)
        result = await self._purge(event_name, patterns)

        if self.metrics is not None:
            self.metrics.record_invalidation(event_name, result.deleted, result.ok)
        if result.ok:
            logger.info(
                f"[CACHE INVALIDATE] {event_name}: deleted {result.deleted} entries "
                f"across {len(patterns)} patterns"
            )
        return result

    def resolve_patterns(
        self,
        event_name: str,
        rules: Sequence[InvalidationRule],
        context: InvalidationContext,
    ) -> list[str]:
        """Turn an event's rules into SCAN patterns, skipping unresolvable ones."""
        patterns = []
        for rule in rules:
            pattern = CacheKeys.invalidation_pattern(rule, context.user_id, context.variables)
            if pattern is None:
                logger.debug(
                    f"Skipping rule {rule.pattern!r} for {event_name}: "
                    f"missing context variable {rule.variable_name!r}"
                )
                continue
            patterns.append(pattern)
        return patterns

    async def invalidate_patterns(self, patterns: Sequence[str]) -> InvalidationResult:
        """Purge keys matching explicit patterns, outside any event."""
        return await self._purge("manual", list(patterns))

    async def replay_pending(self) -> None:
        """Run invalidations deferred while the store was down."""
        entries = self.pending.drain()
        if not entries:
            return

        logger.info(f"Processing {len(entries)} deferred invalidation requests")
        for entry in entries:
            rules = self.registry.rules_for(entry.event_name)
            if rules is None:
                continue
            patterns = self.resolve_patterns(entry.event_name, rules, entry.context)
            result = await self._purge(entry.event_name, patterns)
            if not result.ok:
                self.pending.add(entry)

    async def _purge(self, label: str, patterns: list[str]) -> InvalidationResult:
        """SCAN each pattern, deleting every page as it arrives."""
        deleted = 0
        for index, pattern in enumerate(patterns):
            cursor = SCAN_DONE
            try:
                while True:
                    cursor, keys = await self.store.scan(cursor, pattern, self.scan_count)
                    if keys:
                        deleted += await self.store.delete(keys)
                    if str(cursor) == SCAN_DONE:
                        break
            except CacheStoreError as e:
                abandoned = patterns[index + 1 :]
                logger.error(
                    f"Cache invalidation for {label} failed on pattern {pattern!r} "
                    f"after deleting {deleted} keys: {e}; abandoned patterns: {abandoned}"
                )
                return InvalidationResult(deleted, False)
        return InvalidationResult(deleted, True)
