"""Backing-store availability gate.

The monitor caches the result of a health probe and re-probes at most once per
interval, so a Redis outage costs one failed probe per interval rather than
one per request. State changes are logged once, not on every request, and
reported to state listeners. Recovery handlers run in a background task.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum

logger = logging.getLogger(__name__)

# Minimum time between two health probes
CHECK_INTERVAL_MS = 60000

Probe = Callable[[], Awaitable[bool]]
Clock = Callable[[], float]
RecoveryHandler = Callable[[], Awaitable[None]]
StateListener = Callable[["AvailabilityState"], None]


class AvailabilityState(str, Enum):
    """Last known state of the backing store."""

    UNKNOWN = "unknown"
    UP = "up"
    DOWN = "down"


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class AvailabilityMonitor:
    """Throttled health-probe gate for the backing store.

    Args:
        probe: Async health check, True when the store is usable.
        clock: Millisecond clock, injectable for tests.
        interval_ms: Minimum time between probes.
    """

    def __init__(
        self,
        probe: Probe,
        clock: Clock = monotonic_ms,
        interval_ms: int = CHECK_INTERVAL_MS,
    ):
        self._probe = probe
        self._clock = clock
        self.interval_ms = interval_ms
        self._state = AvailabilityState.UNKNOWN
        self._last_checked_ms = 0.0
        self._recovery_handlers: list[RecoveryHandler] = []
        self._state_listeners: list[StateListener] = []
        self._recovery_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> AvailabilityState:
        return self._state

    @property
    def last_checked_ms(self) -> float:
        return self._last_checked_ms

    def add_recovery_handler(self, handler: RecoveryHandler) -> None:
        """Register a callback run when the store comes back after an outage."""
        self._recovery_handlers.append(handler)

    def add_state_listener(self, listener: StateListener) -> None:
        """Register a callback run with the new state on every state change."""
        self._state_listeners.append(listener)

    @property
    def recovery_task(self) -> asyncio.Task[None] | None:
        """The running or last finished recovery run, if any."""
        return self._recovery_task

    async def is_available(self) -> bool:
        """Return whether the store is usable, probing only when due.

        Recovery handlers run in a background task, so the caller that observes
        the store coming back is not held up by them.
        """
        now = self._clock()
        due = now - self._last_checked_ms > self.interval_ms
        if self._state is AvailabilityState.UNKNOWN or due:
            self._last_checked_ms = now
            available = await self._run_probe()
            self._transition(AvailabilityState.UP if available else AvailabilityState.DOWN)

        return self._state is AvailabilityState.UP

    def mark_unavailable(self, reason: str) -> None:
        """Force the gate closed until the next scheduled probe.

        Used when a store command fails between probes.
        """
        self._last_checked_ms = self._clock()
        if self._state is not AvailabilityState.DOWN:
            logger.warning(f"Redis is unavailable, operating without caching: {reason}")
            self._set_state(AvailabilityState.DOWN)

    async def stop(self) -> None:
        """Cancel a recovery run still in progress."""
        task, self._recovery_task = self._recovery_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_probe(self) -> bool:
        try:
            return bool(await self._probe())
        except Exception as e:
            logger.debug(f"Redis health probe raised: {e}")
            return False

    def _set_state(self, new_state: AvailabilityState) -> None:
        self._state = new_state
        for listener in self._state_listeners:
            try:
                listener(new_state)
            except Exception as e:
                logger.error(f"Cache state listener failed: {e}")

    def _transition(self, new_state: AvailabilityState) -> None:
        previous = self._state
        if previous is new_state:
            return
        self._set_state(new_state)

        if new_state is AvailabilityState.UP:
            logger.info("Redis is now available for caching")
        else:
            logger.warning("Redis is unavailable, operating without caching")

        if previous is AvailabilityState.DOWN and new_state is AvailabilityState.UP:
            self._start_recovery()

    def _start_recovery(self) -> None:
        if not self._recovery_handlers:
            return
        if self._recovery_task is not None and not self._recovery_task.done():
            logger.debug("Cache recovery already running")
            return
        self._recovery_task = asyncio.create_task(self._run_recovery())
        self._recovery_task.add_done_callback(_log_recovery_failure)

    async def _run_recovery(self) -> None:
        for handler in list(self._recovery_handlers):
            try:
                await handler()
            except Exception as e:
                logger.error(f"Cache recovery handler failed: {e}")


def _log_recovery_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Cache recovery task failed: {exc}")
