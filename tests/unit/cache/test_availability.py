"""Tests for the availability gate."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from respcache.cache.availability import AvailabilityMonitor, AvailabilityState
from tests.fakes import FakeClock


def _monitor(probe: AsyncMock, clock: FakeClock) -> AvailabilityMonitor:
    return AvailabilityMonitor(probe, clock=clock, interval_ms=60000)


class TestThrottling:
    """Probes happen at most once per interval."""

    @pytest.mark.asyncio
    async def test_first_call_probes(self, clock: FakeClock) -> None:
        probe = AsyncMock(return_value=True)
        monitor = _monitor(probe, clock)

        assert await monitor.is_available() is True
        assert monitor.state is AvailabilityState.UP
        probe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_two_calls_within_interval_probe_once(self, clock: FakeClock) -> None:
        probe = AsyncMock(return_value=True)
        monitor = _monitor(probe, clock)

        await monitor.is_available()
        clock.advance(59000)
        await monitor.is_available()

        assert probe.await_count == 1

    @pytest.mark.asyncio
    async def test_reprobes_after_interval(self, clock: FakeClock) -> None:
        probe = AsyncMock(return_value=True)
        monitor = _monitor(probe, clock)

        await monitor.is_available()
        clock.advance(60001)
        await monitor.is_available()

        assert probe.await_count == 2

    @pytest.mark.asyncio
    async def test_down_result_is_cached(self, clock: FakeClock) -> None:
        probe = AsyncMock(return_value=False)
        monitor = _monitor(probe, clock)

        assert await monitor.is_available() is False
        clock.advance(1000)
        assert await monitor.is_available() is False
        assert probe.await_count == 1

    @pytest.mark.asyncio
    async def test_probe_exception_counts_as_down(self, clock: FakeClock) -> None:
        probe = AsyncMock(side_effect=ConnectionError("refused"))
        monitor = _monitor(probe, clock)

        assert await monitor.is_available() is False
        assert monitor.state is AvailabilityState.DOWN


class TestTransitions:
    """State changes are logged once and trigger recovery handlers."""

    @pytest.mark.asyncio
    async def test_recovery_logged_once(
        self, clock: FakeClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        probe = AsyncMock(side_effect=[False, True, True])
        monitor = _monitor(probe, clock)

        with caplog.at_level(logging.INFO, logger="respcache.cache.availability"):
            await monitor.is_available()
            clock.advance(60001)
            await monitor.is_available()
            clock.advance(60001)
            await monitor.is_available()

        messages = [r.getMessage() for r in caplog.records]
        assert messages.count("Redis is now available for caching") == 1
        assert messages.count("Redis is unavailable, operating without caching") == 1

    @pytest.mark.asyncio
    async def test_recovery_handlers_run_on_down_to_up(self, clock: FakeClock) -> None:
        probe = AsyncMock(side_effect=[False, True])
        handler = AsyncMock()
        monitor = _monitor(probe, clock)
        monitor.add_recovery_handler(handler)

        await monitor.is_available()
        handler.assert_not_awaited()
        clock.advance(60001)
        await monitor.is_available()
        assert monitor.recovery_task is not None
        await monitor.recovery_task

        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recovery_handlers_not_run_on_first_up(self, clock: FakeClock) -> None:
        handler = AsyncMock()
        monitor = _monitor(AsyncMock(return_value=True), clock)
        monitor.add_recovery_handler(handler)

        await monitor.is_available()

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_gate(self, clock: FakeClock) -> None:
        probe = AsyncMock(side_effect=[False, True])
        monitor = _monitor(probe, clock)
        monitor.add_recovery_handler(AsyncMock(side_effect=RuntimeError("boom")))

        await monitor.is_available()
        clock.advance(60001)

        assert await monitor.is_available() is True
        assert monitor.recovery_task is not None
        await monitor.recovery_task
        assert monitor.recovery_task.exception() is None


class TestMarkUnavailable:
    """Command failures close the gate until the next probe."""

    @pytest.mark.asyncio
    async def test_mark_unavailable_closes_gate(self, clock: FakeClock) -> None:
        probe = AsyncMock(return_value=True)
        monitor = _monitor(probe, clock)
        await monitor.is_available()

        clock.advance(30000)
        monitor.mark_unavailable("GET failed")

        assert await monitor.is_available() is False
        assert probe.await_count == 1
        assert monitor.last_checked_ms == clock.now_ms

    @pytest.mark.asyncio
    async def test_next_probe_reopens_gate(self, clock: FakeClock) -> None:
        probe = AsyncMock(return_value=True)
        monitor = _monitor(probe, clock)
        await monitor.is_available()
        monitor.mark_unavailable("SET failed")

        clock.advance(60001)

        assert await monitor.is_available() is True
        assert probe.await_count == 2

    @pytest.mark.asyncio
    async def test_mark_unavailable_notifies_listeners(self, clock: FakeClock) -> None:
        states: list[AvailabilityState] = []
        monitor = _monitor(AsyncMock(return_value=True), clock)
        monitor.add_state_listener(states.append)
        await monitor.is_available()

        monitor.mark_unavailable("GET failed")
        monitor.mark_unavailable("SET failed")

        assert states == [AvailabilityState.UP, AvailabilityState.DOWN]


class TestRecoveryInBackground:
    """Recovery work never delays the request that sees the store return."""

    @pytest.mark.asyncio
    async def test_is_available_returns_before_handlers_finish(self, clock: FakeClock) -> None:
        release = asyncio.Event()
        finished = asyncio.Event()

        async def slow_replay() -> None:
            await release.wait()
            finished.set()

        monitor = _monitor(AsyncMock(side_effect=[False, True]), clock)
        monitor.add_recovery_handler(slow_replay)
        await monitor.is_available()
        clock.advance(60001)

        assert await asyncio.wait_for(monitor.is_available(), timeout=1) is True
        assert not finished.is_set()

        release.set()
        assert monitor.recovery_task is not None
        await monitor.recovery_task
        assert finished.is_set()

    @pytest.mark.asyncio
    async def test_stop_cancels_running_recovery(self, clock: FakeClock) -> None:
        monitor = _monitor(AsyncMock(side_effect=[False, True]), clock)
        monitor.add_recovery_handler(asyncio.Event().wait)
        await monitor.is_available()
        clock.advance(60001)
        await monitor.is_available()
        task = monitor.recovery_task

        await monitor.stop()

        assert task is not None and task.cancelled()
        assert monitor.recovery_task is None

    @pytest.mark.asyncio
    async def test_state_listener_sees_probe_results(self, clock: FakeClock) -> None:
        states: list[AvailabilityState] = []
        monitor = _monitor(AsyncMock(side_effect=[False, True]), clock)
        monitor.add_state_listener(states.append)

        await monitor.is_available()
        clock.advance(60001)
        await monitor.is_available()
        await monitor.stop()

        assert states == [AvailabilityState.DOWN, AvailabilityState.UP]
