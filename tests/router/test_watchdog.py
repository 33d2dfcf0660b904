"""Tests for Worker idle-timeout detection."""

from unittest.mock import AsyncMock

import pytest

from arbiter.router.watchdog import Watchdog
from tests.helpers import FakeClock


class TestWatchdogCheck:
    @pytest.mark.asyncio
    async def test_no_worker_never_fires(self):
        on_timeout = AsyncMock()
        watchdog = Watchdog(lambda: None, on_timeout, clock=FakeClock())

        assert await watchdog.check() is False
        on_timeout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recent_activity_does_not_fire(self):
        clock = FakeClock()
        on_timeout = AsyncMock()
        watchdog = Watchdog(lambda: 1000.0, on_timeout, clock=clock)

        clock.advance(599)
        assert await watchdog.check() is False
        on_timeout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fires_at_idle_limit(self):
        clock = FakeClock()
        on_timeout = AsyncMock()
        watchdog = Watchdog(lambda: 1000.0, on_timeout, clock=clock)

        clock.advance(660)
        assert await watchdog.check() is True
        on_timeout.assert_awaited_once_with(660.0)

    @pytest.mark.asyncio
    async def test_custom_idle_timeout(self):
        clock = FakeClock()
        on_timeout = AsyncMock()
        watchdog = Watchdog(lambda: 1000.0, on_timeout, idle_timeout=5, clock=clock)

        clock.advance(5)
        assert await watchdog.check() is True


class TestWatchdogLoop:
    @pytest.mark.asyncio
    async def test_loop_stops_after_firing(self):
        clock = FakeClock()
        sleeps = []
        fired = []

        async def sleep(delay):
            sleeps.append(delay)
            clock.advance(delay)

        async def on_timeout(idle):
            fired.append(idle)

        watchdog = Watchdog(
            lambda: 1000.0,
            on_timeout,
            interval=30,
            idle_timeout=90,
            clock=clock,
            sleep=sleep,
        )

        await watchdog._run()

        assert sleeps == [30, 30, 30]
        assert fired == [90.0]

    @pytest.mark.asyncio
    async def test_stop_from_handler_does_not_cancel_itself(self):
        clock = FakeClock()
        handled = []

        async def sleep(delay):
            clock.advance(delay)

        async def on_timeout(idle):
            watchdog.stop()
            handled.append(idle)

        watchdog = Watchdog(
            lambda: 1000.0,
            on_timeout,
            interval=600,
            clock=clock,
            sleep=sleep,
        )
        watchdog.start()
        task = watchdog._task

        await task

        assert handled == [600.0]
        assert not task.cancelled()
        assert not watchdog.running

    @pytest.mark.asyncio
    async def test_restart_replaces_task(self):
        watchdog = Watchdog(lambda: None, AsyncMock(), interval=3600)
        watchdog.start()
        first = watchdog._task
        watchdog.start()

        assert watchdog._task is not first
        assert watchdog.running

        watchdog.stop()
        assert not watchdog.running
