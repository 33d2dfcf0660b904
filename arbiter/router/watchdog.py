"""Idle-timeout detection for the Worker session."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Watchdog:
    """Fires ``on_timeout`` once a Worker has been idle too long.

    Only runs while a Worker exists; the router starts it on every spawn and
    stops it on every teardown.

    Args:
        get_last_activity: Returns the Worker's last activity time, or None
            when there is no Worker
        on_timeout: Awaited with the idle time in seconds when the limit is hit
        interval: Seconds between checks (default 30)
        idle_timeout: Idle seconds that count as stalled (default 600)
        clock: Monotonic clock, injectable for tests
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        get_last_activity: Callable[[], Optional[float]],
        on_timeout: Callable[[float], Awaitable[None]],
        interval: float = 30.0,
        idle_timeout: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._get_last_activity = get_last_activity
        self._on_timeout = on_timeout
        self.interval = interval
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start (or restart) the periodic check."""
        self.stop()
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Stop the periodic check.

        Safe to call from inside ``on_timeout``: the running task is detached
        but not cancelled, so the handler finishes its work.
        """
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def check(self) -> bool:
        """Run one idle check.

        Returns:
            True if the timeout fired
        """
        last_activity = self._get_last_activity()
        if last_activity is None:
            return False
        idle = self._clock() - last_activity
        if idle < self.idle_timeout:
            return False
        logger.warning(f"Worker idle for {idle:.0f}s, reclaiming it")
        await self._on_timeout(idle)
        return True

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval)
            if await self.check():
                return
