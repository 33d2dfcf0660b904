"""Bounded crash-retry with exponential backoff for session turns.

Includes error recovery:
- Retry with exponential backoff (1s, 2s, 4s by default) for session crashes
- Cancellation passes straight through without being counted
- Exhaustion raises RetryExhaustedError chained to the last failure
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import RetryExhaustedError, SessionCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (error, retry number) -> None; called for every counted crash
FailureCallback = Callable[[Exception, int], None]


class CrashRetryPolicy:
    """Re-run a failing turn a fixed number of times with backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        exponential_base: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            max_retries: Retries after the first attempt (default 3)
            base_delay: Delay before the first retry in seconds (default 1.0)
            exponential_base: Backoff multiplier (default 2.0)
            sleep: Awaitable sleep, injectable for tests
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.exponential_base = exponential_base
        self._sleep = sleep

    def delay_for(self, retry: int) -> float:
        """Backoff before retry number ``retry`` (0-based)."""
        return self.base_delay * (self.exponential_base**retry)

    async def run(
        self,
        attempt: Callable[[int], Awaitable[T]],
        role: str,
        session_id: Optional[Callable[[], Optional[str]]] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> T:
        """Run ``attempt`` until it succeeds or retries are exhausted.

        Args:
            attempt: Called with the retry number (0 for the first try)
            role: Role name for logging
            session_id: Returns the current external session id, for logging
            on_failure: Called once per counted crash

        Returns:
            Whatever ``attempt`` returns

        Raises:
            SessionCancelled: The session was cancelled; never retried
            RetryExhaustedError: Every attempt failed
        """
        retries = 0
        while True:
            try:
                return await attempt(retries)
            except SessionCancelled:
                raise
            except Exception as e:
                sid = session_id() if session_id else None
                if on_failure:
                    on_failure(e, retries)
                if retries < self.max_retries:
                    delay = self.delay_for(retries)
                    logger.warning(
                        f"{role} session {sid} failed "
                        f"(retry {retries + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await self._sleep(delay)
                    retries += 1
                    continue
                logger.error(
                    f"{role} session {sid} failed after {retries} retries: {e}"
                )
                raise RetryExhaustedError(role, retries + 1, sid) from e
