"""Context-usage estimation by periodic side-channel probes.

Each live session is asked for ``/context`` through a forked continuation of
its external session, so the probe never shows up in the real transcript.
The reported percentage is advisory: a failed or unparseable probe leaves the
previous value in place.
"""

import asyncio
import logging
import re
from typing import Awaitable, Callable, Iterable, Optional, Union

from ..provider.base import (
    AgentSessionProvider,
    CancellationHandle,
    ContentEvent,
    ResultEvent,
    SessionOptions,
)
from .session import ManagerSession, Role, WorkerSession

logger = logging.getLogger(__name__)

CONTEXT_PROBE_PROMPT = "/context"

CONTEXT_WARNING = (
    "Context thins. Begin concluding your current thread. Prepare to hand off."
)
CONTEXT_CRITICAL = (
    "CONTEXT CRITICAL. Cease new work. Report your progress and remaining tasks "
    "to the Arbiter immediately."
)

# **Tokens:** 36.0k / 200.0k (18%)
_TOKENS_LINE_RE = re.compile(
    r"\*\*Tokens:\*\*\s*([0-9,.]+k?)\s*/\s*([0-9,.]+k?)\s*\((\d+(?:\.\d+)?)%\)",
    re.IGNORECASE,
)
# 36.0k / 200.0k
_TOKEN_RATIO_RE = re.compile(r"(\d[\d,.]*k?)\s*/\s*(\d[\d,.]*k)\b", re.IGNORECASE)

Session = Union[ManagerSession, WorkerSession]
ProbeOptionsFactory = Callable[[Role, str, CancellationHandle], SessionOptions]


def parse_token_count(text: str) -> float:
    """Parse ``36.0k`` or ``1,234`` into a token count."""
    text = text.strip().lower().replace(",", "")
    if text.endswith("k"):
        return float(text[:-1]) * 1000
    return float(text)


def parse_context_percent(output: str) -> Optional[float]:
    """Extract a context-usage percentage from ``/context`` output.

    Returns:
        Percentage clamped to [0, 100], or None when nothing parses
    """
    match = _TOKENS_LINE_RE.search(output)
    if match:
        return _clamp(float(match.group(3)))

    match = _TOKEN_RATIO_RE.search(output)
    if match:
        try:
            used = parse_token_count(match.group(1))
            total = parse_token_count(match.group(2))
        except ValueError:
            return None
        if total > 0:
            return _clamp(used / total * 100)
    return None


def _clamp(percent: float) -> float:
    return max(0.0, min(100.0, percent))


def context_warning(
    percent: Optional[float], warn_at: float = 70.0, critical_at: float = 85.0
) -> Optional[str]:
    """Notice to inject into a Worker whose context is running low."""
    if percent is None:
        return None
    if percent > critical_at:
        return CONTEXT_CRITICAL
    if percent > warn_at:
        return CONTEXT_WARNING
    return None


class ContextEstimator:
    """Polls live sessions for their context usage.

    Args:
        provider: Provider used for the probe requests
        build_probe_options: Builds fork options for (role, session id, cancel)
        interval: Seconds between polls
        on_update: Called after a poll changed at least one percentage
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        provider: AgentSessionProvider,
        build_probe_options: ProbeOptionsFactory,
        interval: float = 60.0,
        on_update: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._provider = provider
        self._build_probe_options = build_probe_options
        self.interval = interval
        self._on_update = on_update
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._cancel = CancellationHandle()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def probe(self, role: Role, external_id: str) -> Optional[float]:
        """Run one ``/context`` probe against a forked copy of a session.

        Returns:
            Parsed percentage, or None if the probe failed or did not parse
        """
        options = self._build_probe_options(role, external_id, self._cancel)
        chunks: list[str] = []
        stream = self._provider.start_or_resume(CONTEXT_PROBE_PROMPT, options)
        try:
            async for event in stream:
                if isinstance(event, (ContentEvent, ResultEvent)) and event.text:
                    chunks.append(event.text)
        except Exception as e:
            logger.debug(f"Context probe for {role.value} {external_id} failed: {e}")
            return None
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        percent = parse_context_percent("\n".join(chunks))
        if percent is None:
            logger.debug(
                f"Could not parse context output for {role.value} {external_id}"
            )
        return percent

    async def poll_once(self, sessions: Iterable[tuple[Role, Session]]) -> bool:
        """Probe every session that has an external id.

        Returns:
            True if any percentage changed
        """
        changed = False
        for role, session in sessions:
            if session.external_id is None:
                continue
            percent = await self.probe(role, session.external_id)
            if percent is None:
                continue
            if percent != session.context_percent:
                session.context_percent = percent
                changed = True
        if changed and self._on_update:
            self._on_update()
        return changed

    def start(self, get_sessions: Callable[[], list[tuple[Role, Session]]]) -> None:
        """Begin polling in the background."""
        if self.running:
            return
        self._cancel = CancellationHandle()
        self._task = asyncio.create_task(self._poll_loop(get_sessions))

    def stop(self) -> None:
        """Stop polling and abort any probe in flight."""
        self._cancel.cancel()
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _poll_loop(
        self, get_sessions: Callable[[], list[tuple[Role, Session]]]
    ) -> None:
        while True:
            await self._sleep(self.interval)
            await self.poll_once(get_sessions())
