"""Contract between the router and an agent-session provider.

A provider takes a prompt plus SessionOptions and returns an async stream of
lifecycle events. Each call is a fresh request scoped by the resume id; the
router never holds a live connection to a session between turns.
"""

import asyncio
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Optional,
    Protocol,
    Union,
)

RESULT_SUCCESS = "success"
RESULT_ERROR = "error"


@dataclass
class InitEvent:
    """First event of a stream; carries the provider's session id."""

    session_id: str


@dataclass
class ContentEvent:
    """Intermediate assistant/user content. Only used for display and probes."""

    text: str = ""
    tool_names: list[str] = field(default_factory=list)


@dataclass
class ResultEvent:
    """Terminal event of a stream."""

    subtype: str = RESULT_SUCCESS
    structured_output: Optional[dict[str, Any]] = None
    text: str = ""

    @property
    def is_success(self) -> bool:
        return self.subtype == RESULT_SUCCESS


LifecycleEvent = Union[InitEvent, ContentEvent, ResultEvent]


@dataclass(frozen=True)
class ToolDecision:
    """Outcome of a tool-approval check."""

    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "ToolDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "ToolDecision":
        return cls(allowed=False, reason=reason)


ToolApprovalPolicy = Callable[[str, dict[str, Any]], ToolDecision]

# (session_id, tool_name) -> optional text injected back into the session
PostToolUseHook = Callable[[Optional[str], str], Optional[str]]


@dataclass
class SessionHooks:
    """Lifecycle hooks a provider calls while a turn is running."""

    on_post_tool_use: Optional[PostToolUseHook] = None


class CancellationHandle:
    """Idempotent cancellation flag for one session.

    Setting it interrupts whatever turn is consuming that session's stream.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class SessionOptions:
    """Everything a provider needs to start or resume one turn."""

    system_prompt: str
    permitted_tools: frozenset[str]
    tool_approval: ToolApprovalPolicy
    cancellation: CancellationHandle
    resume_id: Optional[str] = None
    hooks: SessionHooks = field(default_factory=SessionHooks)
    output_schema: Optional[dict[str, Any]] = None
    fork_session: bool = False
    model: Optional[str] = None
    cwd: Optional[str] = None


class AgentSessionProvider(Protocol):
    """Runs agent sessions on behalf of the router."""

    def start_or_resume(
        self, prompt: str, options: SessionOptions
    ) -> AsyncIterator[LifecycleEvent]:
        """Start a fresh session, or resume ``options.resume_id``.

        Args:
            prompt: User message for this turn
            options: Per-turn session options

        Returns:
            Async iterator of lifecycle events ending in a ResultEvent
        """
        ...
