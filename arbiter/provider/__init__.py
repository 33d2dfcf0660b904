"""Agent-session providers."""

from .base import (
    AgentSessionProvider,
    CancellationHandle,
    ContentEvent,
    InitEvent,
    LifecycleEvent,
    ResultEvent,
    SessionHooks,
    SessionOptions,
    ToolDecision,
)

__all__ = [
    "AgentSessionProvider",
    "CancellationHandle",
    "ContentEvent",
    "InitEvent",
    "LifecycleEvent",
    "ResultEvent",
    "SessionHooks",
    "SessionOptions",
    "ToolDecision",
]
