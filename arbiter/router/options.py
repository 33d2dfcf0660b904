"""Per-turn session options for each role.

Every turn gets a freshly built SessionOptions; nothing is reused between
requests except the external session id passed as ``resume_id``.
"""

from typing import Any, Optional

from ..config import RouterConfig
from ..personas import manager_agent, worker_agent
from ..provider.base import (
    CancellationHandle,
    SessionHooks,
    SessionOptions,
    ToolDecision,
)
from .protocol import MANAGER_OUTPUT_SCHEMA, WORKER_OUTPUT_SCHEMA
from .session import Role

# Task is granted to the Manager for the Explore sub-agent only.
MANAGER_TOOLS = frozenset(["Read", "Glob", "Grep", "WebSearch", "WebFetch", "Task"])
WORKER_TOOLS = frozenset(
    ["Read", "Write", "Edit", "Bash", "Glob", "Grep", "Task", "WebSearch", "WebFetch"]
)
EXPLORE_SUBAGENT = "Explore"


def manager_tool_policy(tool_name: str, tool_input: dict[str, Any]) -> ToolDecision:
    """Read-only exploration for the Manager."""
    if tool_name not in MANAGER_TOOLS:
        return ToolDecision.deny(
            f"The Arbiter does not use {tool_name}. "
            "Summon an Orchestrator for hands-on work."
        )
    if tool_name == "Task":
        subagent = tool_input.get("subagent_type")
        if subagent != EXPLORE_SUBAGENT:
            return ToolDecision.deny(
                f"The Arbiter may only dispatch the {EXPLORE_SUBAGENT} "
                f"sub-agent, not {subagent!r}."
            )
    return ToolDecision.allow()


def worker_tool_policy(tool_name: str, tool_input: dict[str, Any]) -> ToolDecision:
    """Full execution tool set for the Worker."""
    if tool_name not in WORKER_TOOLS:
        return ToolDecision.deny(f"{tool_name} is not available to Orchestrators.")
    return ToolDecision.allow()


def build_session_options(
    role: Role,
    cancellation: CancellationHandle,
    config: RouterConfig,
    resume_id: Optional[str] = None,
    hooks: Optional[SessionHooks] = None,
    structured: bool = True,
    fork: bool = False,
) -> SessionOptions:
    """Build SessionOptions for one request.

    Args:
        role: Which role the request is for
        cancellation: Handle that aborts the request
        config: Router configuration (model, working directory)
        resume_id: External session id to resume, if any
        hooks: Lifecycle hooks for the request
        structured: Attach the role's output schema
        fork: Fork ``resume_id`` instead of continuing it

    Returns:
        Fresh SessionOptions
    """
    if role == Role.MANAGER:
        system_prompt = manager_agent.PERSONA
        permitted_tools = MANAGER_TOOLS
        policy = manager_tool_policy
        schema = MANAGER_OUTPUT_SCHEMA
    else:
        system_prompt = worker_agent.PERSONA
        permitted_tools = WORKER_TOOLS
        policy = worker_tool_policy
        schema = WORKER_OUTPUT_SCHEMA

    if fork and not resume_id:
        raise ValueError("Cannot fork a session without a resume id")

    return SessionOptions(
        system_prompt=system_prompt,
        permitted_tools=permitted_tools,
        tool_approval=policy,
        cancellation=cancellation,
        resume_id=resume_id,
        hooks=hooks or SessionHooks(),
        output_schema=schema if structured else None,
        fork_session=fork,
        model=config.model,
        cwd=str(config.cwd) if config.cwd else None,
    )
