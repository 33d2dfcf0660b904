"""Agent-session provider backed by the Claude Agent SDK.

Each call to ``start_or_resume`` is one ``query()`` against the Claude Code
CLI. SDK messages are mapped onto the router's lifecycle events:

- ``SystemMessage(subtype="init")`` -> InitEvent
- ``AssistantMessage`` / ``UserMessage`` -> ContentEvent
- ``ResultMessage`` -> ResultEvent (any non-success subtype becomes "error")
"""

import logging
from typing import Any, AsyncIterator, Optional

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    HookMatcher,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolUseBlock,
    UserMessage,
    query,
)

from .base import (
    RESULT_ERROR,
    RESULT_SUCCESS,
    ContentEvent,
    InitEvent,
    LifecycleEvent,
    ResultEvent,
    SessionOptions,
)

logger = logging.getLogger(__name__)


class ClaudeAgentProvider:
    """Runs Manager and Worker turns through ``claude_agent_sdk.query``.

    The tool policy is enforced by a ``PreToolUse`` hook, which sees the tool
    input and so can gate Task on its sub-agent type. ``allowed_tools`` only
    pre-approves the permitted set.

    ``options.cancellation`` is not read here. The caller aborts a turn by
    racing each event against the handle, or by cancelling the task that
    iterates the stream.
    """

    def __init__(self, permission_mode: str = "default"):
        self.permission_mode = permission_mode

    async def start_or_resume(
        self, prompt: str, options: SessionOptions
    ) -> AsyncIterator[LifecycleEvent]:
        sdk_options = self._build_options(options)

        # Sent as a single-message input stream so hooks can answer over the
        # control channel.
        async def _prompt_stream():
            yield {
                "type": "user",
                "message": {"role": "user", "content": prompt},
            }

        async for message in query(prompt=_prompt_stream(), options=sdk_options):
            event = self._map_message(message)
            if event is not None:
                yield event

    def _build_options(self, options: SessionOptions) -> ClaudeAgentOptions:
        policy = options.tool_approval

        async def pre_tool_use(input_data: dict[str, Any], tool_use_id, context):
            tool_name = input_data.get("tool_name", "")
            decision = policy(tool_name, input_data.get("tool_input") or {})
            if decision.allowed:
                return {}
            logger.info(f"Denied {tool_name}: {decision.reason}")
            return {
                "hookSpecificOutput": {
                    "hookEventName": "PreToolUse",
                    "permissionDecision": "deny",
                    "permissionDecisionReason": decision.reason,
                }
            }

        # The only enforcement point for the tool policy
        hooks: dict[str, list[HookMatcher]] = {
            "PreToolUse": [HookMatcher(hooks=[pre_tool_use])],
        }

        on_post_tool_use = options.hooks.on_post_tool_use
        if on_post_tool_use is not None:

            async def post_tool_use(input_data: dict[str, Any], tool_use_id, context):
                notice = on_post_tool_use(
                    input_data.get("session_id"), input_data.get("tool_name", "")
                )
                if not notice:
                    return {}
                return {
                    "hookSpecificOutput": {
                        "hookEventName": "PostToolUse",
                        "additionalContext": notice,
                    }
                }

            hooks["PostToolUse"] = [HookMatcher(hooks=[post_tool_use])]

        kwargs: dict[str, Any] = {
            "system_prompt": options.system_prompt,
            "allowed_tools": sorted(options.permitted_tools),
            "permission_mode": self.permission_mode,
            "hooks": hooks,
        }
        if options.resume_id:
            kwargs["resume"] = options.resume_id
            kwargs["fork_session"] = options.fork_session
        if options.output_schema is not None:
            kwargs["output_format"] = {
                "type": "json_schema",
                "schema": options.output_schema,
            }
        if options.model:
            kwargs["model"] = options.model
        if options.cwd:
            kwargs["cwd"] = options.cwd
        return ClaudeAgentOptions(**kwargs)

    def _map_message(self, message: Any) -> Optional[LifecycleEvent]:
        if isinstance(message, SystemMessage):
            if message.subtype == "init":
                session_id = (message.data or {}).get("session_id")
                if session_id:
                    return InitEvent(session_id=session_id)
            return None

        if isinstance(message, AssistantMessage):
            texts = []
            tool_names = []
            for block in message.content:
                if isinstance(block, TextBlock):
                    texts.append(block.text)
                elif isinstance(block, ToolUseBlock):
                    tool_names.append(block.name)
            return ContentEvent(text="".join(texts), tool_names=tool_names)

        if isinstance(message, UserMessage):
            # Slash-command output (e.g. /context) arrives as plain user content
            if isinstance(message.content, str):
                return ContentEvent(text=message.content)
            texts = [
                block.text for block in message.content if isinstance(block, TextBlock)
            ]
            return ContentEvent(text="".join(texts))

        if isinstance(message, ResultMessage):
            failed = message.subtype != "success" or getattr(
                message, "is_error", False
            )
            subtype = RESULT_ERROR if failed else RESULT_SUCCESS
            if subtype == RESULT_ERROR:
                logger.warning(
                    f"Session {message.session_id} result: {message.subtype}"
                )
            return ResultEvent(
                subtype=subtype,
                structured_output=getattr(message, "structured_output", None),
                text=message.result or "",
            )

        return None
