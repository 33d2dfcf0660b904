"""Test doubles: a scripted in-memory provider, a fake clock and callbacks."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from arbiter.provider.base import (
    InitEvent,
    ResultEvent,
    SessionOptions,
)
from arbiter.router import RouterCallbacks
from arbiter.router.protocol import MANAGER_OUTPUT_SCHEMA, WORKER_OUTPUT_SCHEMA

# Script marker: block until the consuming task cancels the stream.
HANG = object()

MANAGER_ID = "mgr-session"
WORKER_ID = "wrk-session"


def manager_says(intent: str, message: str = "", session_id: str = MANAGER_ID):
    """One Manager turn ending in the given structured output."""
    return [
        InitEvent(session_id=session_id),
        ResultEvent(structured_output={"intent": intent, "message": message}),
    ]


def worker_result(expects_response: bool, message: str) -> ResultEvent:
    return ResultEvent(
        structured_output={"expects_response": expects_response, "message": message}
    )


def worker_says(
    *outputs: tuple[bool, str], session_id: str = WORKER_ID
) -> list[Any]:
    """One Worker turn producing each (expects_response, message) in order."""
    return [InitEvent(session_id=session_id)] + [
        worker_result(expects, message) for expects, message in outputs
    ]


@dataclass
class Call:
    kind: str  # "manager", "worker" or "probe"
    prompt: str
    options: SessionOptions


class FakeProvider:
    """Provider that replays scripted turns.

    Each turn is a list of items: lifecycle events are yielded, exceptions are
    raised, callables are called with the SessionOptions (to drive hooks), and
    HANG blocks until cancelled. Turns are chosen by the options' schema.
    """

    def __init__(self):
        self.turns: dict[str, list[list[Any]]] = {
            "manager": [],
            "worker": [],
            "probe": [],
        }
        self.calls: list[Call] = []

    def script(self, kind: str, *turns: list[Any]) -> None:
        self.turns[kind].extend(turns)

    def calls_for(self, kind: str) -> list[Call]:
        return [call for call in self.calls if call.kind == kind]

    def prompts_for(self, kind: str) -> list[str]:
        return [call.prompt for call in self.calls_for(kind)]

    def start_or_resume(self, prompt: str, options: SessionOptions):
        if options.output_schema is MANAGER_OUTPUT_SCHEMA:
            kind = "manager"
        elif options.output_schema is WORKER_OUTPUT_SCHEMA:
            kind = "worker"
        else:
            kind = "probe"
        self.calls.append(Call(kind, prompt, options))
        pending = self.turns[kind]
        script = pending.pop(0) if pending else [InitEvent(session_id=f"{kind}-idle")]
        return self._stream(script, options)

    async def _stream(self, script: list[Any], options: SessionOptions):
        for item in script:
            if item is HANG:
                await asyncio.Event().wait()
            elif isinstance(item, BaseException):
                raise item
            elif callable(item):
                item(options)
            else:
                yield item


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class RecordingCallbacks:
    """Collects every router callback invocation."""

    human: list[str] = field(default_factory=list)
    manager: list[str] = field(default_factory=list)
    worker: list[tuple[int, str]] = field(default_factory=list)
    context: list[tuple[float, Optional[float]]] = field(default_factory=list)
    tools: list[tuple[str, int]] = field(default_factory=list)
    spawned: list[int] = field(default_factory=list)
    released: int = 0
    debug: list[Any] = field(default_factory=list)

    def _release(self) -> None:
        self.released += 1

    def build(self) -> RouterCallbacks:
        return RouterCallbacks(
            on_human_message=self.human.append,
            on_manager_message=self.manager.append,
            on_worker_message=lambda n, text: self.worker.append((n, text)),
            on_context_update=lambda m, w: self.context.append((m, w)),
            on_tool_use=lambda name, count: self.tools.append((name, count)),
            on_worker_spawned=self.spawned.append,
            on_worker_released=self._release,
            on_debug_log=self.debug.append,
        )


def tool_use(
    tool_name: str, session_id: str = WORKER_ID
) -> Callable[[SessionOptions], Any]:
    """Script item that fires the post-tool-use hook."""

    def fire(options: SessionOptions):
        hook = options.hooks.on_post_tool_use
        if hook is not None:
            fire.notices.append(hook(session_id, tool_name))

    fire.notices = []
    return fire
