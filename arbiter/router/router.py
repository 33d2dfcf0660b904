"""Session router for the Manager/Worker hierarchy.

The router owns the Manager session and at most one Worker session. It runs
a strict ping-pong: every turn's event stream is drained before the router
acts on the structured output, and the follow-up deliveries a turn produces
are processed in order from a FIFO rather than by recursion.

State machine:
- DIRECT: no Worker. Human text goes to the Manager verbatim.
- DELEGATED: a Worker exists. Human text is flushed to the Manager together
  with the Worker's queued work log, and the Manager can address the Worker.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from ..config import RouterConfig
from ..provider.base import (
    AgentSessionProvider,
    CancellationHandle,
    ContentEvent,
    InitEvent,
    LifecycleEvent,
    ResultEvent,
    SessionHooks,
    SessionOptions,
)
from ..session_store import SessionStore
from .callbacks import DebugLogEntry, DebugLogType, RouterCallbacks
from .context import ContextEstimator, context_warning
from .errors import RetryExhaustedError, SessionCancelled
from .flush import format_flush, format_timeout_flush, trigger_type_for
from .options import build_session_options
from .protocol import (
    Intent,
    ManagerOutput,
    TriggerType,
    WorkerOutput,
    parse_manager_output,
    parse_worker_output,
)
from .retry import CrashRetryPolicy
from .session import (
    HistoryEntry,
    ManagerSession,
    Role,
    RouterMode,
    WorkerSession,
)
from .watchdog import Watchdog

logger = logging.getLogger(__name__)

MANAGER_OPENING_PROMPT = "Speak, mortal."
MANAGER_RESUME_PROMPT = (
    "The session has been restored after a restart. The human has returned. "
    "Any Orchestrator you had summoned is gone. Greet the human and continue."
)
WORKER_INTRO_PROMPT = "Introduce yourself and await instructions from the Arbiter."
CONTINUATION_PROMPT = "Session resumed after an error. Continue where you left off."

HUMAN_SPEAKER = "human"
MANAGER_SPEAKER = "arbiter"

AnySession = Union[ManagerSession, WorkerSession]


@dataclass
class Delivery:
    """A message waiting to be sent to one role."""

    role: Role
    text: str
    ordinal: Optional[int] = None  # target Worker, for Role.WORKER


class SessionRouter:
    """Routes messages between the human, the Manager and the Worker.

    Args:
        provider: Agent-session provider that runs every turn
        callbacks: Presentation callbacks
        store: Session-id persistence, optional
        config: Router configuration
        clock: Monotonic clock used for activity times
        sleep: Sleep used for retry backoff
    """

    def __init__(
        self,
        provider: AgentSessionProvider,
        callbacks: Optional[RouterCallbacks] = None,
        store: Optional[SessionStore] = None,
        config: Optional[RouterConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._provider = provider
        self._callbacks = callbacks or RouterCallbacks()
        self._store = store
        self.config = config or RouterConfig()
        self._clock = clock

        self._retry = CrashRetryPolicy(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            exponential_base=self.config.retry_exponential_base,
            sleep=sleep,
        )
        self.watchdog = Watchdog(
            get_last_activity=self._worker_last_activity,
            on_timeout=self._on_worker_idle,
            interval=self.config.watchdog_interval,
            idle_timeout=self.config.watchdog_idle_timeout,
            clock=clock,
        )
        self.context = ContextEstimator(
            provider,
            self._probe_options,
            interval=self.config.context_poll_interval,
            on_update=self._emit_context_update,
        )

        self._manager = ManagerSession(last_activity_time=clock())
        self._worker: Optional[WorkerSession] = None
        self._worker_count = 0
        self._last_worker_id: Optional[str] = None
        self._mode = RouterMode.DIRECT
        self._history: list[HistoryEntry] = []
        self._locks = {Role.MANAGER: asyncio.Lock(), Role.WORKER: asyncio.Lock()}
        self._pending_spawn = False
        self._started = False
        self._stopped = False
        self._fatal_error: Optional[BaseException] = None
        self._fatal_event = asyncio.Event()
        self.crash_count = 0

        self._intent_handlers: dict[Intent, Callable[[str], list[Delivery]]] = {
            Intent.ADDRESS_HUMAN: self._on_address_human,
            Intent.ADDRESS_ORCHESTRATOR: self._on_address_orchestrator,
            Intent.SUMMON_ORCHESTRATOR: self._on_summon_orchestrator,
            Intent.RELEASE_ORCHESTRATORS: self._on_release_orchestrators,
            Intent.MUSINGS: self._on_musings,
        }
        missing = set(Intent) - set(self._intent_handlers)
        if missing:
            names = sorted(m.value for m in missing)
            raise RuntimeError(f"No handler for intents: {names}")

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def mode(self) -> RouterMode:
        return self._mode

    @property
    def manager(self) -> ManagerSession:
        return self._manager

    @property
    def worker(self) -> Optional[WorkerSession]:
        return self._worker

    @property
    def worker_count(self) -> int:
        """Ordinal of the most recently summoned Worker (0 if none yet)."""
        return self._worker_count

    @property
    def history(self) -> list[HistoryEntry]:
        return list(self._history)

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self._fatal_error

    async def start(
        self, resume: bool = False, requirements: Optional[str] = None
    ) -> None:
        """Open the Manager session and run its first turn.

        Args:
            resume: Resume the Manager from the session store if a fresh
                record exists
            requirements: Path of a requirements file to mention to the Manager

        Raises:
            RetryExhaustedError: The Manager could not be reached
        """
        if self._started:
            raise RuntimeError("Router already started")
        self._started = True

        prompt = MANAGER_OPENING_PROMPT
        if resume and self._store is not None:
            record = self._store.load()
            if record is not None and record.manager:
                self._manager.external_id = record.manager
                self._worker_count = record.worker_ordinal
                self._last_worker_id = record.worker
                prompt = MANAGER_RESUME_PROMPT
                logger.info(f"Resuming Manager session {record.manager}")
            else:
                logger.warning("No valid session to resume, starting fresh")
        if requirements and prompt == MANAGER_OPENING_PROMPT:
            prompt = (
                f"{prompt}\n\nThe human's requirements are in {requirements}. "
                "Read them before you answer."
            )

        self._debug(DebugLogType.SYSTEM, f"Router starting (resume={resume})")
        self.context.start(self._live_sessions)
        await self._deliver(Delivery(Role.MANAGER, prompt))

    async def submit_human_message(self, text: str) -> None:
        """Route a message from the human.

        Raises:
            RetryExhaustedError: The Manager could not be reached
        """
        if self._stopped:
            logger.warning("Ignoring human message after shutdown")
            return

        self._record(HUMAN_SPEAKER, text)
        if self._callbacks.on_human_message:
            self._callbacks.on_human_message(text)
        self._debug(DebugLogType.MESSAGE, text, speaker=HUMAN_SPEAKER)

        worker = self._worker
        if self._mode == RouterMode.DELEGATED and worker is not None:
            queued = worker.take_queue()
            text = format_flush(queued, text, TriggerType.HUMAN, worker.ordinal)

        await self._deliver(Delivery(Role.MANAGER, text))

    def stop(self) -> None:
        """Cancel every session and stop the timers. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Router stopping")
        self.watchdog.stop()
        self.context.stop()
        self._manager.cancel.cancel()
        if self._worker is not None:
            self._worker.cancel.cancel()

    async def wait_for_fatal_error(self) -> BaseException:
        """Block until a fatal Manager failure is recorded, then return it."""
        await self._fatal_event.wait()
        assert self._fatal_error is not None
        return self._fatal_error

    def continuity_state(self) -> dict[str, Any]:
        """Session ids needed to pick the run up again later."""
        worker_id = self._worker.external_id if self._worker else None
        return {
            "arbiter": self._manager.external_id,
            "lastOrchestrator": worker_id or self._last_worker_id,
            "orchestratorNumber": self._worker_count,
        }

    # ------------------------------------------------------------------
    # Delivery loop
    # ------------------------------------------------------------------

    async def _deliver(self, first: Delivery) -> None:
        pending = deque([first])
        while pending:
            if self._stopped:
                return
            delivery = pending.popleft()
            try:
                if delivery.role == Role.MANAGER:
                    follow_ups = await self._manager_turn(delivery.text)
                else:
                    follow_ups = await self._worker_turn(delivery)
            except SessionCancelled as e:
                logger.debug(f"Turn cancelled: {e}")
                continue
            except RetryExhaustedError as e:
                # Worker exhaustion is handled in _worker_turn
                self._fail(e)
                raise
            pending.extend(follow_ups)

    async def _manager_turn(self, text: str) -> list[Delivery]:
        outputs = await self._run_turn(Role.MANAGER, self._manager, text)

        follow_ups: list[Delivery] = []
        for output in outputs:
            if isinstance(output, ManagerOutput):
                handler = self._intent_handlers[output.intent]
                follow_ups.extend(handler(output.message))

        # Spawning waits until the Manager's output has been fully handled
        if self._pending_spawn:
            self._pending_spawn = False
            follow_ups.append(self._start_worker())
        return follow_ups

    async def _worker_turn(self, delivery: Delivery) -> list[Delivery]:
        worker = self._worker
        if worker is None or worker.ordinal != delivery.ordinal:
            logger.warning(
                f"Dropping message for Orchestrator {delivery.ordinal}: "
                "no longer active"
            )
            return []

        try:
            outputs = await self._run_turn(Role.WORKER, worker, delivery.text)
        except RetryExhaustedError as e:
            logger.error(f"{worker.label} is unrecoverable, releasing it: {e}")
            self._debug(
                DebugLogType.SYSTEM,
                f"{worker.label} failed after {e.attempts} attempts and was released",
                agent=worker.label,
                session_id=worker.external_id,
            )
            if self._worker is worker:
                self._teardown_worker()
            return []

        follow_ups: list[Delivery] = []
        for output in outputs:
            if not isinstance(output, WorkerOutput) or self._worker is not worker:
                continue

            self._record(worker.label, output.message)
            if self._callbacks.on_worker_message:
                self._callbacks.on_worker_message(worker.ordinal, output.message)
            self._debug(
                DebugLogType.MESSAGE,
                output.message,
                speaker=worker.label,
                session_id=worker.external_id,
                details={"expects_response": output.expects_response},
            )

            if not output.expects_response:
                worker.enqueue(output.message)
                continue

            queued = worker.take_queue()
            text = format_flush(
                queued, output.message, trigger_type_for(output.message), worker.ordinal
            )
            follow_ups.append(Delivery(Role.MANAGER, text))
        return follow_ups

    # ------------------------------------------------------------------
    # Intent handlers
    # ------------------------------------------------------------------

    def _on_address_human(self, message: str) -> list[Delivery]:
        self._display_manager_message(message)
        return []

    def _on_address_orchestrator(self, message: str) -> list[Delivery]:
        worker = self._worker
        if worker is None:
            logger.error("Manager addressed an Orchestrator but none is active")
            self._debug(
                DebugLogType.SYSTEM,
                "address_orchestrator with no active Orchestrator; message dropped",
                details={"message": message},
            )
            return []
        self._record(MANAGER_SPEAKER, message)
        self._debug(
            DebugLogType.MESSAGE,
            message,
            speaker=MANAGER_SPEAKER,
            details={"to": worker.label},
        )
        return [Delivery(Role.WORKER, message, worker.ordinal)]

    def _on_summon_orchestrator(self, message: str) -> list[Delivery]:
        self._display_manager_message(message)
        self._pending_spawn = True
        return []

    def _on_release_orchestrators(self, message: str) -> list[Delivery]:
        self._display_manager_message(message)
        self._teardown_worker()
        return []

    def _on_musings(self, message: str) -> list[Delivery]:
        self._display_manager_message(message)
        return []

    def _display_manager_message(self, message: str) -> None:
        if not message:
            return
        self._record(MANAGER_SPEAKER, message)
        if self._callbacks.on_manager_message:
            self._callbacks.on_manager_message(message)
        self._debug(
            DebugLogType.MESSAGE,
            message,
            speaker=MANAGER_SPEAKER,
            session_id=self._manager.external_id,
        )

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def _start_worker(self) -> Delivery:
        self._teardown_worker()

        self._worker_count += 1
        worker = WorkerSession(
            ordinal=self._worker_count, last_activity_time=self._clock()
        )
        self._worker = worker
        self._mode = RouterMode.DELEGATED
        self.watchdog.start()

        logger.info(f"{worker.label} summoned")
        if self._callbacks.on_worker_spawned:
            self._callbacks.on_worker_spawned(worker.ordinal)
        self._debug(DebugLogType.SYSTEM, f"{worker.label} summoned", agent=worker.label)
        return Delivery(Role.WORKER, WORKER_INTRO_PROMPT, worker.ordinal)

    def _teardown_worker(self) -> None:
        self.watchdog.stop()
        worker = self._worker
        if worker is None:
            return

        worker.cancel.cancel()
        self._worker = None
        self._mode = RouterMode.DIRECT
        if worker.external_id:
            self._last_worker_id = worker.external_id

        logger.info(f"{worker.label} released")
        if self._callbacks.on_worker_released:
            self._callbacks.on_worker_released()
        self._debug(DebugLogType.SYSTEM, f"{worker.label} released", agent=worker.label)
        self._emit_context_update()

    def _worker_last_activity(self) -> Optional[float]:
        return self._worker.last_activity_time if self._worker else None

    async def _on_worker_idle(self, idle_seconds: float) -> None:
        worker = self._worker
        if worker is None:
            return

        queued = worker.take_queue()
        notice = format_timeout_flush(queued, worker.ordinal, int(idle_seconds // 60))
        self._debug(
            DebugLogType.SYSTEM,
            f"{worker.label} timed out after {idle_seconds:.0f}s idle",
            agent=worker.label,
            session_id=worker.external_id,
        )
        self._teardown_worker()

        try:
            await self._deliver(Delivery(Role.MANAGER, notice))
        except RetryExhaustedError:
            # Recorded by _deliver; the front end picks it up via wait_for_fatal_error
            return

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def _run_turn(
        self, role: Role, session: AnySession, prompt: str
    ) -> list[BaseModel]:
        async def attempt(retry: int) -> list[BaseModel]:
            if retry and session.external_id is not None:
                return await self._consume(role, session, CONTINUATION_PROMPT)
            return await self._consume(role, session, prompt)

        def on_failure(error: Exception, retry: int) -> None:
            session.crash_count += 1
            self.crash_count += 1
            self._debug(
                DebugLogType.SDK,
                f"{role.value} session error: {error}",
                agent=role.value,
                session_id=session.external_id,
                details={"retry": retry, "error_type": type(error).__name__},
            )

        async with self._locks[role]:
            return await self._retry.run(
                attempt,
                role.value,
                session_id=lambda: session.external_id,
                on_failure=on_failure,
            )

    async def _consume(
        self, role: Role, session: AnySession, prompt: str
    ) -> list[BaseModel]:
        """Drain one request's event stream.

        Returns:
            Every validated structured output, in stream order
        """
        if session.cancel.cancelled:
            raise SessionCancelled(f"{role.value} session already cancelled")

        options = self._session_options(role, session)
        stream = self._provider.start_or_resume(prompt, options)
        outputs: list[BaseModel] = []
        try:
            while True:
                event = await self._next_event(stream, session.cancel, role)
                if event is None:
                    break
                session.touch(self._clock())
                output = self._handle_event(role, session, event)
                if output is not None:
                    outputs.append(output)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return outputs

    async def _next_event(
        self, stream: Any, cancel: CancellationHandle, role: Role
    ) -> Optional[LifecycleEvent]:
        """Await the next event, or raise SessionCancelled if ``cancel`` fires first."""
        next_event = asyncio.ensure_future(stream.__anext__())
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait(
                {next_event, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancelled.cancel()
            if not next_event.done():
                next_event.cancel()
                await asyncio.gather(next_event, return_exceptions=True)

        if next_event.cancelled():
            raise SessionCancelled(f"{role.value} session cancelled")
        try:
            return next_event.result()
        except StopAsyncIteration:
            return None

    def _handle_event(
        self, role: Role, session: AnySession, event: LifecycleEvent
    ) -> Optional[BaseModel]:
        if isinstance(event, InitEvent):
            self._on_session_init(role, session, event.session_id)
            return None

        if isinstance(event, ContentEvent):
            if event.tool_names:
                self._debug(
                    DebugLogType.SDK,
                    f"[Tool] {', '.join(event.tool_names)}",
                    agent=role.value,
                    session_id=session.external_id,
                )
            return None

        if isinstance(event, ResultEvent):
            if not event.is_success:
                logger.warning(
                    f"{role.value} session {session.external_id} "
                    f"ended with {event.subtype}"
                )
                self._debug(
                    DebugLogType.SDK,
                    f"Result {event.subtype}: {event.text}",
                    agent=role.value,
                    session_id=session.external_id,
                )
                return None
            if event.structured_output is None:
                logger.warning(f"{role.value} turn produced no structured output")
                return None
            if role == Role.MANAGER:
                parsed = parse_manager_output(event.structured_output)
            else:
                parsed = parse_worker_output(event.structured_output)
            if parsed is None:
                self._debug(
                    DebugLogType.SDK,
                    f"Dropped invalid {role.value} output",
                    agent=role.value,
                    session_id=session.external_id,
                    details={"output": event.structured_output},
                )
            return parsed

        logger.debug(f"Ignoring unknown event {event!r}")
        return None

    def _on_session_init(
        self, role: Role, session: AnySession, session_id: str
    ) -> None:
        if session.external_id != session_id:
            logger.info(f"{role.value} session id: {session_id}")
            session.external_id = session_id
        self._debug(
            DebugLogType.SDK,
            "Session initialized",
            agent=role.value,
            session_id=session_id,
        )
        if self._store is not None:
            ordinal = session.ordinal if isinstance(session, WorkerSession) else None
            self._store.save_session_id(role.value, session_id, ordinal)

    # ------------------------------------------------------------------
    # Options and hooks
    # ------------------------------------------------------------------

    def _session_options(self, role: Role, session: AnySession) -> SessionOptions:
        if isinstance(session, WorkerSession):
            hooks = SessionHooks(on_post_tool_use=self._worker_tool_hook(session))
        else:
            hooks = SessionHooks(on_post_tool_use=self._manager_tool_hook)
        return build_session_options(
            role,
            session.cancel,
            self.config,
            resume_id=session.external_id,
            hooks=hooks,
        )

    def _manager_tool_hook(
        self, session_id: Optional[str], tool_name: str
    ) -> Optional[str]:
        self._manager.touch(self._clock())
        self._debug(
            DebugLogType.TOOL,
            f"[Tool] {tool_name}",
            speaker=MANAGER_SPEAKER,
            session_id=session_id,
        )
        return None

    def _worker_tool_hook(self, worker: WorkerSession):
        def hook(session_id: Optional[str], tool_name: str) -> Optional[str]:
            if self._worker is not worker:
                return None
            worker.touch(self._clock())
            worker.tool_call_count += 1
            if self._callbacks.on_tool_use:
                self._callbacks.on_tool_use(tool_name, worker.tool_call_count)
            self._debug(
                DebugLogType.TOOL,
                f"[Tool] {tool_name}",
                speaker=worker.label,
                session_id=session_id,
                details={"tool": tool_name, "count": worker.tool_call_count},
            )
            return context_warning(
                worker.context_percent,
                self.config.context_warn_percent,
                self.config.context_critical_percent,
            )

        return hook

    def _probe_options(
        self, role: Role, external_id: str, cancel: CancellationHandle
    ) -> SessionOptions:
        return build_session_options(
            role,
            cancel,
            self.config,
            resume_id=external_id,
            structured=False,
            fork=True,
        )

    def _live_sessions(self) -> list[tuple[Role, AnySession]]:
        sessions: list[tuple[Role, AnySession]] = [(Role.MANAGER, self._manager)]
        if self._worker is not None:
            sessions.append((Role.WORKER, self._worker))
        return sessions

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _emit_context_update(self) -> None:
        if self._callbacks.on_context_update:
            worker_pct = self._worker.context_percent if self._worker else None
            self._callbacks.on_context_update(self._manager.context_percent, worker_pct)

    def _record(self, speaker: str, text: str) -> None:
        self._history.append(HistoryEntry(speaker=speaker, text=text))

    def _fail(self, error: BaseException) -> None:
        if self._fatal_error is None:
            logger.critical(f"Manager session is unrecoverable: {error}")
            self._fatal_error = error
            self._fatal_event.set()

    def _debug(
        self,
        entry_type: DebugLogType,
        text: str,
        speaker: Optional[str] = None,
        agent: Optional[str] = None,
        session_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        if self._callbacks.on_debug_log:
            self._callbacks.on_debug_log(
                DebugLogEntry(
                    type=entry_type,
                    text=text,
                    speaker=speaker,
                    agent=agent,
                    session_id=session_id,
                    details=details or {},
                )
            )
