"""
Command-line front end for the Arbiter.

Renders the conversation on a rich console, reads human input on a
background thread, and hands every message to the SessionRouter.
"""

import asyncio
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from . import __version__
from .config import RouterConfig
from .provider.claude import ClaudeAgentProvider
from .router import (
    DebugLogEntry,
    RetryExhaustedError,
    RouterCallbacks,
    SessionRouter,
    worker_label,
)
from .session_store import SessionStore

logger = logging.getLogger(__name__)

console = Console()

app = cyclopts.App(
    name="arbiter",
    help="Delegate work too large for one session to a Manager and its Orchestrators",
    version=__version__,
)

QUIT_COMMANDS = {"/quit", "/exit"}


class ConsolePresenter:
    """Renders router events on a rich console."""

    def __init__(self, console: Console, logbook: Optional[Path] = None):
        """
        Args:
            console: Console to render on
            logbook: Optional JSON-lines file receiving every debug-log entry
        """
        self.console = console
        self.logbook = logbook

    def callbacks(self) -> RouterCallbacks:
        return RouterCallbacks(
            on_human_message=self.on_human_message,
            on_manager_message=self.on_manager_message,
            on_worker_message=self.on_worker_message,
            on_context_update=self.on_context_update,
            on_tool_use=self.on_tool_use,
            on_worker_spawned=self.on_worker_spawned,
            on_worker_released=self.on_worker_released,
            on_debug_log=self.on_debug_log,
        )

    def on_human_message(self, text: str) -> None:
        logger.debug(f"Human: {text}")

    def on_manager_message(self, text: str) -> None:
        self.console.print(
            Panel(text, title="The Arbiter", title_align="left", border_style="magenta")
        )

    def on_worker_message(self, ordinal: int, text: str) -> None:
        self.console.print(
            Panel(
                text,
                title=worker_label(ordinal),
                title_align="left",
                border_style="cyan",
            )
        )

    def on_context_update(
        self, manager_pct: float, worker_pct: Optional[float]
    ) -> None:
        status = f"Arbiter {manager_pct:.0f}%"
        if worker_pct is not None:
            status += f" | Orchestrator {worker_pct:.0f}%"
        self.console.print(f"[dim]Context: {status}[/dim]")

    def on_tool_use(self, name: str, count: int) -> None:
        self.console.print(f"[dim]  {name} ({count})[/dim]")

    def on_worker_spawned(self, ordinal: int) -> None:
        self.console.print(f"[yellow]{worker_label(ordinal)} is summoned.[/yellow]")

    def on_worker_released(self) -> None:
        self.console.print("[yellow]The Orchestrator is released.[/yellow]")

    def on_debug_log(self, entry: DebugLogEntry) -> None:
        who = entry.speaker or entry.agent or ""
        logger.debug(f"[{entry.type.value}] {who} {entry.text}")
        if self.logbook is None:
            return
        try:
            with open(self.logbook, "a") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as e:
            logger.warning(f"Could not write logbook {self.logbook}: {e}")
            self.logbook = None


class InputReader:
    """Reads console input on a daemon thread and queues it for the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, prompt: str = "You"):
        self._loop = loop
        self._prompt = prompt
        self.queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._listen_loop, daemon=True)
        self._thread.start()

    def _listen_loop(self) -> None:
        while True:
            try:
                text = Prompt.ask(f"[bold green]{self._prompt}[/bold green]")
            except (EOFError, KeyboardInterrupt):
                self._loop.call_soon_threadsafe(self.queue.put_nowait, None)
                return
            self._loop.call_soon_threadsafe(self.queue.put_nowait, text)


async def _guard(coro) -> None:
    """Await a router call; fatal errors are picked up via wait_for_fatal_error."""
    try:
        await coro
    except RetryExhaustedError:
        pass


async def run_session(
    config: RouterConfig,
    requirements: Optional[Path],
    resume: bool,
    logbook: Optional[Path],
) -> int:
    """Run one interactive session until the human quits or the Manager fails.

    Returns:
        Process exit code
    """
    presenter = ConsolePresenter(console, logbook)
    store = SessionStore(config.session_file, config.session_max_age_hours)
    router = SessionRouter(
        ClaudeAgentProvider(), presenter.callbacks(), store=store, config=config
    )

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    try:
        loop.add_signal_handler(signal.SIGTERM, stop_requested.set)
        handles_sigterm = True
    except NotImplementedError:
        handles_sigterm = False

    background: set[asyncio.Task] = set()

    def spawn(coro) -> None:
        task = asyncio.create_task(_guard(coro))
        background.add(task)
        task.add_done_callback(background.discard)

    async def read_input() -> None:
        reader = InputReader(loop)
        reader.start()
        while True:
            text = await reader.queue.get()
            if text is None or text.strip() in QUIT_COMMANDS:
                return
            if text.strip():
                spawn(router.submit_human_message(text.strip()))

    spawn(
        router.start(
            resume=resume, requirements=str(requirements) if requirements else None
        )
    )
    waiters = [
        asyncio.create_task(read_input()),
        asyncio.create_task(router.wait_for_fatal_error()),
        asyncio.create_task(stop_requested.wait()),
    ]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        router.stop()
        for task in [*waiters, *background]:
            task.cancel()
        if handles_sigterm:
            loop.remove_signal_handler(signal.SIGTERM)
        sys.stderr.write(json.dumps(router.continuity_state()) + "\n")

    if router.fatal_error is not None:
        console.print(
            "[red]The Arbiter has fallen silent. The session cannot go on.[/red]"
        )
        return 1
    return 0


@app.default
def run(
    requirements: Annotated[
        Optional[Path],
        cyclopts.Parameter(help="Markdown file describing what you want built"),
    ] = None,
    *,
    resume: Annotated[
        bool,
        cyclopts.Parameter(help="Resume the saved session (if less than a day old)"),
    ] = False,
    debug_log: Annotated[
        Optional[Path],
        cyclopts.Parameter(help="Append debug-log entries to this JSONL file"),
    ] = None,
    model: Annotated[Optional[str], cyclopts.Parameter(help="Model override")] = None,
    verbose: Annotated[bool, cyclopts.Parameter(help="Enable verbose logging")] = False,
):
    """
    Start the Arbiter.

    Example:
        arbiter ./REQUIREMENTS.md
        arbiter --resume
    """
    log_level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if requirements is not None and not requirements.exists():
        console.print(f"[red]Requirements file not found: {requirements}[/red]")
        sys.exit(2)

    config = RouterConfig.from_env()
    if model:
        config.model = model

    try:
        exit_code = asyncio.run(run_session(config, requirements, resume, debug_log))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


def main():
    load_dotenv()
    app()
