"""Session handles and router state records."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..provider.base import CancellationHandle
from .flush import worker_label


class RouterMode(str, Enum):
    """Whether a Worker currently exists."""

    DIRECT = "direct"
    DELEGATED = "delegated"


class Role(str, Enum):
    MANAGER = "manager"
    WORKER = "worker"


@dataclass
class ManagerSession:
    """The long-lived Manager session. One per process."""

    external_id: Optional[str] = None
    cancel: CancellationHandle = field(default_factory=CancellationHandle)
    last_activity_time: float = 0.0
    context_percent: float = 0.0
    crash_count: int = 0

    def touch(self, now: float) -> None:
        self.last_activity_time = now


@dataclass
class WorkerSession:
    """A numbered Worker session. At most one is live at a time."""

    ordinal: int
    external_id: Optional[str] = None
    cancel: CancellationHandle = field(default_factory=CancellationHandle)
    tool_call_count: int = 0
    queue: list[str] = field(default_factory=list)
    last_activity_time: float = 0.0
    context_percent: Optional[float] = None
    crash_count: int = 0

    @property
    def label(self) -> str:
        return worker_label(self.ordinal)

    def touch(self, now: float) -> None:
        self.last_activity_time = now

    def enqueue(self, message: str) -> None:
        """Buffer a message that needs no response."""
        self.queue.append(message)

    def take_queue(self) -> list[str]:
        """Detach and return the queued messages, leaving the queue empty.

        The swap happens without an await so nothing can be appended between
        reading the queue and clearing it.
        """
        taken, self.queue = self.queue, []
        return taken


@dataclass
class HistoryEntry:
    """One line of the conversation as the human saw it."""

    speaker: str
    text: str
    timestamp: float = field(default_factory=time.time)
