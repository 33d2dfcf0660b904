"""Session routing between the human, the Manager and the Worker."""

from .callbacks import DebugLogEntry, DebugLogType, RouterCallbacks
from .errors import RetryExhaustedError, SessionCancelled
from .flush import format_flush, format_timeout_flush, to_roman, worker_label
from .protocol import Intent, ManagerOutput, TriggerType, WorkerOutput
from .router import SessionRouter
from .session import HistoryEntry, ManagerSession, Role, RouterMode, WorkerSession

__all__ = [
    "DebugLogEntry",
    "DebugLogType",
    "HistoryEntry",
    "Intent",
    "ManagerOutput",
    "ManagerSession",
    "RetryExhaustedError",
    "Role",
    "RouterCallbacks",
    "RouterMode",
    "SessionCancelled",
    "SessionRouter",
    "TriggerType",
    "WorkerOutput",
    "WorkerSession",
    "format_flush",
    "format_timeout_flush",
    "to_roman",
    "worker_label",
]
