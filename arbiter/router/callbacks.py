"""Callback surface between the router and whatever presents it."""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


class DebugLogType(str, Enum):
    """Kinds of debug-log entries."""

    MESSAGE = "message"
    TOOL = "tool"
    SYSTEM = "system"
    SDK = "sdk"


@dataclass
class DebugLogEntry:
    """One structured debug-log record."""

    type: DebugLogType
    text: str
    speaker: Optional[str] = None
    agent: Optional[str] = None
    session_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


@dataclass
class RouterCallbacks:
    """Callbacks for router events."""

    on_human_message: Optional[Callable[[str], None]] = None
    on_manager_message: Optional[Callable[[str], None]] = None
    on_worker_message: Optional[Callable[[int, str], None]] = None
    on_context_update: Optional[Callable[[float, Optional[float]], None]] = None
    on_tool_use: Optional[Callable[[str, int], None]] = None
    on_worker_spawned: Optional[Callable[[int], None]] = None
    on_worker_released: Optional[Callable[[], None]] = None
    on_debug_log: Optional[Callable[[DebugLogEntry], None]] = None
