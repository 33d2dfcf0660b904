"""Formatting of Worker queue flushes delivered to the Manager.

The Manager's instructions rely on these exact headers to tell a work log
it can skip apart from a message that needs an answer. Keep the «» labels,
the bullet marker and the blank line after the work log stable.
"""

import re
from typing import Sequence

from .protocol import TriggerType

BULLET = "•"

_HANDOFF_RE = re.compile(r"^HANDOFF\b", re.IGNORECASE)

_ROMAN_NUMERALS = [
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
]


def to_roman(number: int) -> str:
    """Render a positive integer (1..3999) as a Roman numeral."""
    if not 1 <= number <= 3999:
        raise ValueError(f"Cannot render {number} as a Roman numeral")
    parts = []
    for value, numeral in _ROMAN_NUMERALS:
        count, number = divmod(number, value)
        parts.append(numeral * count)
    return "".join(parts)


def worker_label(ordinal: int) -> str:
    """Human-facing label for a Worker, e.g. ``Orchestrator III``."""
    return f"Orchestrator {to_roman(ordinal)}"


def trigger_type_for(message: str) -> TriggerType:
    """Classify a Worker message that expects a response."""
    if _HANDOFF_RE.match(message.strip()):
        return TriggerType.HANDOFF
    return TriggerType.INPUT


def _work_log(queue: Sequence[str], label: str) -> list[str]:
    if not queue:
        return []
    lines = [f"«{label} - Work Log (no response needed)»"]
    lines.extend(f"{BULLET} {item}" for item in queue)
    lines.append("")
    return lines


def format_flush(
    queue: Sequence[str],
    message: str,
    trigger_type: TriggerType,
    ordinal: int,
) -> str:
    """Compose the text delivered to the Manager for a flush.

    Args:
        queue: Queued "no response needed" messages, oldest first
        message: The triggering message
        trigger_type: INPUT, HANDOFF or HUMAN
        ordinal: Ordinal of the Worker whose queue is flushed

    Returns:
        The composite message
    """
    if trigger_type == TriggerType.TIMEOUT:
        raise ValueError("Timeout flushes are built with format_timeout_flush")

    label = worker_label(ordinal)
    lines = _work_log(queue, label)

    if trigger_type == TriggerType.HUMAN:
        lines.append("«Human Interjection»")
    elif trigger_type == TriggerType.HANDOFF:
        lines.append(f"«{label} - Handoff»")
    else:
        lines.append(f"«{label} - Awaiting Input»")
    lines.append(message)

    return "\n".join(lines)


def format_timeout_flush(queue: Sequence[str], ordinal: int, idle_minutes: int) -> str:
    """Compose the notice sent to the Manager when the watchdog reclaims a Worker."""
    label = worker_label(ordinal)
    lines = _work_log(queue, label)
    lines.append(f"«{label} - TIMEOUT»")
    lines.append(f"No activity for {idle_minutes} minutes. Session terminated.")
    lines.append("The Orchestrator may have encountered an error or become stuck.")
    return "\n".join(lines)
