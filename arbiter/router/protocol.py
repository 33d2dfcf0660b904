"""Structured output contracts for the Manager and the Worker.

The Manager declares an ``intent`` with every turn; the Worker declares
whether its message ``expects_response``. Both are enforced twice: as a JSON
schema handed to the provider, and as a pydantic model validated by the
router when the result arrives.
"""

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    """Routing decision the Manager declares after each of its turns."""

    ADDRESS_HUMAN = "address_human"
    ADDRESS_ORCHESTRATOR = "address_orchestrator"
    SUMMON_ORCHESTRATOR = "summon_orchestrator"
    RELEASE_ORCHESTRATORS = "release_orchestrators"
    MUSINGS = "musings"


class TriggerType(str, Enum):
    """Why a flush of the Worker's queue is being delivered to the Manager."""

    INPUT = "input"
    HANDOFF = "handoff"
    HUMAN = "human"
    TIMEOUT = "timeout"


class ManagerOutput(BaseModel):
    """Structured output of one Manager turn."""

    # intent arrives as a plain string, so only the scalar fields are strict
    model_config = ConfigDict(extra="forbid")

    intent: Intent = Field(description="Where this message goes next")
    message: str = Field(strict=True, description="Message text")


class WorkerOutput(BaseModel):
    """Structured output of one Worker turn."""

    model_config = ConfigDict(strict=True, extra="forbid")

    expects_response: bool = Field(
        description="True if the Manager must reply before work continues"
    )
    message: str = Field(description="Message text")


MANAGER_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "intent": {
            "type": "string",
            "enum": [intent.value for intent in Intent],
            "description": (
                "address_human: speak to the human. "
                "address_orchestrator: instruct the active Orchestrator. "
                "summon_orchestrator: summon a new Orchestrator. "
                "release_orchestrators: dismiss the active Orchestrator. "
                "musings: think aloud, nobody is addressed."
            ),
        },
        "message": {"type": "string"},
    },
    "required": ["intent", "message"],
    "additionalProperties": False,
}

WORKER_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "expects_response": {
            "type": "boolean",
            "description": (
                "true when the Arbiter must answer (questions, blockers, "
                "handoffs); false for status updates that can be queued."
            ),
        },
        "message": {"type": "string"},
    },
    "required": ["expects_response", "message"],
    "additionalProperties": False,
}


def parse_manager_output(data: Optional[dict[str, Any]]) -> Optional[ManagerOutput]:
    """Validate Manager structured output.

    Returns:
        The parsed output, or None if missing or invalid
    """
    if data is None:
        return None
    try:
        return ManagerOutput.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Dropping invalid Manager output {data!r}: {e}")
        return None


def parse_worker_output(data: Optional[dict[str, Any]]) -> Optional[WorkerOutput]:
    """Validate Worker structured output.

    Returns:
        The parsed output, or None if missing or invalid
    """
    if data is None:
        return None
    try:
        return WorkerOutput.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Dropping invalid Worker output {data!r}: {e}")
        return None
