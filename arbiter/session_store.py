"""Best-effort persistence of external session ids for crash recovery.

The file holds the last known Manager and Worker session ids so a restarted
process can resume the Manager's conversation. Entries older than
``max_age_hours`` are ignored. Every I/O failure is logged and swallowed:
losing this file only costs continuity, never correctness.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class PersistedSessions:
    """Last known session ids, keyed by role."""

    manager: Optional[str] = None
    worker: Optional[str] = None
    worker_ordinal: int = 0
    saved_at: Optional[str] = None  # ISO 8601

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersistedSessions":
        return cls(
            manager=data.get("manager"),
            worker=data.get("worker"),
            worker_ordinal=int(data.get("worker_ordinal") or 0),
            saved_at=data.get("saved_at"),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """JSON file holding the last known session id per role.

    Args:
        path: Location of the JSON file
        max_age_hours: Saved ids older than this are treated as absent
        now: Clock returning an aware datetime, injectable for tests
    """

    def __init__(
        self,
        path: Path,
        max_age_hours: float = 24.0,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path = Path(path)
        self.max_age = timedelta(hours=max_age_hours)
        self._now = now
        self._current = PersistedSessions()

    def load(self) -> Optional[PersistedSessions]:
        """Read saved ids.

        Returns:
            The saved record, or None if missing, unreadable or stale
        """
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            record = PersistedSessions.from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

        if not record.saved_at:
            return None
        try:
            saved_at = datetime.fromisoformat(record.saved_at)
        except ValueError:
            logger.warning(
                f"Ignoring session file with bad timestamp: {record.saved_at}"
            )
            return None
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=timezone.utc)
        if self._now() - saved_at > self.max_age:
            logger.info(f"Session file {self.path} is stale, starting fresh")
            return None

        self._current = record
        return record

    def save_session_id(
        self, role: str, session_id: str, ordinal: Optional[int] = None
    ) -> None:
        """Record ``session_id`` as the latest for ``role`` and write the file."""
        if role == "manager":
            self._current.manager = session_id
        elif role == "worker":
            self._current.worker = session_id
            if ordinal is not None:
                self._current.worker_ordinal = ordinal
        else:
            raise ValueError(f"Unknown role: {role}")
        self._current.saved_at = self._now().isoformat()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._current.to_dict(), indent=2) + "\n")
        except OSError as e:
            logger.warning(f"Could not save session file {self.path}: {e}")

    def clear(self) -> None:
        """Forget everything and remove the file."""
        self._current = PersistedSessions()
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove session file {self.path}: {e}")
