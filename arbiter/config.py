"""Runtime configuration for the session router."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_SESSION_FILE = Path(".claude") / ".arbiter-session.json"


@dataclass
class RouterConfig:
    """Tunables for retry, polling, watchdog and persistence."""

    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_exponential_base: float = 2.0

    context_poll_interval: float = 60.0
    context_warn_percent: float = 70.0
    context_critical_percent: float = 85.0

    watchdog_interval: float = 30.0
    watchdog_idle_timeout: float = 600.0

    session_file: Path = DEFAULT_SESSION_FILE
    session_max_age_hours: float = 24.0

    model: Optional[str] = None
    cwd: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "RouterConfig":
        """Create config from environment variables."""
        cwd = os.environ.get("ARBITER_CWD")
        return cls(
            max_retries=int(os.environ.get("ARBITER_MAX_RETRIES", "3")),
            retry_base_delay=float(os.environ.get("ARBITER_RETRY_BASE_DELAY", "1.0")),
            context_poll_interval=float(
                os.environ.get("ARBITER_CONTEXT_POLL_INTERVAL", "60")
            ),
            context_warn_percent=float(
                os.environ.get("ARBITER_CONTEXT_WARN_PERCENT", "70")
            ),
            context_critical_percent=float(
                os.environ.get("ARBITER_CONTEXT_CRITICAL_PERCENT", "85")
            ),
            watchdog_interval=float(os.environ.get("ARBITER_WATCHDOG_INTERVAL", "30")),
            watchdog_idle_timeout=float(
                os.environ.get("ARBITER_WATCHDOG_IDLE_TIMEOUT", "600")
            ),
            session_file=Path(
                os.environ.get("ARBITER_SESSION_FILE", str(DEFAULT_SESSION_FILE))
            ),
            session_max_age_hours=float(
                os.environ.get("ARBITER_SESSION_MAX_AGE_HOURS", "24")
            ),
            model=os.environ.get("ARBITER_MODEL") or None,
            cwd=Path(cwd) if cwd else None,
        )
