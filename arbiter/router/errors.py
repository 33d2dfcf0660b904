"""Errors raised by the session router."""

from typing import Optional


class SessionCancelled(Exception):
    """A turn was interrupted because its session was deliberately cancelled.

    Never retried and never counted as a crash.
    """


class RetryExhaustedError(Exception):
    """Raised when a role's turn keeps failing after all retries."""

    def __init__(self, role: str, attempts: int, session_id: Optional[str] = None):
        self.role = role
        self.attempts = attempts
        self.session_id = session_id
        super().__init__(
            f"{role} session {session_id or '<new>'} failed after {attempts} attempts"
        )
