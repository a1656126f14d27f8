"""Exceptions raised by the keepalive subsystem.

Ping failures are never raised; they are carried inside ``PingResult``.
"""

from __future__ import annotations


class KeepaliveError(Exception):
    """Base class for keepalive errors."""


class ValidationError(KeepaliveError):
    """Raised when registry input is malformed. No state is changed."""


class NotFoundError(KeepaliveError):
    """Raised when an operation references an unknown project id."""

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Keepalive project not found: {project_id}")


class CycleInProgressError(KeepaliveError):
    """Raised when a non-waiting trigger arrives while a cycle is running."""

    def __init__(self, started_at: str | None = None) -> None:
        self.started_at = started_at
        super().__init__(f"A ping cycle is already running (started {started_at})")
