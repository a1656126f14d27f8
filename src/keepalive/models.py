"""Data models for keepalive targets, ping outcomes and scheduler status."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def iso_or_none(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class KeepaliveProject:
    """A registered database project that must be kept awake."""

    name: str
    connection_url: str
    credential: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_active: bool = True
    created_at: str = field(default_factory=utc_now)
    updated_at: str = ""
    last_ping_at: str | None = None
    last_ping_success: bool | None = None
    last_ping_error: str | None = None

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at

    def to_dict(self, include_credential: bool = False) -> dict[str, Any]:
        """Serialize for the API. The credential is omitted unless asked for."""
        d = asdict(self)
        if not include_credential:
            d.pop("credential")
        return d

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "KeepaliveProject":
        success = row.get("last_ping_success")
        return cls(
            id=row["id"],
            name=row["name"],
            connection_url=row["connection_url"],
            credential=row["credential"],
            is_active=bool(row.get("is_active", 1)),
            created_at=row["created_at"],
            updated_at=row.get("updated_at") or row["created_at"],
            last_ping_at=row.get("last_ping_at"),
            last_ping_success=None if success is None else bool(success),
            last_ping_error=row.get("last_ping_error"),
        )


@dataclass
class PingResult:
    """Outcome of a single ping. ``error`` is set iff ``success`` is false."""

    project_id: str
    success: bool
    latency_ms: float
    name: str = ""
    error: str | None = None
    status_code: int | None = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CycleReport:
    """What a caller of ``run_cycle`` gets back: timing plus per-project results."""

    trigger: str
    started_at: str
    completed_at: str | None = None
    duration_ms: float = 0.0
    results: list[PingResult] = field(default_factory=list)
    joined_in_flight: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
            "joined_in_flight": self.joined_in_flight,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class SchedulerStatus:
    """Point-in-time snapshot of the scheduler and every project's last ping."""

    is_running: bool
    scheduler_started: bool
    interval_hours: float
    started_at: str | None = None
    last_cycle_started_at: str | None = None
    last_cycle_completed_at: str | None = None
    last_cycle_error: str | None = None
    next_scheduled_at: str | None = None
    project_count: int = 0
    projects: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
