"""Status reporter — a read-only snapshot for monitoring."""

from __future__ import annotations

from datetime import timedelta

from .models import SchedulerStatus, iso_or_none
from .registry import ProjectRegistry
from .scheduler import KeepaliveScheduler


def build_status(scheduler: KeepaliveScheduler, registry: ProjectRegistry) -> SchedulerStatus:
    """Combine scheduler state with whatever the registry currently holds.

    Never waits on an in-flight cycle.
    """
    interval = timedelta(hours=scheduler.interval_hours)
    anchor = scheduler.last_cycle_completed_at or scheduler.started_at
    next_at = anchor + interval if anchor and scheduler.is_started else None

    projects = registry.list()
    return SchedulerStatus(
        is_running=scheduler.is_running,
        scheduler_started=scheduler.is_started,
        interval_hours=scheduler.interval_hours,
        started_at=iso_or_none(scheduler.started_at),
        last_cycle_started_at=iso_or_none(scheduler.last_cycle_started_at),
        last_cycle_completed_at=iso_or_none(scheduler.last_cycle_completed_at),
        last_cycle_error=scheduler.last_cycle_error,
        next_scheduled_at=iso_or_none(next_at),
        project_count=sum(1 for p in projects if p.is_active),
        projects=[
            {
                "id": p.id,
                "name": p.name,
                "is_active": p.is_active,
                "last_ping_at": p.last_ping_at,
                "last_ping_success": p.last_ping_success,
                "last_ping_error": p.last_ping_error,
            }
            for p in projects
        ],
    )
