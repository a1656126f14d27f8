"""Keepalive subsystem — project registry, pinger, cycle runner, scheduler."""

from .cycle import CycleRunner
from .errors import CycleInProgressError, KeepaliveError, NotFoundError, ValidationError
from .models import CycleReport, KeepaliveProject, PingResult, SchedulerStatus
from .ping import Pinger
from .registry import ProjectRegistry
from .scheduler import KeepaliveScheduler
from .status import build_status
