"""Cycle runner — pings every active project once, concurrently."""

from __future__ import annotations

import asyncio
import logging

from .errors import NotFoundError
from .models import KeepaliveProject, PingResult
from .ping import NETWORK_ERROR, Pinger
from .registry import ProjectRegistry

logger = logging.getLogger(__name__)


class CycleRunner:
    """Fan-out/fan-in over the registry's active projects.

    Each ping is its own task bounded by the pinger's timeout, so a hung
    target delays nothing but itself. Results are written back only after
    every ping has resolved and are returned in snapshot order.
    """

    def __init__(self, registry: ProjectRegistry, pinger: Pinger) -> None:
        self.registry = registry
        self.pinger = pinger

    async def run(self) -> list[PingResult]:
        projects = self.registry.list_active()
        if not projects:
            logger.info("No active keepalive projects — nothing to ping")
            return []

        logger.info("Pinging %d project(s)...", len(projects))
        outcomes = await asyncio.gather(
            *(self.pinger.ping(p) for p in projects),
            return_exceptions=True,
        )

        results: list[PingResult] = []
        for project, outcome in zip(projects, outcomes):
            result = self._as_result(project, outcome)
            logger.info(
                "%s: %s%s [%dms]",
                project.name,
                "ok" if result.success else "error",
                f" ({result.error})" if result.error else "",
                result.latency_ms,
            )
            try:
                self.registry.record_ping(result)
            except NotFoundError:
                logger.info("Project %s deleted mid-cycle — dropping its result", project.id)
                continue
            results.append(result)

        return results

    @staticmethod
    def _as_result(project: KeepaliveProject, outcome: PingResult | BaseException) -> PingResult:
        if isinstance(outcome, PingResult):
            return outcome
        if not isinstance(outcome, Exception):
            raise outcome
        logger.error("Ping of %s raised %s: %s", project.name, type(outcome).__name__, outcome)
        return PingResult(
            project_id=project.id,
            name=project.name,
            success=False,
            latency_ms=0.0,
            error=NETWORK_ERROR,
        )
