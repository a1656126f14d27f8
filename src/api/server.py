"""FastAPI server hosting the keepalive scheduler."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.keepalive_routes import cron_router, keepalive_router
from src.config import settings
from src.keepalive import CycleRunner, KeepaliveScheduler, Pinger, ProjectRegistry

logger = logging.getLogger(__name__)


def build_scheduler(registry: ProjectRegistry) -> KeepaliveScheduler:
    """Wire pinger → cycle runner → scheduler from settings."""
    pinger = Pinger(timeout=settings.keepalive_ping_timeout_seconds)
    runner = CycleRunner(registry, pinger)
    return KeepaliveScheduler(runner, interval_hours=settings.keepalive_interval_hours)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Composition root: one registry and one scheduler per process."""
    registry = ProjectRegistry(settings.keepalive_db_path or None)
    app.state.keepalive_registry = registry

    if settings.keepalive_seed_file:
        try:
            registry.seed_from_yaml(settings.keepalive_seed_file)
        except Exception:
            logger.exception("Failed to seed keepalive projects from %s", settings.keepalive_seed_file)

    scheduler = build_scheduler(registry)
    app.state.keepalive_scheduler = scheduler

    if settings.keepalive_autostart:
        await scheduler.start()
    else:
        logger.info("Keepalive autostart disabled — timer not armed")

    yield

    # Shutdown
    await scheduler.stop()
    registry.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Keepalive Scheduler",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.cron_secret = settings.cron_secret

    app.include_router(keepalive_router, prefix="/api")
    app.include_router(cron_router, prefix="/api")

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"status": "ok"}

    return app


app = create_app()
