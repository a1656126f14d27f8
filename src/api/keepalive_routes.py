"""API routes for the keepalive registry and scheduler.

Endpoints:
  GET    /api/keepalive/projects       — list projects (credentials omitted)
  POST   /api/keepalive/projects       — register a project
  PATCH  /api/keepalive/projects/{id}  — partial update / (de)activate
  DELETE /api/keepalive/projects/{id}  — remove a project and its history
  POST   /api/keepalive/ping           — run a ping cycle now
  GET    /api/keepalive/status         — scheduler + per-project status
  POST   /api/cron/keepalive           — cron trigger, bearer-secret protected
"""

from __future__ import annotations

import hmac
import logging
import time
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.keepalive import (
    CycleInProgressError,
    KeepaliveScheduler,
    NotFoundError,
    ProjectRegistry,
    ValidationError,
    build_status,
)

logger = logging.getLogger(__name__)

keepalive_router = APIRouter(prefix="/keepalive", tags=["keepalive"])
cron_router = APIRouter(prefix="/cron", tags=["cron"])


# ── Request models ───────────────────────────────────────────────────────

class CreateProjectBody(BaseModel):
    name: str = ""
    connection_url: str = ""
    credential: str = ""


class UpdateProjectBody(BaseModel):
    name: str | None = None
    connection_url: str | None = None
    credential: str | None = None
    is_active: bool | None = None


# ── Helpers ──────────────────────────────────────────────────────────────

def _get_registry(request: Request) -> ProjectRegistry:
    return request.app.state.keepalive_registry  # type: ignore[no-any-return]


def _get_scheduler(request: Request) -> KeepaliveScheduler:
    return request.app.state.keepalive_scheduler  # type: ignore[no-any-return]


# ── Project endpoints ────────────────────────────────────────────────────

@keepalive_router.get("/projects")
def list_projects(request: Request) -> dict[str, Any]:
    projects = _get_registry(request).list()
    return {"projects": [p.to_dict() for p in projects], "count": len(projects)}


@keepalive_router.post("/projects", status_code=201)
def add_project(body: CreateProjectBody, request: Request) -> dict[str, Any]:
    """Register a new project to keep alive."""
    try:
        project = _get_registry(request).add(body.name, body.connection_url, body.credential)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return project.to_dict()


@keepalive_router.patch("/projects/{project_id}")
def update_project(project_id: str, body: UpdateProjectBody, request: Request) -> dict[str, Any]:
    """Update name / URL / credential, or toggle ``is_active``."""
    fields = body.model_dump(exclude_none=True)
    try:
        project = _get_registry(request).update(project_id, **fields)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return project.to_dict()


@keepalive_router.delete("/projects/{project_id}")
def delete_project(project_id: str, request: Request) -> dict[str, Any]:
    try:
        _get_registry(request).delete(project_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"deleted": True, "id": project_id}


# ── Scheduler endpoints ──────────────────────────────────────────────────

@keepalive_router.post("/ping")
async def run_ping_cycle(request: Request, wait: bool = True) -> JSONResponse:
    """Run a ping cycle now.

    If a cycle is already running this waits for it and returns its
    results; with ``?wait=false`` it answers 409 instead.
    """
    scheduler = _get_scheduler(request)
    try:
        report = await scheduler.run_cycle("manual", wait=wait)
    except CycleInProgressError as e:
        return JSONResponse(status_code=409, content={"error": str(e), "started_at": e.started_at})

    status = 200 if report.ok else 500
    return JSONResponse(status_code=status, content=report.to_dict())


@keepalive_router.get("/status")
def scheduler_status(request: Request) -> dict[str, Any]:
    return build_status(_get_scheduler(request), _get_registry(request)).to_dict()


# ── Cron trigger ─────────────────────────────────────────────────────────

@cron_router.post("/keepalive")
async def cron_keepalive(
    request: Request,
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    """Entry point for an external scheduler (Cloud Scheduler, cron, ...)."""
    secret = getattr(request.app.state, "cron_secret", "")
    if not secret:
        logger.error("[Cron] CRON_SECRET not configured")
        return JSONResponse(status_code=500, content={"error": "Not configured"})

    if not hmac.compare_digest((authorization or "").encode(), f"Bearer {secret}".encode()):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    logger.info("[Cron] Keepalive triggered externally")
    t0 = time.perf_counter()
    try:
        report = await _get_scheduler(request).run_cycle("cron")
    except Exception as e:
        logger.exception("[Cron] Keepalive failed")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e) or type(e).__name__,
                "elapsed_ms": round((time.perf_counter() - t0) * 1000, 1),
            },
        )

    # Time this caller waited; differs from duration_ms when it joined a running cycle
    elapsed_ms = round((time.perf_counter() - t0) * 1000, 1)
    if not report.ok:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": report.error,
                "duration_ms": report.duration_ms,
                "elapsed_ms": elapsed_ms,
            },
        )
    return JSONResponse(
        content={"success": True, "elapsed_ms": elapsed_ms, "data": report.to_dict()}
    )
