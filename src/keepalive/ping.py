"""Ping executor — one authenticated, read-only request per project.

Any authenticated REST request counts as activity for the hosting
provider, so the REST root is enough. Every outcome is returned as a
``PingResult``; only missing input raises.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from .errors import ValidationError
from .models import KeepaliveProject, PingResult

logger = logging.getLogger(__name__)

PING_TIMEOUT_SECONDS = 10.0
REST_PATH = "/rest/v1/"

AUTH_ERROR = "auth_error"
NETWORK_ERROR = "network_error"
TIMEOUT = "timeout"


def classify_status(status_code: int) -> str | None:
    """Map an HTTP status to an error reason, or ``None`` when the ping counts."""
    if status_code < 400:
        return None
    if status_code in (401, 403):
        return AUTH_ERROR
    return f"unexpected_status:{status_code}"


class Pinger:
    """Issues keepalive pings with a hard per-ping time bound."""

    def __init__(
        self,
        timeout: float = PING_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport  # injectable for tests

    async def ping(self, project: KeepaliveProject) -> PingResult:
        url = (project.connection_url or "").strip().rstrip("/")
        credential = (project.credential or "").strip()
        if not url:
            raise ValidationError(f"Project {project.id} has no connection URL")
        if not credential:
            raise ValidationError(f"Project {project.id} has no credential")

        t0 = time.perf_counter()
        try:
            resp = await asyncio.wait_for(self._request(url, credential), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return self._result(project, t0, error=TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug("Ping transport error for %s: %s", project.name, e)
            return self._result(project, t0, error=NETWORK_ERROR)
        except Exception as e:
            logger.warning("Unexpected ping error for %s: %s: %s", project.name, type(e).__name__, e)
            return self._result(project, t0, error=NETWORK_ERROR)

        return self._result(
            project, t0, error=classify_status(resp.status_code), status_code=resp.status_code,
        )

    async def _request(self, url: str, credential: str) -> httpx.Response:
        headers = {
            "apikey": credential,
            "Authorization": f"Bearer {credential}",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.get(f"{url}{REST_PATH}", headers=headers)

    @staticmethod
    def _result(
        project: KeepaliveProject,
        t0: float,
        error: str | None = None,
        status_code: int | None = None,
    ) -> PingResult:
        latency = (time.perf_counter() - t0) * 1000
        return PingResult(
            project_id=project.id,
            name=project.name,
            success=error is None,
            latency_ms=round(latency, 1),
            error=error,
            status_code=status_code,
        )
