"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from src.keepalive import ProjectRegistry


@pytest.fixture
def registry(tmp_path: Path) -> ProjectRegistry:
    """A ProjectRegistry backed by a temp SQLite file."""
    reg = ProjectRegistry(db_path=tmp_path / "test_keepalive.db")
    yield reg
    reg.close()


@pytest.fixture
def fake_targets() -> Callable[[dict[str, Any]], httpx.MockTransport]:
    """Build a mock transport that answers per target host.

    Each host maps to one of:
      - an int: respond with that status code
      - a float: sleep that many seconds, then respond 200
      - an exception instance: raise it
      - a callable(request): called, then respond 200
    Unknown hosts answer 200. Requests seen are recorded on ``transport.seen``.
    """

    def factory(routes: dict[str, Any]) -> httpx.MockTransport:
        seen: list[httpx.Request] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            behavior = routes.get(request.url.host, 200)
            if isinstance(behavior, BaseException):
                raise behavior
            if isinstance(behavior, float):
                await asyncio.sleep(behavior)
                return httpx.Response(200, json={})
            if callable(behavior):
                behavior(request)
                return httpx.Response(200, json={})
            return httpx.Response(behavior, json={})

        transport = httpx.MockTransport(handler)
        transport.seen = seen  # type: ignore[attr-defined]
        return transport

    return factory
