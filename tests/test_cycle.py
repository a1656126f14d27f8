"""Tests for the Cycle Runner."""

from __future__ import annotations

import asyncio
import time

import httpx

from src.keepalive import (
    CycleRunner,
    KeepaliveProject,
    Pinger,
    PingResult,
    ProjectRegistry,
    ValidationError,
)


def _add(registry: ProjectRegistry, host: str, active: bool = True) -> KeepaliveProject:
    p = registry.add(host.upper(), f"https://{host}.supabase.co", f"key-{host}")
    if not active:
        p = registry.update(p.id, is_active=False)
    return p


class TestCycleRunner:
    def test_empty_registry(self, registry: ProjectRegistry, fake_targets) -> None:
        runner = CycleRunner(registry, Pinger(transport=fake_targets({})))
        assert asyncio.run(runner.run()) == []

    def test_scenario_mixed_outcomes(self, registry: ProjectRegistry, fake_targets) -> None:
        a = _add(registry, "a")
        b = _add(registry, "b")
        c = _add(registry, "c", active=False)
        transport = fake_targets({"a.supabase.co": 0.2, "b.supabase.co": 5.0})
        runner = CycleRunner(registry, Pinger(timeout=1.0, transport=transport))

        results = asyncio.run(runner.run())

        assert [r.project_id for r in results] == [a.id, b.id]
        assert results[0].success is True
        assert results[0].error is None
        assert results[1].success is False
        assert results[1].error == "timeout"

        assert registry.get(a.id).last_ping_success is True
        assert registry.get(b.id).last_ping_success is False
        assert registry.get(b.id).last_ping_error == "timeout"
        untouched = registry.get(c.id)
        assert untouched.last_ping_at is None
        assert untouched.last_ping_success is None

    def test_one_result_per_active_project(self, registry: ProjectRegistry, fake_targets) -> None:
        active = [_add(registry, f"on{i}") for i in range(4)]
        for i in range(3):
            _add(registry, f"off{i}", active=False)
        runner = CycleRunner(registry, Pinger(transport=fake_targets({})))

        results = asyncio.run(runner.run())
        assert [r.project_id for r in results] == [p.id for p in active]
        assert all(r.success for r in results)

    def test_pings_run_concurrently(self, registry: ProjectRegistry, fake_targets) -> None:
        hosts = [f"slow{i}" for i in range(4)]
        for h in hosts:
            _add(registry, h)
        transport = fake_targets({f"{h}.supabase.co": 0.3 for h in hosts})
        runner = CycleRunner(registry, Pinger(timeout=5.0, transport=transport))

        t0 = time.perf_counter()
        results = asyncio.run(runner.run())
        elapsed = time.perf_counter() - t0

        assert len(results) == 4
        assert elapsed < 1.0  # sequential would take 1.2s

    def test_timeout_does_not_delay_siblings(self, registry: ProjectRegistry, fake_targets) -> None:
        _add(registry, "hang")
        fast = _add(registry, "fast")
        transport = fake_targets({"hang.supabase.co": 10.0})
        runner = CycleRunner(registry, Pinger(timeout=0.3, transport=transport))

        t0 = time.perf_counter()
        results = asyncio.run(runner.run())
        elapsed = time.perf_counter() - t0

        by_id = {r.project_id: r for r in results}
        assert by_id[fast.id].success is True
        assert elapsed < 2.0

    def test_failure_isolated(self, registry: ProjectRegistry, fake_targets) -> None:
        bad = _add(registry, "bad")
        good = _add(registry, "good")
        transport = fake_targets({"bad.supabase.co": httpx.ConnectError("refused")})
        runner = CycleRunner(registry, Pinger(transport=transport))

        results = asyncio.run(runner.run())
        assert [(r.project_id, r.success, r.error) for r in results] == [
            (bad.id, False, "network_error"),
            (good.id, True, None),
        ]

    def test_deactivated_project_skipped_next_cycle(self, registry: ProjectRegistry, fake_targets) -> None:
        p = _add(registry, "a")
        other = _add(registry, "b")
        runner = CycleRunner(registry, Pinger(transport=fake_targets({})))
        asyncio.run(runner.run())
        first_ping = registry.get(p.id).last_ping_at

        registry.update(p.id, is_active=False)
        results = asyncio.run(runner.run())

        assert [r.project_id for r in results] == [other.id]
        kept = registry.get(p.id)
        assert kept.last_ping_at == first_ping
        assert kept.last_ping_success is True

    def test_project_deleted_mid_cycle(self, registry: ProjectRegistry, fake_targets) -> None:
        doomed = _add(registry, "doomed")
        survivor = _add(registry, "survivor")
        transport = fake_targets({"doomed.supabase.co": lambda request: registry.delete(doomed.id)})
        runner = CycleRunner(registry, Pinger(transport=transport))

        results = asyncio.run(runner.run())

        assert [r.project_id for r in results] == [survivor.id]
        assert [p.id for p in registry.list()] == [survivor.id]
        assert registry.get(survivor.id).last_ping_success is True

    def test_pinger_exception_is_contained(self, registry: ProjectRegistry) -> None:
        broken = _add(registry, "broken")
        ok = _add(registry, "ok")

        class FlakyPinger(Pinger):
            async def ping(self, project: KeepaliveProject) -> PingResult:
                if project.id == broken.id:
                    raise RuntimeError("unexpected")
                return PingResult(project_id=project.id, success=True, latency_ms=1.0)

        results = asyncio.run(CycleRunner(registry, FlakyPinger()).run())
        assert [(r.project_id, r.success) for r in results] == [(broken.id, False), (ok.id, True)]
        assert results[0].error == "network_error"
        assert registry.get(broken.id).last_ping_error == "network_error"

    def test_invalid_project_reported_as_network_error(self, registry: ProjectRegistry) -> None:
        p = _add(registry, "a")

        class StrictPinger(Pinger):
            async def ping(self, project: KeepaliveProject) -> PingResult:
                raise ValidationError(f"Project {project.id} has no credential")

        results = asyncio.run(CycleRunner(registry, StrictPinger()).run())
        assert [(r.project_id, r.success, r.error) for r in results] == [
            (p.id, False, "network_error"),
        ]
