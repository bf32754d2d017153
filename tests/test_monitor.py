"""Tests for background disaster monitoring."""

from __future__ import annotations

import asyncio

from conftest import FakeBackend, FakeMessenger

from src.models.disaster import DisasterReport
from src.services.backend_client import ApiResult
from src.services.monitor import DisasterMonitor


def active(rid: str, kind: str = "flood") -> DisasterReport:
    return DisasterReport(id=rid, emergency_type=kind, status="active", latitude=1.0, longitude=2.0)


class TestCheckOnce:
    async def test_alerts_only_new_active_disasters(
        self, monitor: DisasterMonitor, backend: FakeBackend, messenger: FakeMessenger,
    ) -> None:
        await monitor.start("u1", 1.0, 2.0)
        backend.nearby_reports = [active("a"), DisasterReport(id="z", status="archived")]

        fresh = await monitor.check_once("u1")
        assert [r.id for r in fresh] == ["a"]
        assert "ALERT: New Disasters Detected" in messenger.last
        assert "*1. flood*" in messenger.last

        backend.nearby_reports = [active("a"), active("b", "fire")]
        fresh = await monitor.check_once("u1")
        assert [r.id for r in fresh] == ["b"], "already-announced disasters are not repeated"
        assert "*1. fire*" in messenger.last

    async def test_nothing_new_sends_nothing(
        self, monitor: DisasterMonitor, backend: FakeBackend, messenger: FakeMessenger,
    ) -> None:
        await monitor.start("u1", 1.0, 2.0)
        assert await monitor.check_once("u1") == []
        assert messenger.sent == []

    async def test_failed_poll_is_quiet(
        self, monitor: DisasterMonitor, backend: FakeBackend, messenger: FakeMessenger,
    ) -> None:
        await monitor.start("u1", 1.0, 2.0)
        backend.nearby_result = ApiResult(success=False, error="down", status=503)
        assert await monitor.check_once("u1") == []
        assert messenger.sent == []

    async def test_unknown_sender(self, monitor: DisasterMonitor) -> None:
        assert await monitor.check_once("nobody") == []


class TestLifecycle:
    async def test_restart_replaces_watch(self, monitor: DisasterMonitor, backend: FakeBackend) -> None:
        await monitor.start("u1", 1.0, 2.0)
        await monitor.start("u1", 3.0, 4.0)
        assert monitor.active_count == 1

        await monitor.check_once("u1")
        assert backend.called("nearby_disasters")[-1] == (3.0, 4.0)

    async def test_stop(self, monitor: DisasterMonitor) -> None:
        await monitor.start("u1", 1.0, 2.0)
        assert await monitor.stop("u1") is True
        assert await monitor.stop("u1") is False
        assert monitor.active_count == 0

    async def test_polls_then_expires(self, backend: FakeBackend, messenger: FakeMessenger) -> None:
        backend.nearby_reports = [active("a")]
        monitor = DisasterMonitor(backend, messenger.send_text, interval_seconds=0.01, duration_seconds=0.05)  # type: ignore[arg-type]

        await monitor.start("u1", 1.0, 2.0)
        for _ in range(100):
            if not monitor.is_monitoring("u1"):
                break
            await asyncio.sleep(0.01)

        assert not monitor.is_monitoring("u1"), "the watch should expire on its own"
        bodies = messenger.bodies("u1")
        assert sum("ALERT" in b for b in bodies) == 1, "the disaster is announced once"
        assert "monitoring has ended" in bodies[-1]

    async def test_first_poll_does_not_wait_for_interval(
        self, monitor: DisasterMonitor, backend: FakeBackend, messenger: FakeMessenger,
    ) -> None:
        backend.nearby_reports = [active("a")]
        await monitor.start("u1", 1.0, 2.0)

        for _ in range(100):
            if messenger.sent:
                break
            await asyncio.sleep(0)

        assert backend.called("nearby_disasters") == [(1.0, 2.0)], "the watch polls as soon as it starts"
        assert "ALERT: New Disasters Detected" in messenger.last
        assert monitor.is_monitoring("u1"), "the watch keeps running until its deadline"

    async def test_close_cancels_all(self, monitor: DisasterMonitor) -> None:
        await monitor.start("u1", 1.0, 2.0)
        await monitor.start("u2", 1.0, 2.0)
        await monitor.close()
        assert monitor.active_count == 0
