"""Background monitoring of active disasters around a sender's location.

``!monitordisasters`` registers a watch; a per-sender task then polls the
nearby-disasters endpoint at once and every ``interval_seconds`` after
that, and alerts the sender about active disasters it has not reported
before.  Watches expire after ``duration_seconds``.  Watches are tasks in
this process and do not survive a restart.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.bot import formatting
from src.models.disaster import DisasterReport
from src.models.enums import DisasterStatus
from src.services.backend_client import BackendClient

logger = structlog.get_logger(__name__)

NotifyFn = Callable[[str, str], Awaitable[Any]]


def _report_key(report: DisasterReport) -> str:
    if report.id:
        return report.id
    return f"{report.emergency_type}:{report.latitude}:{report.longitude}:{report.submitted_time}"


@dataclass(slots=True)
class _Watch:
    latitude: float
    longitude: float
    known: set[str] = field(default_factory=set)
    task: asyncio.Task[None] | None = None


class DisasterMonitor:
    """Per-sender periodic checks for new active disasters."""

    __slots__ = ("_backend", "_duration", "_interval", "_notify", "_watches")

    def __init__(
        self,
        backend: BackendClient,
        notify: NotifyFn,
        *,
        interval_seconds: float = 30.0,
        duration_seconds: float = 3_600.0,
    ) -> None:
        self._backend = backend
        self._notify = notify
        self._interval = interval_seconds
        self._duration = duration_seconds
        self._watches: dict[str, _Watch] = {}

    def is_monitoring(self, sender: str) -> bool:
        return sender in self._watches

    @property
    def active_count(self) -> int:
        return len(self._watches)

    async def start(self, sender: str, latitude: float, longitude: float) -> None:
        """Start (or restart) monitoring *sender*'s location."""
        await self.stop(sender)
        watch = _Watch(latitude=latitude, longitude=longitude)
        self._watches[sender] = watch
        watch.task = asyncio.create_task(self._run(sender, watch), name=f"monitor:{sender}")
        logger.info("monitor.started", sender=sender, interval=self._interval, duration=self._duration)

    async def stop(self, sender: str) -> bool:
        """Cancel *sender*'s watch; return whether one was active."""
        watch = self._watches.pop(sender, None)
        if watch is None:
            return False
        if watch.task is not None and watch.task is not asyncio.current_task():
            watch.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watch.task
        logger.info("monitor.stopped", sender=sender)
        return True

    async def check_once(self, sender: str) -> list[DisasterReport]:
        """Poll once and alert about unseen active disasters; return them."""
        watch = self._watches.get(sender)
        if watch is None:
            return []

        result, reports = await self._backend.nearby_disasters(watch.latitude, watch.longitude)
        if not result.success:
            logger.warning("monitor.check_failed", sender=sender, status=result.status)
            return []

        fresh = [
            r for r in reports
            if r.status == DisasterStatus.ACTIVE and _report_key(r) not in watch.known
        ]
        if fresh:
            watch.known.update(_report_key(r) for r in fresh)
            await self._notify(sender, formatting.monitor_alert(fresh))
            logger.info("monitor.alert_sent", sender=sender, new=len(fresh))
        return fresh

    async def _run(self, sender: str, watch: _Watch) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._duration

        # First poll runs right away, then once per interval until the deadline.
        while True:
            try:
                await self.check_once(sender)
            except Exception:
                # one bad poll must not end the watch
                logger.error("monitor.check_error", sender=sender, exc_info=True)
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._interval, remaining))
            if loop.time() >= deadline:
                break

        if self._watches.get(sender) is watch:
            del self._watches[sender]
            logger.info("monitor.expired", sender=sender)
            await self._notify(
                sender,
                formatting.info("Disaster monitoring has ended. Type `!monitordisasters` to start again."),
            )

    async def close(self) -> None:
        """Cancel every watch (application shutdown)."""
        for sender in list(self._watches):
            await self.stop(sender)
