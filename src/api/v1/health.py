"""Health check endpoints for the ReliefLine API.

Liveness and readiness probes for container deployments.  Readiness
exercises the state store and confirms the bot is wired up.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

if TYPE_CHECKING:
    from src.services.monitor import DisasterMonitor
    from src.services.store import KeyValueStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness status with one entry per checked component."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Component checks
# ---------------------------------------------------------------------------

_PROBE_KEY = "_readiness_probe"


async def _check_store(store: KeyValueStore | None) -> str:
    """Write, read back and delete a short-lived probe key."""
    if store is None:
        return "not_initialised"
    try:
        await store.set(_PROBE_KEY, "ok", ttl_seconds=10)
        echoed = await store.get(_PROBE_KEY)
        await store.delete(_PROBE_KEY)
    except Exception as exc:
        logger.warning("health.store_probe_failed", exc_info=True)
        return f"error: {exc!s}"
    return "ok" if echoed == "ok" else "degraded"


def _check_monitor(monitor: DisasterMonitor | None) -> str:
    if monitor is None:
        return "not_initialised"
    return f"ok ({monitor.active_count} active)"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe; does not touch downstream dependencies."""
    started = getattr(request.app.state, "start_time", None) or time.time()
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - started, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe.

    ``store`` and ``dispatcher`` gate readiness. The monitor line is
    informational: it reports how many watches are running.
    """
    state = request.app.state
    checks = {
        "store": await _check_store(getattr(state, "state_store", None)),
        "dispatcher": "ok" if getattr(state, "dispatcher", None) is not None else "not_initialised",
        "monitor": _check_monitor(getattr(state, "monitor", None)),
    }
    ready = checks["store"] == "ok" and checks["dispatcher"] == "ok"
    status = "ready" if ready else "degraded"
    logger.info("health.readiness_check", status=status, checks=checks)
    return ReadinessResponse(status=status, checks=checks)
