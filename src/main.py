"""ReliefLine FastAPI application entry point.

Creates the FastAPI app, configures logging and middleware, includes the
routers, and manages the lifecycle of the bot's services (state stores,
backend client, WhatsApp transport, disaster monitor, dispatcher).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Configure structlog once per process.

    ``LOG_FORMAT=json`` renders one JSON object per line (tracebacks
    flattened into the event); anything else uses the coloured console
    renderer for local development.
    """
    shared: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    renderer: list = (
        [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        if settings.log_format == "json"
        else [structlog.dev.ConsoleRenderer()]
    )

    structlog.configure(
        processors=[*shared, *renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the bot's object graph on startup and tear it down on shutdown.

    On startup:
      1. Keyed stores for conversation state and sessions
      2. Disaster backend client
      3. WhatsApp transport
      4. Disaster monitor
      5. Conversation dispatcher
      6. Everything on ``app.state``

    On shutdown monitors are cancelled first, then HTTP clients and
    store connections are closed.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, backend=settings.backend_api_url)

    app.state.start_time = time.time()
    redis_url = settings.redis_url or None

    # -- 1. Stores ------------------------------------------------------------
    from src.services.store import ConversationStore, KeyValueStore, SessionStore

    state_store = KeyValueStore(redis_url=redis_url, namespace="reliefline:state:")
    session_store = KeyValueStore(redis_url=redis_url, namespace="reliefline:session:")
    conversations = ConversationStore(state_store, ttl_seconds=settings.conversation_ttl_seconds)
    sessions = SessionStore(session_store, ttl_seconds=settings.session_ttl_seconds)
    app.state.state_store = state_store
    logger.info("app.stores_initialised", redis=bool(redis_url))

    # -- 2. Backend client ----------------------------------------------------
    from src.services.backend_client import BackendClient

    backend = BackendClient(
        settings.backend_api_url,
        timeout=settings.backend_timeout_seconds,
        max_attempts=settings.backend_max_attempts,
    )
    app.state.backend = backend

    # -- 3. WhatsApp transport ------------------------------------------------
    from src.services.whatsapp import WhatsAppClient

    whatsapp = WhatsAppClient(
        phone_number_id=settings.whatsapp_phone_number_id,
        access_token=settings.whatsapp_access_token,
    )
    app.state.whatsapp = whatsapp

    # -- 4. Disaster monitor --------------------------------------------------
    from src.services.monitor import DisasterMonitor

    monitor = DisasterMonitor(
        backend,
        whatsapp.send_text,
        interval_seconds=settings.monitor_interval_seconds,
        duration_seconds=settings.monitor_duration_seconds,
    )
    app.state.monitor = monitor

    # -- 5. Dispatcher --------------------------------------------------------
    from src.bot.dispatcher import ConversationDispatcher

    app.state.dispatcher = ConversationDispatcher(
        conversations=conversations,
        sessions=sessions,
        backend=backend,
        messenger=whatsapp,
        monitor=monitor,
    )

    logger.info("app.startup_complete", whatsapp_mock=whatsapp.is_mock)

    yield

    # -- Shutdown -------------------------------------------------------------
    logger.info("app.shutdown_start", active_monitors=monitor.active_count)

    await monitor.close()
    await whatsapp.close()
    await backend.close()
    await state_store.close()
    await session_store.close()

    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------


def _cors_options() -> dict:
    """CORS settings: configured origins with credentials in production,
    local dev servers otherwise. Credentials are never paired with ``*``."""
    if settings.is_production:
        return {
            "allow_origins": settings.cors_origin_list,
            "allow_credentials": True,
            "allow_methods": ["GET", "POST"],
            "allow_headers": ["Content-Type", "Authorization", "X-Admin-API-Key"],
        }
    return {
        "allow_origins": ["http://localhost:3000", "http://localhost:8000", "http://127.0.0.1:8000"],
        "allow_credentials": False,
        "allow_methods": ["GET", "POST", "OPTIONS", "HEAD"],
        "allow_headers": ["Content-Type", "Accept", "Authorization", "X-Admin-API-Key"],
    }


def _expose_metrics(target: FastAPI) -> None:
    """Mount Prometheus request metrics on ``/metrics``; health probes are not counted."""
    try:
        from prometheus_fastapi_instrumentator import Instrumentator
    except ImportError:
        logger.warning("app.metrics_disabled", reason="prometheus-fastapi-instrumentator not installed")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/api/v1/health.*"],
    )
    instrumentator.instrument(target)
    instrumentator.expose(target, endpoint="/metrics", include_in_schema=not settings.is_production)
    logger.info("app.metrics_enabled")


app = FastAPI(
    title="ReliefLine API",
    description=(
        "ReliefLine -- WhatsApp assistant for disaster reporting and nearby "
        "disaster alerts, plus duplicate-report triage for operators."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

app.add_middleware(CORSMiddleware, **_cors_options())
_expose_metrics(app)
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "ReliefLine API",
        "version": app.version,
        "docs": "/docs",
        "endpoints": {
            "health": "/api/v1/health",
            "readiness": "/api/v1/health/ready",
            "whatsapp_webhook": "/api/v1/whatsapp/webhook",
            "duplicates": "/api/v1/duplicates/detect",
        },
        "commands": [
            "!help",
            "!login",
            "!profile",
            "!dashboard",
            "!reportemergency",
            "!nearbydisasters",
            "!monitordisasters",
            "!stopmonitoring",
            "!logout",
            "!cancel",
        ],
    }
