"""Main API router combining the v1 route modules under ``/api/v1``.

Includes:
    * Health: liveness and readiness probes
    * WhatsApp: Cloud API webhook (verification + inbound messages)
    * Duplicates: operator duplicate-report detection
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import duplicates, health, whatsapp

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health.router)
api_router.include_router(whatsapp.router)
api_router.include_router(duplicates.router)
