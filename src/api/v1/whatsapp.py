"""WhatsApp Cloud API webhook endpoints.

``GET`` answers Meta's subscription handshake; ``POST`` receives message
notifications, hands every user message to the conversation dispatcher
as a background task and acknowledges immediately.
"""

from __future__ import annotations

import orjson
import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from config.settings import settings
from src.middleware.auth import verify_whatsapp_signature
from src.services.whatsapp import WhatsAppClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str = Query("", alias="hub.mode"),
    verify_token: str = Query("", alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
) -> PlainTextResponse:
    """Echo ``hub.challenge`` when the verify token matches."""
    configured = settings.whatsapp_verify_token
    if mode == "subscribe" and configured and verify_token == configured:
        logger.info("whatsapp.webhook_verified")
        return PlainTextResponse(challenge)

    logger.warning("whatsapp.webhook_verification_failed", mode=mode)
    raise HTTPException(status_code=403, detail="Webhook verification failed.")


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verify_whatsapp_signature),
) -> dict:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Bot is not initialised.")

    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Malformed webhook payload.") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Malformed webhook payload.")

    messages = WhatsAppClient.parse_webhook(payload)
    for message in messages:
        background_tasks.add_task(dispatcher.handle, message)

    return {"status": "received", "messages": len(messages)}
