"""Request authentication for the ReliefLine HTTP surface.

Two FastAPI dependencies:

* :func:`require_admin_api_key` guards operator endpoints with the
  ``X-Admin-API-Key`` header (``ADMIN_API_KEY``).
* :func:`verify_whatsapp_signature` checks Meta's ``X-Hub-Signature-256``
  HMAC over the raw webhook body when ``WHATSAPP_APP_SECRET`` is set.

Both compare in constant time.
"""

from __future__ import annotations

import hashlib
import hmac

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from config.settings import settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_api_key_header = APIKeyHeader(name="X-Admin-API-Key", auto_error=False)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def require_admin_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str:
    """Enforce the admin API key; return it on success, 401/403/503 otherwise.

    Without a configured key, development lets requests through with a
    warning and production refuses them.
    """
    configured_key = settings.admin_api_key

    if not configured_key:
        if not settings.is_production:
            logger.warning("auth.admin_key_not_configured", path=request.url.path)
            return ""
        logger.error("auth.admin_key_not_configured_production")
        raise HTTPException(status_code=503, detail="Admin authentication is not configured.")

    if not api_key:
        logger.warning("auth.missing_api_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(api_key.encode(), configured_key.encode()):
        logger.warning("auth.invalid_api_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return api_key


def signature_matches(body: bytes, header_value: str | None, app_secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` value (``sha256=<hex>``) against *body*."""
    if not header_value or not header_value.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(header_value.removeprefix("sha256="), expected)


async def verify_whatsapp_signature(request: Request) -> bytes:
    """Validate the webhook signature and return the raw request body."""
    body = await request.body()
    app_secret = settings.whatsapp_app_secret

    if not app_secret:
        if settings.is_production:
            logger.error("auth.webhook_secret_not_configured_production")
            raise HTTPException(status_code=503, detail="Webhook authentication is not configured.")
        return body

    if not signature_matches(body, request.headers.get(SIGNATURE_HEADER), app_secret):
        logger.warning("auth.invalid_webhook_signature", client_ip=_client_ip(request))
        raise HTTPException(status_code=403, detail="Invalid webhook signature.")

    return body
