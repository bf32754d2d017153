"""WhatsApp Business Cloud API transport for the ReliefLine bot.

Inbound: Meta posts webhook payloads that :meth:`WhatsAppClient.parse_webhook`
turns into :class:`IncomingMessage` objects (text, shared location, image
with optional caption, interactive button/list replies).

Outbound: free-form session text messages via the Graph API, plus media
download for images users attach to emergency reports.

When no phone-number id is configured the client runs in mock mode:
outbound messages are logged instead of sent, which keeps local
development and tests free of network calls.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Final

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.models.conversation import (
    IncomingMessage,
    Location,
    MediaAttachment,
    MediaPayload,
)
from src.models.enums import ContentType

logger = structlog.get_logger(__name__)

WHATSAPP_API_BASE: Final[str] = "https://graph.facebook.com/v18.0"

_WHATSAPP_MAX: Final[int] = 4096
_MAX_ATTEMPTS: Final[int] = 3

_MIME_EXTENSIONS: Final[dict[str, str]] = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
}


class _RetryableStatus(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"retryable status {status_code}")
        self.status_code = status_code


class WhatsAppClient:
    """Cloud API adapter implementing the bot's messenger interface.

    Parameters
    ----------
    phone_number_id:
        The WhatsApp Business phone-number id messages are sent from.
        Empty (or starting with ``mock``) enables mock mode.
    access_token:
        Meta Graph API bearer token.
    transport:
        Optional custom ``httpx`` transport (tests).
    """

    __slots__ = ("_access_token", "_client", "_phone_number_id")

    def __init__(
        self,
        phone_number_id: str = "",
        access_token: str = "",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            timeout=15.0,
            headers={"Authorization": f"Bearer {access_token}"} if access_token else {},
            transport=transport,
        )
        logger.info(
            "whatsapp.initialised",
            phone_number_id=(phone_number_id[:6] + "..." if phone_number_id else "<empty>"),
            mock=self.is_mock,
        )

    @property
    def is_mock(self) -> bool:
        return not self._phone_number_id or self._phone_number_id.startswith("mock")

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_text(self, to: str, body: str) -> bool:
        """Send a session text message; return whether the API accepted it."""
        log = logger.bind(to=to)
        if self.is_mock:
            log.info("mock_whatsapp.sent", message_preview=body[:80], length=len(body))
            return True

        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to.lstrip("+"),
            "type": "text",
            "text": {"preview_url": False, "body": body[:_WHATSAPP_MAX]},
        }
        url = f"{WHATSAPP_API_BASE}/{self._phone_number_id}/messages"

        try:
            response = await self._post_with_retry(url, payload)
        except (httpx.HTTPError, _RetryableStatus, RetryError) as exc:
            log.error("whatsapp.send_failed", error=str(exc))
            return False

        if response.status_code == 200:
            data = response.json()
            messages = data.get("messages") or [{}]
            log.info("whatsapp.text_sent", wa_message_id=messages[0].get("id", ""))
            return True

        log.error("whatsapp.api_error", status=response.status_code, body=response.text[:300])
        return False

    async def _post_with_retry(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        """POST with exponential backoff on transport errors, 429 and 5xx."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            stop=stop_after_attempt(_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
            reraise=True,
        ):
            with attempt:
                response = await self._client.post(url, json=payload)
                if response.status_code >= 500 or response.status_code == 429:
                    logger.warning(
                        "whatsapp.retryable_status",
                        status=response.status_code,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise _RetryableStatus(response.status_code)
                return response
        raise AssertionError("unreachable")  # pragma: no cover

    async def download_media(self, media: MediaAttachment) -> MediaPayload | None:
        """Resolve a media id to its URL and fetch the bytes.

        Returns ``None`` if the media cannot be fetched, so callers can
        ask the user to resend.
        """
        log = logger.bind(media_id=media.media_id)
        if self.is_mock:
            log.info("mock_whatsapp.media_unavailable")
            return None

        try:
            meta = await self._client.get(f"{WHATSAPP_API_BASE}/{media.media_id}")
            meta.raise_for_status()
            info = meta.json()
            media_url = info.get("url")
            if not media_url:
                log.warning("whatsapp.media_url_missing")
                return None
            content = await self._client.get(media_url)
            content.raise_for_status()
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("whatsapp.media_download_failed", error=str(exc))
            return None

        mime_type = info.get("mime_type") or media.mime_type
        extension = _MIME_EXTENSIONS.get(mime_type.split(";")[0].strip(), "jpeg")
        log.info("whatsapp.media_downloaded", size=len(content.content), mime_type=mime_type)
        return MediaPayload(
            data=content.content,
            mime_type=mime_type,
            filename=media.filename or f"emergency_image.{extension}",
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    @staticmethod
    def parse_webhook(payload: dict[str, Any]) -> list[IncomingMessage]:
        """Extract user messages from a Cloud API webhook payload.

        Delivery-status callbacks carry no messages and yield an empty
        list.  Unsupported message types are returned with empty text so
        the bot can still answer them.
        """
        incoming: list[IncomingMessage] = []

        for entry in payload.get("entry", []) or []:
            for change in entry.get("changes", []) or []:
                value = change.get("value", {}) or {}
                for msg in value.get("messages", []) or []:
                    parsed = WhatsAppClient._parse_message(msg)
                    if parsed is not None:
                        incoming.append(parsed)

        if incoming:
            logger.info("whatsapp.webhook_messages", count=len(incoming))
        return incoming

    @staticmethod
    def _parse_message(msg: dict[str, Any]) -> IncomingMessage | None:
        sender = msg.get("from", "")
        if not sender:
            logger.warning("whatsapp.message_without_sender", msg_type=msg.get("type"))
            return None

        msg_type = msg.get("type", "text")
        text = ""
        content_type = ContentType.OTHER
        location: Location | None = None
        media: MediaAttachment | None = None

        if msg_type == "text":
            text = msg.get("text", {}).get("body", "")
            content_type = ContentType.TEXT
        elif msg_type == "location":
            loc = msg.get("location", {})
            try:
                location = Location(latitude=float(loc["latitude"]), longitude=float(loc["longitude"]))
                content_type = ContentType.LOCATION
            except (KeyError, TypeError, ValueError):
                logger.warning("whatsapp.bad_location_payload", sender=sender)
        elif msg_type == "image":
            image = msg.get("image", {})
            if image.get("id"):
                media = MediaAttachment(
                    media_id=image["id"],
                    kind=ContentType.IMAGE,
                    mime_type=image.get("mime_type", "image/jpeg"),
                )
                content_type = ContentType.IMAGE
            text = image.get("caption", "")
        elif msg_type == "interactive":
            interactive = msg.get("interactive", {})
            reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
            text = reply.get("title") or reply.get("id", "")
            content_type = ContentType.INTERACTIVE
        elif msg_type == "button":
            text = msg.get("button", {}).get("text", "")
            content_type = ContentType.INTERACTIVE

        extra: dict[str, Any] = {}
        if msg.get("id"):
            extra["message_id"] = msg["id"]
        if str(msg.get("timestamp", "")).isdigit():
            extra["timestamp"] = datetime.fromtimestamp(int(msg["timestamp"]), tz=UTC)

        return IncomingMessage(
            sender=sender,
            text=text.strip(),
            content_type=content_type,
            location=location,
            media=media,
            **extra,
        )
