"""Chat-side models: inbound messages and per-sender conversation state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.models.enums import Command, ContentType


class Location(BaseModel):
    """A structured geolocation attachment."""

    latitude: float
    longitude: float


class MediaAttachment(BaseModel):
    """Reference to media held by the chat provider, downloaded on demand."""

    media_id: str
    kind: ContentType = ContentType.IMAGE
    mime_type: str = "image/jpeg"
    filename: str | None = None


class MediaPayload(BaseModel):
    """Downloaded media bytes ready for upload."""

    data: bytes
    mime_type: str = "image/jpeg"
    filename: str = "emergency_image.jpeg"


class IncomingMessage(BaseModel):
    """A single inbound chat message from one sender."""

    message_id: str = Field(default_factory=lambda: uuid4().hex)
    sender: str
    text: str = ""
    content_type: ContentType = ContentType.TEXT
    location: Location | None = None
    media: MediaAttachment | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def normalized(self) -> str:
        """Trimmed, lower-cased text used for command and keyword matching."""
        return self.text.strip().lower()

    @property
    def has_image(self) -> bool:
        return self.media is not None and self.media.kind == ContentType.IMAGE


class ConversationState(BaseModel):
    """In-progress multi-step dialogue for one sender.

    ``step`` is the 1-based position in the flow's ordered step table;
    ``data`` accumulates validated answers keyed by field name.
    """

    command: Command
    step: int = 1
    data: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
