"""Shared fakes and fixtures for the bot tests."""

from __future__ import annotations

from typing import Any

import pytest

from src.bot.dispatcher import ConversationDispatcher
from src.models.conversation import IncomingMessage, Location, MediaAttachment, MediaPayload
from src.models.disaster import DisasterReport
from src.models.enums import ContentType
from src.services.backend_client import ApiResult
from src.services.monitor import DisasterMonitor
from src.services.store import ConversationStore, KeyValueStore, SessionStore

SENDER = "15551234567"


class FakeMessenger:
    """Records outbound messages; media downloads return a canned payload."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.downloads: list[MediaAttachment] = []
        self.media: MediaPayload | None = MediaPayload(data=b"\xff\xd8jpeg", mime_type="image/jpeg")

    async def send_text(self, to: str, body: str) -> bool:
        self.sent.append((to, body))
        return True

    async def download_media(self, media: MediaAttachment) -> MediaPayload | None:
        self.downloads.append(media)
        return self.media

    def bodies(self, to: str = SENDER) -> list[str]:
        return [body for recipient, body in self.sent if recipient == to]

    @property
    def last(self) -> str:
        return self.sent[-1][1]


class FakeBackend:
    """Scripted stand-in for :class:`BackendClient` that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.login_result = ApiResult(
            success=True,
            data={"access_token": "tok-123", "user_info": {"name": "Dana"}},
            status=200,
        )
        self.profile_result = ApiResult(success=True, data={"name": "Dana", "email": "d@example.org"}, status=200)
        self.dashboard_result = ApiResult(success=True, data={"activeDisasters": [1, 2], "pendingTasks": 3}, status=200)
        self.report_result = ApiResult(success=True, data={"$id": "r1"}, status=201)
        self.nearby_result = ApiResult(success=True, data=[], status=200)
        self.nearby_reports: list[DisasterReport] = []
        self.raise_on: str | None = None

    def _record(self, name: str, payload: Any) -> None:
        self.calls.append((name, payload))
        if self.raise_on == name:
            raise RuntimeError(f"boom in {name}")

    def called(self, name: str) -> list[Any]:
        return [payload for call, payload in self.calls if call == name]

    async def login(self, email: str, password: str, latitude: float, longitude: float) -> ApiResult:
        self._record("login", {"email": email, "password": password, "latitude": latitude, "longitude": longitude})
        return self.login_result

    async def profile(self, token: str) -> ApiResult:
        self._record("profile", token)
        return self.profile_result

    async def dashboard(self, token: str) -> ApiResult:
        self._record("dashboard", token)
        return self.dashboard_result

    async def report_emergency(
        self,
        token: str,
        fields: dict[str, str],
        image: MediaPayload | None = None,
    ) -> ApiResult:
        self._record("report_emergency", {"token": token, "fields": fields, "image": image})
        return self.report_result

    async def nearby_disasters(self, latitude: float, longitude: float) -> tuple[ApiResult, list[DisasterReport]]:
        self._record("nearby_disasters", (latitude, longitude))
        reports = self.nearby_reports if self.nearby_result.success else []
        return self.nearby_result, reports


def text(body: str, sender: str = SENDER) -> IncomingMessage:
    return IncomingMessage(sender=sender, text=body)


def location(latitude: float, longitude: float, sender: str = SENDER) -> IncomingMessage:
    return IncomingMessage(
        sender=sender,
        content_type=ContentType.LOCATION,
        location=Location(latitude=latitude, longitude=longitude),
    )


def image(media_id: str = "media-1", caption: str = "", sender: str = SENDER) -> IncomingMessage:
    return IncomingMessage(
        sender=sender,
        text=caption,
        content_type=ContentType.IMAGE,
        media=MediaAttachment(media_id=media_id),
    )


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def conversations() -> ConversationStore:
    return ConversationStore(KeyValueStore(namespace="test:state:"), ttl_seconds=1800)


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore(KeyValueStore(namespace="test:session:"), ttl_seconds=3600)


@pytest.fixture
async def monitor(backend: FakeBackend, messenger: FakeMessenger):
    mon = DisasterMonitor(backend, messenger.send_text, interval_seconds=3600, duration_seconds=7200)  # type: ignore[arg-type]
    yield mon
    await mon.close()


@pytest.fixture
def dispatcher(
    conversations: ConversationStore,
    sessions: SessionStore,
    backend: FakeBackend,
    messenger: FakeMessenger,
    monitor: DisasterMonitor,
) -> ConversationDispatcher:
    return ConversationDispatcher(
        conversations=conversations,
        sessions=sessions,
        backend=backend,  # type: ignore[arg-type]
        messenger=messenger,
        monitor=monitor,
    )
