"""``!login``: email, password, then location, then authenticate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from src.bot import formatting
from src.bot.flows import Flow, Step, Turn, latitude_step, longitude_step
from src.bot.validators import require_text
from src.models.conversation import ConversationState
from src.models.enums import Command, StepId

if TYPE_CHECKING:
    from src.services.backend_client import BackendClient
    from src.services.store import SessionStore

logger = structlog.get_logger(__name__)

LOGIN_FAILED = "Login failed. Please check your credentials and try again with `!login`."


class LoginFlow(Flow):
    command: ClassVar[Command] = Command.LOGIN
    steps: ClassVar[tuple[Step, ...]] = (
        Step(StepId.EMAIL, "What is your email address?", lambda msg: require_text(msg.text, "Email")),
        Step(StepId.PASSWORD, "What is your password?", lambda msg: require_text(msg.text, "Password")),
        latitude_step(
            "Please share your location using WhatsApp's location sharing feature, "
            "or reply with your current latitude (e.g., 34.0522).",
        ),
        longitude_step("And your current longitude (e.g., -118.2437)."),
    )

    def __init__(self, backend: BackendClient, sessions: SessionStore) -> None:
        self._backend = backend
        self._sessions = sessions

    async def complete(
        self,
        turn: Turn,
        state: ConversationState,
        data: dict[str, Any],
    ) -> ConversationState | None:
        await turn.reply(formatting.info("Attempting to log you in..."))

        result = await self._backend.login(
            email=data[StepId.EMAIL.value],
            password=data[StepId.PASSWORD.value],
            latitude=data[StepId.LATITUDE.value],
            longitude=data[StepId.LONGITUDE.value],
        )
        body = result.data if isinstance(result.data, dict) else {}
        token = body.get("access_token")

        if not result.success or not isinstance(token, str) or not token:
            logger.info("bot.login_failed", sender=turn.sender, status=result.status)
            await turn.reply(formatting.error(LOGIN_FAILED))
            return None

        await self._sessions.set(turn.sender, token)
        user_info = body.get("user_info")
        name = user_info.get("name") if isinstance(user_info, dict) else None
        logger.info("bot.login_succeeded", sender=turn.sender)
        await turn.reply(formatting.success(f"Login successful! Welcome, {name or 'there'}!"))
        return None
