"""``!reportemergency``: collect the report field by field and submit it."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from src.bot import formatting
from src.bot.flows import Flow, Messenger, Step, Turn, latitude_step, longitude_step
from src.bot.validators import InputError, parse_urgency, require_text
from src.models.conversation import ConversationState, IncomingMessage, MediaAttachment
from src.models.enums import Command, StepId

if TYPE_CHECKING:
    from src.services.backend_client import BackendClient
    from src.services.store import SessionStore

logger = structlog.get_logger(__name__)

REPORTED = (
    "Your emergency has been reported successfully{suffix}!\n\n"
    "Emergency services have been notified and will respond as soon as possible."
)


def _image_or_skip(message: IncomingMessage) -> dict[str, Any] | None:
    if message.has_image:
        return message.media.model_dump(mode="json")  # type: ignore[union-attr]
    if message.normalized == "skip":
        return None
    raise InputError("Please send an *image* or type `skip` to continue without an image.")


class EmergencyReportFlow(Flow):
    command: ClassVar[Command] = Command.REPORT_EMERGENCY
    steps: ClassVar[tuple[Step, ...]] = (
        Step(
            StepId.EMERGENCY_TYPE,
            "What type of emergency is this? (e.g., flood, fire, earthquake)",
            lambda msg: require_text(msg.text, "Emergency type"),
        ),
        Step(
            StepId.URGENCY_LEVEL,
            "What is the urgency level of this emergency? (low, medium, high, critical)",
            lambda msg: parse_urgency(msg.text).value,
        ),
        Step(
            StepId.SITUATION,
            "Please describe the situation in detail.",
            lambda msg: require_text(msg.text, "Situation description"),
        ),
        Step(
            StepId.PEOPLE_COUNT,
            "Approximately how many people are affected? (e.g., 10, 50+, unknown)",
            lambda msg: require_text(msg.text, "People count"),
        ),
        latitude_step(
            "Please share the emergency location using WhatsApp's location sharing feature, "
            "or reply with its latitude.",
        ),
        longitude_step("Now, please provide the longitude of the emergency location."),
        Step(
            StepId.IMAGE,
            "You can optionally send an *image* of the situation now (as an attachment), "
            "or type `skip` to finish.",
            _image_or_skip,
            render=formatting.info,
        ),
    )

    def __init__(self, backend: BackendClient, sessions: SessionStore, messenger: Messenger) -> None:
        self._backend = backend
        self._sessions = sessions
        self._messenger = messenger

    @staticmethod
    def submission_fields(data: dict[str, Any]) -> dict[str, str]:
        """Backend field names for a completed report (image excluded)."""
        return {
            "emergencyType": str(data[StepId.EMERGENCY_TYPE.value]),
            "urgencyLevel": str(data[StepId.URGENCY_LEVEL.value]),
            "situation": str(data[StepId.SITUATION.value]),
            "peopleCount": str(data[StepId.PEOPLE_COUNT.value]),
            "latitude": str(data[StepId.LATITUDE.value]),
            "longitude": str(data[StepId.LONGITUDE.value]),
        }

    async def complete(
        self,
        turn: Turn,
        state: ConversationState,
        data: dict[str, Any],
    ) -> ConversationState | None:
        token = await self._sessions.get(turn.sender)
        if token is None:
            await turn.reply(formatting.warning(formatting.SESSION_EXPIRED))
            return None

        fields = self.submission_fields(data)
        image = None
        attachment = data.get(StepId.IMAGE.value)
        if attachment:
            await turn.reply(formatting.info("Downloading image and reporting emergency..."))
            image = await self._messenger.download_media(MediaAttachment.model_validate(attachment))
            if image is None:
                logger.warning("bot.report_image_download_failed", sender=turn.sender)
                await turn.reply(
                    formatting.error("Could not download the image. Please try again or type `skip`."),
                )
                return state
        else:
            await turn.reply(formatting.info("Reporting emergency without image..."))

        result = await self._backend.report_emergency(token, fields, image)
        log = logger.bind(sender=turn.sender, with_image=image is not None)

        if result.success:
            log.info("bot.report_submitted")
            suffix = " with the image" if image is not None else ""
            await turn.reply(formatting.success(REPORTED.format(suffix=suffix)))
            return None

        log.warning("bot.report_failed", status=result.status)
        message = f"Failed to report emergency: {result.error}"
        if result.unauthorized:
            await self._sessions.delete(turn.sender)
            message = f"{message}\n\n{formatting.SESSION_EXPIRED}"
        await turn.reply(formatting.error(message))
        return None
