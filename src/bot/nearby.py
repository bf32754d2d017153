"""``!nearbydisasters`` and ``!monitordisasters``: location in, disasters out."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from src.bot import formatting
from src.bot.flows import Flow, Step, Turn, latitude_step, longitude_step
from src.models.conversation import ConversationState
from src.models.enums import Command, DisasterStatus, StepId

if TYPE_CHECKING:
    from src.services.backend_client import BackendClient
    from src.services.monitor import DisasterMonitor

logger = structlog.get_logger(__name__)


class NearbyDisastersFlow(Flow):
    command: ClassVar[Command] = Command.NEARBY_DISASTERS
    steps: ClassVar[tuple[Step, ...]] = (
        latitude_step(
            "Please share your location by using WhatsApp's location sharing feature, "
            "or reply with your latitude (e.g., 34.0522).",
        ),
        longitude_step("Now, please provide your longitude."),
    )

    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def complete(
        self,
        turn: Turn,
        state: ConversationState,
        data: dict[str, Any],
    ) -> ConversationState | None:
        await turn.reply(formatting.info("Checking for nearby disasters..."))

        result, reports = await self._backend.nearby_disasters(
            data[StepId.LATITUDE.value], data[StepId.LONGITUDE.value],
        )
        if not result.success:
            logger.warning("bot.nearby_failed", sender=turn.sender, status=result.status)
            if result.transient:
                # keep the flow open so the user can resend the same answer
                await turn.reply(
                    formatting.error(
                        "Could not reach the disaster service. Please send your location again "
                        "in a moment, or type `!cancel`.",
                    ),
                )
                return state
            await turn.reply(formatting.error(f"Failed to check nearby disasters: {result.error}"))
            return None

        active = [r for r in reports if r.status == DisasterStatus.ACTIVE]
        logger.info("bot.nearby_listed", sender=turn.sender, total=len(reports), active=len(active))
        if active:
            await turn.reply(formatting.nearby_list(active))
        else:
            await turn.reply(formatting.success("Good news! No active disasters were found near your location."))
        return None


class MonitorDisastersFlow(Flow):
    command: ClassVar[Command] = Command.MONITOR_DISASTERS
    steps: ClassVar[tuple[Step, ...]] = (
        latitude_step(
            "To monitor disasters in your area, please share your location by using WhatsApp's "
            "location sharing feature, or reply with your latitude (e.g., 34.0522).",
        ),
        longitude_step("Now, please provide your longitude."),
    )

    def __init__(self, monitor: DisasterMonitor) -> None:
        self._monitor = monitor

    async def complete(
        self,
        turn: Turn,
        state: ConversationState,
        data: dict[str, Any],
    ) -> ConversationState | None:
        await self._monitor.start(turn.sender, data[StepId.LATITUDE.value], data[StepId.LONGITUDE.value])
        await turn.reply(
            formatting.info(
                "I will monitor this location and alert you about any new disasters.\n"
                "Type `!stopmonitoring` to stop.",
            ),
        )
        return None
