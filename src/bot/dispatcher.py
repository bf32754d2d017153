"""Routes every inbound chat message to a flow step or a one-shot command.

Per message, under the sender's store lock:

1. If the sender has an open :class:`ConversationState`, ``!cancel`` ends
   it; anything else is the answer to the current step.
2. Otherwise the text is matched against the command vocabulary.

The flow works on a copy of the stored state and the dispatcher commits
the result only after the step finished, so an exception part-way through
leaves the stored state exactly as it was before the message arrived.
Unexpected errors are logged and answered with a generic apology; they
never propagate to the transport.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Final

import structlog

from src.bot import formatting
from src.bot.emergency_report import EmergencyReportFlow
from src.bot.flows import Flow, Messenger, Turn
from src.bot.login import LoginFlow
from src.bot.nearby import MonitorDisastersFlow, NearbyDisastersFlow
from src.models.conversation import IncomingMessage
from src.models.enums import Command

if TYPE_CHECKING:
    from src.services.backend_client import BackendClient
    from src.services.monitor import DisasterMonitor
    from src.services.store import ConversationStore, SessionStore

logger = structlog.get_logger(__name__)

CANCEL: Final[str] = "!cancel"

GENERIC_FAILURE: Final[str] = "Sorry, an error occurred while processing your request. Please try again later."
UNRECOGNIZED: Final[str] = "I don't understand that command. Type `!help` to see what I can do."


class ConversationDispatcher:
    """Entry point for the chat transport: one call per inbound message."""

    def __init__(
        self,
        *,
        conversations: ConversationStore,
        sessions: SessionStore,
        backend: BackendClient,
        messenger: Messenger,
        monitor: DisasterMonitor,
    ) -> None:
        self._conversations = conversations
        self._sessions = sessions
        self._backend = backend
        self._messenger = messenger
        self._monitor = monitor

        self._flows: dict[Command, Flow] = {
            Command.LOGIN: LoginFlow(backend, sessions),
            Command.REPORT_EMERGENCY: EmergencyReportFlow(backend, sessions, messenger),
            Command.NEARBY_DISASTERS: NearbyDisastersFlow(backend),
            Command.MONITOR_DISASTERS: MonitorDisastersFlow(monitor),
        }
        self._commands: dict[str, Callable[[Turn], Awaitable[None]]] = {
            "!help": self._help,
            "!login": self._login,
            "!profile": self._profile,
            "!dashboard": self._dashboard,
            "!reportemergency": self._report_emergency,
            "!nearbydisasters": self._nearby_disasters,
            "!monitordisasters": self._monitor_disasters,
            "!stopmonitoring": self._stop_monitoring,
            "!logout": self._logout,
            CANCEL: self._nothing_to_cancel,
        }

    def flow(self, command: Command) -> Flow:
        return self._flows[command]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, message: IncomingMessage) -> None:
        async def reply(body: str) -> None:
            await self._messenger.send_text(message.sender, body)

        turn = Turn(message=message, reply=reply)
        log = logger.bind(sender=message.sender, message_id=message.message_id)

        try:
            async with self._conversations.lock(message.sender):
                await self._dispatch(turn)
        except Exception:
            log.error("bot.dispatch_failed", exc_info=True)
            try:
                await reply(formatting.error(GENERIC_FAILURE))
            except Exception:
                log.error("bot.failure_reply_failed", exc_info=True)

    async def _dispatch(self, turn: Turn) -> None:
        state = await self._conversations.get(turn.sender)

        if state is not None:
            if turn.command_text == CANCEL:
                await self._conversations.delete(turn.sender)
                logger.info("bot.flow_cancelled", sender=turn.sender, command=state.command, step=state.step)
                await turn.reply(
                    formatting.info("Current operation cancelled. How can I help you further? Type `!help` for options."),
                )
                return

            flow = self._flows.get(state.command)
            if flow is None:
                await self._conversations.delete(turn.sender)
                await turn.reply(
                    formatting.error(
                        "An unexpected error occurred in your conversation flow. "
                        "Please try starting a new command with `!help`.",
                    ),
                )
                return

            new_state = await flow.advance(turn, state)
            if new_state is None:
                await self._conversations.delete(turn.sender)
                logger.info("bot.flow_finished", sender=turn.sender, command=state.command)
            elif new_state is not state:
                await self._conversations.save(turn.sender, new_state)
            return

        handler = self._commands.get(turn.command_text)
        if handler is None:
            await turn.reply(formatting.info(UNRECOGNIZED))
            return
        await handler(turn)

    async def _start(self, command: Command, turn: Turn) -> None:
        state = await self._flows[command].start(turn)
        await self._conversations.save(turn.sender, state)

    async def _session_expired(self, turn: Turn, failure: str) -> None:
        await self._sessions.delete(turn.sender)
        logger.info("bot.session_expired", sender=turn.sender)
        await turn.reply(formatting.error(f"{failure}\n\n{formatting.SESSION_EXPIRED}"))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _help(self, turn: Turn) -> None:
        await turn.reply(formatting.help_text())

    async def _login(self, turn: Turn) -> None:
        if await self._sessions.has(turn.sender):
            await turn.reply(formatting.info("You are already logged in!"))
            return
        await self._start(Command.LOGIN, turn)

    async def _profile(self, turn: Turn) -> None:
        token = await self._sessions.get(turn.sender)
        if token is None:
            await turn.reply(formatting.warning("You need to be logged in to view your profile. Type `!login` to proceed."))
            return

        await turn.reply(formatting.info("Fetching your profile..."))
        result = await self._backend.profile(token)
        if result.success and isinstance(result.data, dict):
            await turn.reply(formatting.profile_card(result.data))
        elif result.unauthorized:
            await self._session_expired(turn, f"Failed to fetch profile: {result.error}")
        else:
            await turn.reply(formatting.error(f"Failed to fetch profile: {result.error or 'unexpected response.'}"))

    async def _dashboard(self, turn: Turn) -> None:
        token = await self._sessions.get(turn.sender)
        if token is None:
            await turn.reply(formatting.warning("You need to be logged in to view your dashboard. Type `!login` to proceed."))
            return

        await turn.reply(formatting.info("Accessing your dashboard..."))
        result = await self._backend.dashboard(token)
        if result.success:
            await turn.reply(formatting.dashboard_summary(result.data if isinstance(result.data, dict) else {}))
        elif result.unauthorized:
            await self._session_expired(turn, f"Failed to access dashboard: {result.error}")
        else:
            await turn.reply(formatting.error(f"Failed to access dashboard: {result.error}"))

    async def _report_emergency(self, turn: Turn) -> None:
        if not await self._sessions.has(turn.sender):
            await turn.reply(
                formatting.warning("You need to be logged in to report an emergency. Type `!login` to proceed."),
            )
            return
        await self._start(Command.REPORT_EMERGENCY, turn)

    async def _nearby_disasters(self, turn: Turn) -> None:
        await self._start(Command.NEARBY_DISASTERS, turn)

    async def _monitor_disasters(self, turn: Turn) -> None:
        await self._start(Command.MONITOR_DISASTERS, turn)

    async def _stop_monitoring(self, turn: Turn) -> None:
        if await self._monitor.stop(turn.sender):
            await turn.reply(formatting.success("Disaster monitoring has been stopped."))
        else:
            await turn.reply(formatting.info("You don't have active disaster monitoring."))

    async def _logout(self, turn: Turn) -> None:
        if not await self._sessions.has(turn.sender):
            await turn.reply(formatting.info("You are not currently logged in."))
            return
        await self._sessions.delete(turn.sender)
        await self._conversations.delete(turn.sender)
        logger.info("bot.logged_out", sender=turn.sender)
        await turn.reply(formatting.success("You have been successfully logged out."))

    async def _nothing_to_cancel(self, turn: Turn) -> None:
        await turn.reply(formatting.info("There is no operation in progress to cancel."))
