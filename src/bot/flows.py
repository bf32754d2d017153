"""Declarative multi-step conversation flows.

A flow is an ordered table of :class:`Step` entries.  Each step knows its
prompt, how to parse the user's answer, and whether it also accepts a
shared geolocation.  :meth:`Flow.advance` is the whole state machine:

* invalid answer -> error reply, state unchanged (same step stays current);
* valid answer   -> value stored under the step's field, next prompt sent;
* geolocation    -> latitude *and* longitude stored, manual longitude step
  skipped;
* last step done -> :meth:`Flow.complete` runs the terminal action.

Steps never mutate the incoming state; a new state object is returned and
the dispatcher commits it only after the whole turn succeeds.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

import structlog

from src.bot import formatting
from src.bot.validators import InputError, parse_coordinate
from src.models.conversation import (
    ConversationState,
    IncomingMessage,
    MediaAttachment,
    MediaPayload,
)
from src.models.enums import Command, StepId

logger = structlog.get_logger(__name__)

ReplyFn = Callable[[str], Awaitable[Any]]


class Messenger(Protocol):
    """Outbound side of the chat transport."""

    async def send_text(self, to: str, body: str) -> bool: ...

    async def download_media(self, media: MediaAttachment) -> MediaPayload | None: ...


@dataclass(slots=True)
class Turn:
    """One inbound message plus the means to answer it."""

    message: IncomingMessage
    reply: ReplyFn

    @property
    def sender(self) -> str:
        return self.message.sender

    @property
    def command_text(self) -> str:
        return self.message.normalized


@dataclass(frozen=True, slots=True)
class Step:
    id: StepId
    prompt: str
    parse: Callable[[IncomingMessage], Any]
    accepts_location: bool = False
    render: Callable[[str], str] = formatting.question

    @property
    def field(self) -> str:
        return self.id.value


def latitude_step(prompt: str, *, accepts_location: bool = True) -> Step:
    return Step(
        StepId.LATITUDE,
        prompt,
        lambda msg: parse_coordinate(msg.text, "latitude"),
        accepts_location=accepts_location,
    )


def longitude_step(prompt: str) -> Step:
    return Step(StepId.LONGITUDE, prompt, lambda msg: parse_coordinate(msg.text, "longitude"))


class Flow:
    """Base class for a linear conversation flow."""

    command: ClassVar[Command]
    steps: ClassVar[tuple[Step, ...]]

    async def start(self, turn: Turn) -> ConversationState:
        first = self.steps[0]
        await turn.reply(first.render(first.prompt))
        logger.info("bot.flow_started", command=self.command, sender=turn.sender)
        return ConversationState(command=self.command)

    def step_at(self, position: int) -> Step:
        if not 1 <= position <= len(self.steps):
            raise LookupError(f"{self.command} has no step {position}")
        return self.steps[position - 1]

    def _position_after_location(self, position: int) -> int:
        """Next position once a geolocation has filled both coordinates."""
        for index in range(position, len(self.steps)):
            if self.steps[index].id == StepId.LONGITUDE:
                return index + 2
        return position + 1

    async def advance(self, turn: Turn, state: ConversationState) -> ConversationState | None:
        """Apply one answer; return the state to keep, or ``None`` to end the flow."""
        step = self.step_at(state.step)
        data = dict(state.data)
        message = turn.message

        if step.accepts_location and message.location is not None:
            data[StepId.LATITUDE.value] = message.location.latitude
            data[StepId.LONGITUDE.value] = message.location.longitude
            next_position = self._position_after_location(state.step)
        else:
            try:
                data[step.field] = step.parse(message)
            except InputError as exc:
                await turn.reply(formatting.error(str(exc)))
                logger.info("bot.step_rejected", command=self.command, step=step.id, sender=turn.sender)
                return state
            next_position = state.step + 1

        if next_position > len(self.steps):
            return await self.complete(turn, state, data)

        upcoming = self.step_at(next_position)
        await turn.reply(upcoming.render(upcoming.prompt))
        return state.model_copy(update={"step": next_position, "data": data})

    async def complete(
        self,
        turn: Turn,
        state: ConversationState,
        data: dict[str, Any],
    ) -> ConversationState | None:
        """Run the terminal action with every field collected.

        *state* is the pre-turn state; returning it keeps the user on the
        same step (e.g. after a transient failure), returning ``None``
        ends the flow.
        """
        raise NotImplementedError
