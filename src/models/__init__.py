from src.models.conversation import (
    ConversationState,
    IncomingMessage,
    Location,
    MediaAttachment,
    MediaPayload,
)
from src.models.disaster import DisasterReport, parse_disaster_list
from src.models.enums import Command, ContentType, DisasterStatus, StepId, UrgencyLevel

__all__ = [
    "Command",
    "ContentType",
    "ConversationState",
    "DisasterReport",
    "DisasterStatus",
    "IncomingMessage",
    "Location",
    "MediaAttachment",
    "MediaPayload",
    "StepId",
    "UrgencyLevel",
    "parse_disaster_list",
]
