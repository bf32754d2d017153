from __future__ import annotations

from enum import StrEnum


class Command(StrEnum):
    """Multi-step conversation flows a sender can be in."""

    __slots__ = ()

    LOGIN = "login"
    REPORT_EMERGENCY = "report_emergency"
    NEARBY_DISASTERS = "nearby_disasters"
    MONITOR_DISASTERS = "monitor_disasters"


class UrgencyLevel(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DisasterStatus(StrEnum):
    __slots__ = ()

    PENDING = "pending"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ContentType(StrEnum):
    __slots__ = ()

    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"
    INTERACTIVE = "interactive"
    OTHER = "other"


class StepId(StrEnum):
    """Identifiers for every prompt/validate/store step across all flows."""

    __slots__ = ()

    EMAIL = "email"
    PASSWORD = "password"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    EMERGENCY_TYPE = "emergency_type"
    URGENCY_LEVEL = "urgency_level"
    SITUATION = "situation"
    PEOPLE_COUNT = "people_count"
    IMAGE = "image"
