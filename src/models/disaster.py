"""Disaster records as returned by the disaster management backend.

The backend is not consistent about shapes: list endpoints return either
a bare JSON array or ``{"disasters": [...]}``, and the people-affected
field appears as ``people_count`` or ``peopleCount``.  Everything is
normalised here so downstream code only sees :class:`DisasterReport`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = structlog.get_logger(__name__)


class DisasterReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, validation_alias=AliasChoices("$id", "id"))
    emergency_type: str | None = Field(
        default=None, validation_alias=AliasChoices("emergency_type", "emergencyType"),
    )
    urgency_level: str | None = Field(
        default=None, validation_alias=AliasChoices("urgency_level", "urgencyLevel"),
    )
    situation: str | None = None
    people_count: str | None = Field(
        default=None, validation_alias=AliasChoices("people_count", "peopleCount"),
    )
    latitude: float | None = None
    longitude: float | None = None
    submitted_time: float | None = None  # epoch seconds
    status: str | None = None
    image_id: str | None = Field(default=None, validation_alias=AliasChoices("image_id", "imageId"))

    @field_validator("people_count", mode="before")
    @classmethod
    def _people_count_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _blank_coordinate(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("submitted_time", mode="before")
    @classmethod
    def _epoch_seconds(cls, value: Any) -> Any:
        """Accept epoch seconds as a number or string, or an ISO-8601 timestamp.

        Timestamps without an offset are taken as UTC.
        """
        if value is None or isinstance(value, int | float):
            return value
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return float(text)
            except ValueError:
                value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.timestamp()
        return value

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def map_link(self) -> str | None:
        if not self.has_coordinates:
            return None
        return f"https://www.google.com/maps?q={self.latitude},{self.longitude}"


def parse_disaster_list(payload: Any) -> list[DisasterReport]:
    """Normalise a backend list response into disaster reports.

    Accepts a bare list or an object carrying a ``disasters`` list; any
    other shape yields an empty list.  Individual records that fail
    validation are skipped rather than failing the whole response.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict) and isinstance(payload.get("disasters"), list):
        items = payload["disasters"]
    else:
        if payload:
            logger.warning("disaster.unexpected_list_shape", payload_type=type(payload).__name__)
        return []

    reports: list[DisasterReport] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("disaster.skipped_non_object", item_type=type(item).__name__)
            continue
        try:
            reports.append(DisasterReport.model_validate(item))
        except ValidationError as exc:
            logger.warning("disaster.skipped_invalid_record", errors=exc.error_count())
    return reports
