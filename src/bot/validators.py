"""Validation of single conversational answers.

Each validator either returns the parsed value or raises
:class:`InputError` whose message is safe to show to the user verbatim.
"""

from __future__ import annotations

import math
from typing import Final, Literal

from src.models.enums import UrgencyLevel

Axis = Literal["latitude", "longitude"]

_COORDINATE_LIMITS: Final[dict[str, float]] = {"latitude": 90.0, "longitude": 180.0}
_COORDINATE_EXAMPLES: Final[dict[str, str]] = {"latitude": "34.0522", "longitude": "-118.2437"}


class InputError(ValueError):
    """A user answer that does not fit the current step."""


def require_text(value: str, label: str) -> str:
    text = value.strip()
    if not text:
        raise InputError(f"{label} cannot be empty.")
    return text


def parse_coordinate(value: str, axis: Axis) -> float:
    """Parse a finite decimal coordinate within the range for *axis*."""
    limit = _COORDINATE_LIMITS[axis]
    message = (
        f"Please enter a valid {axis} between {-limit:g} and {limit:g} "
        f"(e.g., {_COORDINATE_EXAMPLES[axis]})."
    )
    try:
        number = float(value.strip())
    except ValueError:
        raise InputError(message) from None
    if not math.isfinite(number) or not -limit <= number <= limit:
        raise InputError(message)
    return number


def parse_urgency(value: str) -> UrgencyLevel:
    try:
        return UrgencyLevel(value.strip().lower())
    except ValueError:
        levels = ", ".join(level.value for level in UrgencyLevel)
        raise InputError(f"Please specify a valid urgency level: {levels}") from None
