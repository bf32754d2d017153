"""WhatsApp message formatting for bot replies.

WhatsApp renders ``*bold*`` and ``_italic_`` markup, so every reply is
framed with an emoji header and bold title.  Free-text bodies are kept
well under the 4096-character WhatsApp limit.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Final

from src.models.disaster import DisasterReport

WHATSAPP_MAX: Final[int] = 4096

WELCOME: Final[str] = (
    "\U0001f4f1 *ReliefLine Disaster Management Bot* \U0001f4f1\n\n"
    "Hello! I'm your disaster management assistant. Here's how I can help you:"
)

HELP_COMMANDS: Final[tuple[str, ...]] = (
    "\U0001f510 *!login* - Log in to your account",
    "\U0001f464 *!profile* - View your user profile",
    "\U0001f4ca *!dashboard* - Access your dashboard",
    "\U0001f198 *!reportemergency* - Report an emergency situation",
    "\U0001f50d *!nearbydisasters* - Check for disasters near your location",
    "\U0001f4cd *!monitordisasters* - Monitor disasters near your location",
    "\U0001f6d1 *!stopmonitoring* - Stop active disaster monitoring",
    "\U0001f6aa *!logout* - Log out from your account",
    "❓ *!help* - Show this help message",
)

FOOTER: Final[str] = "Type *!cancel* at any time to cancel the current operation."

SESSION_EXPIRED: Final[str] = "Your session has expired. Please log in again using `!login`."


def _clip(text: str) -> str:
    if len(text) <= WHATSAPP_MAX:
        return text
    return text[: WHATSAPP_MAX - 3] + "..."


def success(message: str) -> str:
    return _clip(f"✅ *Success*\n\n{message}")


def error(message: str) -> str:
    return _clip(f"❌ *Error*\n\n{message}")


def info(message: str) -> str:
    return _clip(f"ℹ️ *Information*\n\n{message}")


def warning(message: str) -> str:
    return _clip(f"⚠️ *Warning*\n\n{message}")


def question(message: str) -> str:
    return _clip(f"❓ *{message}*")


def help_text() -> str:
    return "\n".join([WELCOME, "", *HELP_COMMANDS, "", FOOTER])


def capitalize_words(text: str) -> str:
    """``"first_responder"`` -> ``"First Responder"``."""
    return " ".join(word.capitalize() for word in text.replace("_", " ").split())


def profile_card(profile: dict[str, Any]) -> str:
    lines = [
        "\U0001f464 *Your Profile*",
        "",
        f"*Name:* {profile.get('name') or 'Not set'}",
        f"*Email:* {profile.get('email') or 'Not set'}",
        f"*Phone:* {profile.get('phone') or 'Not set'}",
    ]
    if profile.get("role"):
        lines.append(f"*Role:* {capitalize_words(str(profile['role']))}")
    if profile.get("latitude") is not None and profile.get("longitude") is not None:
        lines.append(f"*Location:* Lat {profile['latitude']}, Long {profile['longitude']}")
    skills = profile.get("skills")
    if isinstance(skills, list) and skills:
        lines.append(f"*Skills:* {', '.join(str(s) for s in skills)}")
    if profile.get("department"):
        lines.append(f"*Department:* {profile['department']}")
    return _clip("\n".join(lines))


def dashboard_summary(dashboard: dict[str, Any]) -> str:
    """Summarise the counts the dashboard endpoint exposes.

    Returns an informational notice when the payload carries nothing
    we know how to show.
    """
    lines: list[str] = []
    for key, label in (("activeDisasters", "Active Disasters"), ("pendingTasks", "Pending Tasks")):
        value = dashboard.get(key)
        if isinstance(value, list):
            lines.append(f"*{label}:* {len(value)}")
        elif isinstance(value, int):
            lines.append(f"*{label}:* {value}")
    if not lines:
        return info("Dashboard accessed successfully! No specific data to display.")
    return _clip("\U0001f4ca *Your Dashboard*\n\n" + "\n".join(lines))


def _disaster_entry(index: int, disaster: DisasterReport, *, with_people: bool) -> list[str]:
    lines = [
        f"*{index}. {disaster.emergency_type or 'Disaster'}*",
        f"• Urgency: {disaster.urgency_level or 'Unknown'}",
    ]
    if disaster.map_link:
        lines.append(f"• Location: {disaster.map_link}")
    if with_people and disaster.people_count:
        lines.append(f"• People affected: {disaster.people_count}")
    lines.append("")
    return lines


def nearby_list(disasters: Sequence[DisasterReport]) -> str:
    """Numbered list of active disasters near the user (1-based)."""
    lines = ["\U0001f6a8 *Nearby Active Disasters*", ""]
    for index, disaster in enumerate(disasters, start=1):
        lines.extend(_disaster_entry(index, disaster, with_people=True))
    lines.append("⚠️ Please take appropriate precautions and follow any evacuation orders.")
    return _clip("\n".join(lines))


def monitor_alert(disasters: Sequence[DisasterReport]) -> str:
    lines = ["\U0001f6a8 *ALERT: New Disasters Detected*", ""]
    for index, disaster in enumerate(disasters, start=1):
        lines.extend(_disaster_entry(index, disaster, with_people=False))
    return _clip("\n".join(lines).rstrip())
