"""
============================================================================
Rank Gateway v1.0.0
Discord Embed Builders - Rank and Session Notifications
============================================================================

Reliability Level: L5 High
Input Constraints: title required
Side Effects: None (pure payload construction)

DISCORD EMBED STRUCTURE:
- Title: Event name (e.g., "User Promoted", "Session Unhealthy")
- Color: Hex color code for embed sidebar
- Fields: List of name/value pairs for structured data
- Timestamp: ISO-8601 UTC
- Footer: Service name

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_FOOTER_TEXT = "Rank Gateway"

# Discord API limits
MAX_EMBED_TITLE_LENGTH = 256
MAX_FIELD_NAME_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024
MAX_FIELDS_PER_EMBED = 25
MAX_FOOTER_LENGTH = 2048


class EmbedColor(Enum):
    """Discord-compatible hex colors per notification type."""
    RANK_CHANGE = 0x3498DB  # Blue
    PROMOTION = 0x2ECC71    # Green
    DEMOTION = 0xE74C3C     # Red
    ERROR = 0xE74C3C        # Red
    HEALTH_OK = 0x2ECC71    # Green
    HEALTH_FAIL = 0xE74C3C  # Red


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class EmbedField:
    name: str
    value: str
    inline: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Discord API format."""
        return {
            "name": self.name[:MAX_FIELD_NAME_LENGTH],
            "value": self.value[:MAX_FIELD_VALUE_LENGTH],
            "inline": self.inline,
        }


@dataclass
class DiscordEmbed:
    """
    Discord embed message structure.

    Every key of the payload shape is always present, fields may be empty.
    """
    title: str
    color: int
    timestamp: str
    fields: List[EmbedField] = field(default_factory=list)
    footer_text: str = DEFAULT_FOOTER_TEXT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Discord API format."""
        return {
            "title": self.title[:MAX_EMBED_TITLE_LENGTH],
            "color": self.color,
            "fields": [f.to_dict() for f in self.fields[:MAX_FIELDS_PER_EMBED]],
            "timestamp": self.timestamp,
            "footer": {"text": self.footer_text[:MAX_FOOTER_LENGTH]},
        }

    def to_payload(self) -> Dict[str, Any]:
        return {"embeds": [self.to_dict()]}


@dataclass(frozen=True)
class RankChange:
    """
    Outcome of a rank mutation, as reported to the notification sink.

    old_rank / new_rank are numeric rank levels; the *_name fields are the
    human-readable role names.
    """
    subject_id: str
    old_rank: int
    old_rank_name: str
    new_rank: int
    new_rank_name: str
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.username or f"ID: {self.subject_id}"


# =============================================================================
# BUILDERS
# =============================================================================

def _subject_display(subject_id: str, username: Optional[str]) -> str:
    return username or f"ID: {subject_id}"


def _transition_embed(
    title: str,
    color: EmbedColor,
    change: RankChange,
    timestamp: datetime,
    from_label: str,
    to_label: str,
    footer_text: str,
) -> DiscordEmbed:
    return DiscordEmbed(
        title=title,
        color=color.value,
        timestamp=timestamp.isoformat(),
        footer_text=footer_text,
        fields=[
            EmbedField("User", change.display_name),
            EmbedField(from_label, f"{change.old_rank_name} ({change.old_rank})"),
            EmbedField(to_label, f"{change.new_rank_name} ({change.new_rank})"),
        ],
    )


def rank_change_embed(
    change: RankChange,
    timestamp: datetime,
    footer_text: str = DEFAULT_FOOTER_TEXT,
) -> DiscordEmbed:
    return _transition_embed(
        "Rank Changed", EmbedColor.RANK_CHANGE, change, timestamp,
        "Old Rank", "New Rank", footer_text,
    )


def promotion_embed(
    change: RankChange,
    timestamp: datetime,
    footer_text: str = DEFAULT_FOOTER_TEXT,
) -> DiscordEmbed:
    return _transition_embed(
        "User Promoted", EmbedColor.PROMOTION, change, timestamp,
        "From", "To", footer_text,
    )


def demotion_embed(
    change: RankChange,
    timestamp: datetime,
    footer_text: str = DEFAULT_FOOTER_TEXT,
) -> DiscordEmbed:
    return _transition_embed(
        "User Demoted", EmbedColor.DEMOTION, change, timestamp,
        "From", "To", footer_text,
    )


def error_embed(
    action: str,
    subject_id: str,
    error: str,
    timestamp: datetime,
    username: Optional[str] = None,
    footer_text: str = DEFAULT_FOOTER_TEXT,
) -> DiscordEmbed:
    return DiscordEmbed(
        title="Ranking Error",
        color=EmbedColor.ERROR.value,
        timestamp=timestamp.isoformat(),
        footer_text=footer_text,
        fields=[
            EmbedField("Action", action),
            EmbedField("User", _subject_display(subject_id, username)),
            EmbedField("Error", error, inline=False),
        ],
    )


def session_alert_embed(
    reason: str,
    consecutive_failures: int,
    timestamp: datetime,
    principal: Optional[str] = None,
    footer_text: str = DEFAULT_FOOTER_TEXT,
) -> DiscordEmbed:
    fields = [
        EmbedField("Reason", reason, inline=False),
        EmbedField("Consecutive Failures", str(consecutive_failures)),
    ]
    if principal:
        fields.append(EmbedField("Principal", principal))
    return DiscordEmbed(
        title="Session Unhealthy",
        color=EmbedColor.HEALTH_FAIL.value,
        timestamp=timestamp.isoformat(),
        footer_text=footer_text,
        fields=fields,
    )


def session_recovered_embed(
    timestamp: datetime,
    principal: Optional[str] = None,
    footer_text: str = DEFAULT_FOOTER_TEXT,
) -> DiscordEmbed:
    fields = []
    if principal:
        fields.append(EmbedField("Principal", principal))
    return DiscordEmbed(
        title="Session Recovered",
        color=EmbedColor.HEALTH_OK.value,
        timestamp=timestamp.isoformat(),
        footer_text=footer_text,
        fields=fields,
    )


__all__ = [
    "DEFAULT_FOOTER_TEXT",
    "DiscordEmbed",
    "EmbedColor",
    "EmbedField",
    "RankChange",
    "demotion_embed",
    "error_embed",
    "promotion_embed",
    "rank_change_embed",
    "session_alert_embed",
    "session_recovered_embed",
]
