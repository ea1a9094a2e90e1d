"""Discord-to-core message mapping adapter.

This keeps Discord REST payload details out of the core relay.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from core.models import CandidateMessage

# Regular messages, replies, slash-command and context-menu results, forwards.
FORWARDABLE_MESSAGE_TYPES: frozenset[int] = frozenset({0, 19, 20, 21, 23})

CDN_BASE = "https://cdn.discordapp.com"


def parse_discord_timestamp(value: Optional[str]) -> datetime:
    """Parse Discord's ISO 8601 timestamps; unknown values map to the epoch."""

    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def author_display_name(author: Mapping[str, Any]) -> str:
    """Prefer the global display name, then the username."""

    for key in ("global_name", "username"):
        value = author.get(key)
        if isinstance(value, str) and value:
            return value
    return "unknown"


def _avatar_url(author: Mapping[str, Any]) -> Optional[str]:
    user_id = author.get("id")
    avatar = author.get("avatar")
    if not user_id or not avatar:
        return None
    return f"{CDN_BASE}/avatars/{user_id}/{avatar}.png"


def _jump_url(guild_id: Optional[str], channel_id: Optional[str], message_id: str) -> Optional[str]:
    if not channel_id:
        return None
    # Direct-message channels have no guild and use "@me" in links.
    return f"https://discord.com/channels/{guild_id or '@me'}/{channel_id}/{message_id}"


def is_forwardable(payload: Mapping[str, Any]) -> bool:
    message_type = payload.get("type", 0)
    if message_type in FORWARDABLE_MESSAGE_TYPES:
        return True
    # System messages are skipped unless they carry something to show.
    return bool(payload.get("attachments") or payload.get("embeds"))


def build_candidate(payload: Mapping[str, Any], guild_id: Optional[str] = None) -> CandidateMessage:
    """Build a core CandidateMessage from a Discord message object."""

    message_id = str(payload.get("id", ""))
    author = payload.get("author") or {}
    channel_id = payload.get("channel_id")
    guild_id = payload.get("guild_id") or guild_id

    attachments = [
        attachment["url"]
        for attachment in payload.get("attachments") or []
        if isinstance(attachment, dict) and attachment.get("url")
    ]

    metadata: dict[str, Any] = {
        "channel_id": str(channel_id) if channel_id else None,
        "guild_id": str(guild_id) if guild_id else None,
        "author_id": str(author.get("id")) if author.get("id") else None,
        "avatar_url": _avatar_url(author),
        "attachments": attachments,
        "jump_url": _jump_url(
            str(guild_id) if guild_id else None,
            str(channel_id) if channel_id else None,
            message_id,
        ),
    }

    return CandidateMessage(
        id=message_id,
        author=author_display_name(author),
        body=str(payload.get("content") or ""),
        timestamp=parse_discord_timestamp(payload.get("timestamp")),
        source_metadata=metadata,
    )
