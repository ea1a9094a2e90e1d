"""Telegram user-client sink adapter.

Sends relayed messages as the logged-in Telethon user. The destination "me"
targets the user's Saved Messages.
"""

from __future__ import annotations

from typing import Optional, Union

from telethon import errors

from core.errors import DeliveryError

PARSE_MODES = {"markdown": "md", "html": "html", "plain": None}


def _resolve_entity(destination: str) -> Union[str, int]:
    # Numeric chat ids must reach Telethon as ints; usernames and "me" stay strings.
    text = destination.strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return text


class TelegramClientSink:
    """Sink adapter backed by an authorized Telethon client."""

    def __init__(self, client, format_mode: str = "markdown", thread_id: Optional[int] = None) -> None:
        self._client = client
        self._parse_mode = PARSE_MODES.get(format_mode)
        self._thread_id = thread_id

    async def deliver(self, text: str, destination: str) -> None:
        """Send the formatted text; raises DeliveryError on any failure."""

        try:
            await self._client.send_message(
                _resolve_entity(destination),
                text,
                parse_mode=self._parse_mode,
                reply_to=self._thread_id,
                link_preview=False,
            )
        except (errors.RPCError, ValueError, ConnectionError) as e:
            raise DeliveryError(f"Telegram client error: {e}") from e
