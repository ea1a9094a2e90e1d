"""Telegram Bot API sink adapter.

Uses the Bot API for delivery so relayed messages can be routed to any chat
the bot is a member of.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional

from core.errors import DeliveryError

LOGGER = logging.getLogger(__name__)

PARSE_MODES = {"html": "HTML", "markdown": "Markdown", "plain": None}


class TelegramBotSink:
    """Sink adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        format_mode: str = "html",
        thread_id: Optional[int] = None,
        disable_web_page_preview: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._bot_token = bot_token
        self._parse_mode = PARSE_MODES.get(format_mode)
        self._thread_id = thread_id
        self._disable_preview = disable_web_page_preview
        self._timeout = timeout

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _payload(self, text: str, destination: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat_id": destination,
            "text": text,
            "disable_web_page_preview": self._disable_preview,
        }
        if self._parse_mode:
            payload["parse_mode"] = self._parse_mode
        if self._thread_id is not None:
            payload["message_thread_id"] = self._thread_id
        return payload

    def _post(self, payload: dict[str, Any]) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise DeliveryError(f"Bot API error {e.code}: {body}") from e
        except OSError as e:
            raise DeliveryError(f"Bot API unreachable: {e}") from e

    async def deliver(self, text: str, destination: str) -> None:
        """Send the formatted text; raises DeliveryError on any failure."""

        await asyncio.to_thread(self._post, self._payload(text, destination))
        LOGGER.debug("Message delivered to Telegram chat %s", destination)
