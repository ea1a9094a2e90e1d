"""Discord REST source adapter.

Reads recent messages from one text channel with a bot token. The HTTP call
is a blocking urllib request pushed to a worker thread so the event loop
stays responsive.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Optional, Sequence

from adapters.discord_mapper import build_candidate, is_forwardable
from core.errors import TransientFetchError
from core.models import CandidateMessage, MessageId
from core.ordering import IdKey, snowflake_key

LOGGER = logging.getLogger(__name__)

USER_AGENT = "DiscordBot (https://github.com/discord-bridge, 0.1)"
MAX_FETCH_LIMIT = 100


class DiscordChannelSource:
    """SourcePort implementation backed by GET /channels/{id}/messages."""

    def __init__(
        self,
        token: str,
        channel_id: str,
        server_id: Optional[str] = None,
        fetch_limit: int = 50,
        id_key: IdKey = snowflake_key,
        api_base: str = "https://discord.com/api/v10",
        timeout: float = 10.0,
    ) -> None:
        self._token = token
        self._channel_id = channel_id
        self._server_id = server_id
        self._limit = max(1, min(MAX_FETCH_LIMIT, fetch_limit))
        self._id_key = id_key
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    def id_key(self, message_id: MessageId) -> Any:
        return self._id_key(message_id)

    def identity(self) -> dict[str, Optional[str]]:
        return {"server_id": self._server_id, "channel_id": self._channel_id}

    def _endpoint(self, after: Optional[MessageId]) -> str:
        params: dict[str, Any] = {"limit": self._limit}
        # With "after", Discord returns the messages right above the cursor
        # instead of the newest page, so bursts between polls are not lost.
        # The "0" sentinel means no cursor yet: start from the newest page.
        if after is not None:
            try:
                after_value = snowflake_key(after)
            except ValueError:
                after_value = 0
            if after_value > 0:
                params["after"] = after_value
        query = urllib.parse.urlencode(params)
        return f"{self._api_base}/channels/{self._channel_id}/messages?{query}"

    def _request(self, url: str) -> Any:
        request = urllib.request.Request(url, method="GET")
        request.add_header("Authorization", f"Bot {self._token}")
        request.add_header("User-Agent", USER_AGENT)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")
            raise TransientFetchError(f"Discord API error {e.code}: {detail}") from e
        except OSError as e:
            raise TransientFetchError(f"Discord API unreachable: {e}") from e
        try:
            return json.loads(body)
        except ValueError as e:
            raise TransientFetchError(f"Discord API returned invalid JSON: {e}") from e

    async def fetch_recent(self, after: Optional[MessageId] = None) -> Sequence[CandidateMessage]:
        """Fetch up to fetch_limit messages; order is whatever Discord returns."""

        url = self._endpoint(after)
        LOGGER.debug("Fetching Discord messages: %s", url)
        payload = await asyncio.to_thread(self._request, url)
        if not isinstance(payload, list):
            raise TransientFetchError("Discord API returned an unexpected payload")

        messages: list[CandidateMessage] = []
        for item in payload:
            if not isinstance(item, dict) or not is_forwardable(item):
                continue
            messages.append(build_candidate(item, guild_id=self._server_id))
        LOGGER.info("Fetched %s messages from Discord channel %s", len(messages), self._channel_id)
        return messages
