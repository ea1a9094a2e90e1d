"""Telegram client factory for the bridge.

Only used by the "client" delivery method. We explicitly manage the client's
lifecycle (connect/disconnect around the command) so it is obvious when the
session is opened and when it ends.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient

from core.errors import ConfigError


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "discord-bridge" to reuse a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "discord-bridge")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise ConfigError("Missing API_ID or API_HASH in environment")
    try:
        api_id_value = int(api_id)
    except ValueError:
        raise ConfigError("API_ID must be an integer") from None

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, api_id_value, api_hash)


async def connect_authorized(client: TelegramClient) -> None:
    """Connect and require an existing authorized session."""

    await client.connect()
    if not await client.is_user_authorized():
        await client.disconnect()
        raise ConfigError(
            "Telegram session is not authorized; log in with Telethon once to create the .session file"
        )
