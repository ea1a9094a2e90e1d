"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class SourceConfig:
    """Discord channel the bridge polls."""

    server_id: Optional[str]
    channel_id: str
    token_env: str = "DISCORD_TOKEN"
    fetch_limit: int = 50
    id_order: str = "snowflake"
    api_base: str = "https://discord.com/api/v10"


@dataclass(frozen=True)
class DestinationConfig:
    """Telegram chat that receives relayed messages."""

    chat_id: str
    delivery_method: str = "bot"
    bot_token_env: str = "BOT_API"
    format: str = "html"
    thread_id: Optional[int] = None
    disable_web_page_preview: bool = True


@dataclass(frozen=True)
class SchedulerConfig:
    interval_minutes: float = 15


@dataclass(frozen=True)
class StateConfig:
    path: str
    max_errors: int = 50


@dataclass(frozen=True)
class BridgeConfig:
    """Complete bridge configuration, read-only to the core."""

    source: SourceConfig
    destination: DestinationConfig
    scheduler: SchedulerConfig
    state: StateConfig
    logging: dict[str, Any] = field(default_factory=dict)
