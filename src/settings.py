"""Configuration loading for the bridge.

All user-editable settings (source channel, destination chat, schedule,
state file, logging) live in a single JSON file; secrets stay in the
environment (.env via python-dotenv).
"""

from __future__ import annotations

import copy
import json
import logging
import os
from typing import Any, Optional

from core.config import BridgeConfig, DestinationConfig, SchedulerConfig, SourceConfig, StateConfig
from core.errors import ConfigError
from core.ordering import ID_ORDERS

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Default config location; BRIDGE_CONFIG or --config override it.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config", "discord-bridge.config.json")

DELIVERY_METHODS = ("bot", "client")
FORMAT_MODES = ("markdown", "html", "plain")

# Written on first run so users have something to fill in.
DEFAULT_CONFIG: dict[str, Any] = {
    "discord": {
        "server_id": "YOUR_SERVER_ID",
        "channel_id": "YOUR_CHANNEL_ID",
        "token_env": "DISCORD_TOKEN",
        "fetch_limit": 50,
        "id_order": "snowflake",
    },
    "telegram": {
        "chat_id": "YOUR_CHAT_ID",
        "delivery_method": "bot",
        "bot_token_env": "BOT_API",
        "format": "html",
        "thread_id": None,
        "disable_web_page_preview": True,
    },
    "scheduler": {"interval_minutes": 15},
    "state": {"path": "state/discord-bridge-state.json", "max_errors": 50},
    "logging": {
        "enabled": True,
        "level": "INFO",
        "console": True,
        "file": {
            "enabled": True,
            "path": "logs/discord-bridge.log",
            "max_bytes": 5 * 1024 * 1024,
            "backup_count": 5,
        },
        "redact": {"enabled": True, "patterns": ["DISCORD_TOKEN", "BOT_API", "API_HASH"]},
    },
}


def default_config_path() -> str:
    return os.getenv("BRIDGE_CONFIG") or CONFIG_PATH


def resolve_project_path(path: str) -> str:
    """Relative paths in the config are anchored at the project root."""

    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def ensure_config(path: str) -> bool:
    """Create the config file with placeholders if absent; True when created."""

    if os.path.exists(path):
        return False
    directory = os.path.dirname(path)
    try:
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(DEFAULT_CONFIG, handle, indent=2)
            handle.write("\n")
    except OSError as e:
        raise ConfigError(f"Cannot create config at {path}: {e}") from e
    LOGGER.warning("Config created at %s. Please fill in your settings!", path)
    return True


def _load_json_config(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return raw


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be an object")
    return value


def _numeric_id(value: Any, where: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text.lstrip("-").isdigit():
        raise ConfigError(f"{where} must be a numeric id, got {value!r}")
    return text


def _positive_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{where} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{where} must be a positive integer") from None
    if number <= 0:
        raise ConfigError(f"{where} must be a positive integer")
    return number


def _parse_source(discord: dict[str, Any]) -> SourceConfig:
    id_order = str(discord.get("id_order", "snowflake"))
    if id_order not in ID_ORDERS:
        raise ConfigError(f"discord.id_order must be one of {sorted(ID_ORDERS)}")
    server_id = discord.get("server_id")
    return SourceConfig(
        server_id=_numeric_id(server_id, "discord.server_id") if server_id not in (None, "") else None,
        channel_id=_numeric_id(discord.get("channel_id"), "discord.channel_id"),
        token_env=str(discord.get("token_env") or "DISCORD_TOKEN"),
        fetch_limit=min(100, _positive_int(discord.get("fetch_limit", 50), "discord.fetch_limit")),
        id_order=id_order,
        api_base=str(discord.get("api_base") or "https://discord.com/api/v10"),
    )


def _parse_destination(telegram: dict[str, Any]) -> DestinationConfig:
    method = str(telegram.get("delivery_method", "bot"))
    if method not in DELIVERY_METHODS:
        raise ConfigError("telegram.delivery_method must be 'bot' or 'client'")

    fmt = str(telegram.get("format", "html" if method == "bot" else "markdown"))
    if fmt not in FORMAT_MODES:
        raise ConfigError(f"telegram.format must be one of {list(FORMAT_MODES)}")

    chat_id = telegram.get("chat_id")
    if method == "client" and chat_id in (None, "", "me"):
        # Saved Messages of the logged-in user.
        chat_id = "me"
    elif isinstance(chat_id, str) and chat_id.startswith("@"):
        pass
    else:
        chat_id = _numeric_id(chat_id, "telegram.chat_id")

    thread_id = telegram.get("thread_id")
    return DestinationConfig(
        chat_id=str(chat_id),
        delivery_method=method,
        bot_token_env=str(telegram.get("bot_token_env") or "BOT_API"),
        format=fmt,
        thread_id=_positive_int(thread_id, "telegram.thread_id") if thread_id is not None else None,
        disable_web_page_preview=bool(telegram.get("disable_web_page_preview", True)),
    )


def _parse_scheduler(scheduler: dict[str, Any]) -> SchedulerConfig:
    interval = scheduler.get("interval_minutes", 15)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigError("scheduler.interval_minutes must be a positive number")
    return SchedulerConfig(interval_minutes=interval)


def _parse_state(state: dict[str, Any]) -> StateConfig:
    path = str(state.get("path") or "state/discord-bridge-state.json")
    max_errors = state.get("max_errors", 50)
    if isinstance(max_errors, bool) or not isinstance(max_errors, int) or max_errors < 0:
        raise ConfigError("state.max_errors must be a non-negative integer")
    return StateConfig(path=resolve_project_path(path), max_errors=max_errors)


def load_config(path: Optional[str] = None) -> BridgeConfig:
    """Load and validate the config file into core dataclasses."""

    raw = _load_json_config(path or default_config_path())
    logging_cfg = raw.get("logging", {})
    if not isinstance(logging_cfg, dict):
        raise ConfigError("Config section 'logging' must be an object")
    return BridgeConfig(
        source=_parse_source(_section(raw, "discord")),
        destination=_parse_destination(_section(raw, "telegram")),
        scheduler=_parse_scheduler(_section(raw, "scheduler")),
        state=_parse_state(_section(raw, "state")),
        logging=copy.deepcopy(logging_cfg),
    )


def load_state_config(path: Optional[str] = None) -> StateConfig:
    """Parse only the state section, for commands that never run a cycle.

    A missing config file yields the default state location so --status and
    --reset work before the bridge was ever configured.
    """

    config_path = path or default_config_path()
    if not os.path.exists(config_path):
        return _parse_state({})
    return _parse_state(_section(_load_json_config(config_path), "state"))


def require_secret(env_name: str) -> str:
    """Return a secret from the environment or fail with ConfigError."""

    value = os.getenv(env_name)
    if not value:
        raise ConfigError(f"{env_name} is required in the environment")
    return value
