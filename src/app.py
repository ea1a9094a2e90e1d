"""Application entry point for the Discord -> Telegram bridge."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.discord_source import DiscordChannelSource
from adapters.json_cursor_store import JSONCursorStore
from adapters.message_formatting import build_formatter
from adapters.telegram_bot_sink import TelegramBotSink
from adapters.telegram_client_sink import TelegramClientSink
from client import build_client, connect_authorized
from core.config import BridgeConfig
from core.errors import ConfigError, PersistenceError
from core.ordering import resolve_id_order
from core.relay import RelayEngine
from core.runner import RESET_CONFIRMATION, Runner, cursor_status, reset_cursor

NAME = "BRIDGE"
FONT = "tarty-1"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: Optional[dict], verbose: bool = False) -> None:
    """Install console/file handlers once per process from the logging section."""

    config = config or {}
    level_name = "DEBUG" if verbose else str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers: list[logging.Handler] = []

    # Test mode always logs to the console, even if logging is disabled.
    if verbose or (config.get("enabled", True) and config.get("console", True)):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if config.get("enabled", True) and file_cfg.get("enabled", False):
        path = settings.resolve_project_path(file_cfg.get("path", "logs/discord-bridge.log"))
        directory = os.path.dirname(path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        except OSError as e:
            # Console logging still works; a broken log file is not fatal.
            print(f"Failed to open log file {path}: {e}", file=sys.stderr)
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=level, handlers=handlers, force=True)


def _build_sink(config: BridgeConfig, telegram_client):
    destination = config.destination
    # Select the delivery adapter based on configuration to keep the core
    # engine independent from delivery details.
    if destination.delivery_method == "bot":
        return TelegramBotSink(
            bot_token=settings.require_secret(destination.bot_token_env),
            format_mode=destination.format,
            thread_id=destination.thread_id,
            disable_web_page_preview=destination.disable_web_page_preview,
        )
    return TelegramClientSink(telegram_client, format_mode=destination.format, thread_id=destination.thread_id)


def build_runner(
    config: BridgeConfig,
    logger: logging.Logger,
    telegram_client=None,
) -> Runner:
    """Wire adapters, engine and runner for one config."""

    store = JSONCursorStore(config.state.path)
    source = DiscordChannelSource(
        token=settings.require_secret(config.source.token_env),
        channel_id=config.source.channel_id,
        server_id=config.source.server_id,
        fetch_limit=config.source.fetch_limit,
        id_key=resolve_id_order(config.source.id_order),
        api_base=config.source.api_base,
    )
    engine = RelayEngine(
        source=source,
        sink=_build_sink(config, telegram_client),
        formatter=build_formatter(config.destination.format, config.destination.delivery_method),
        store=store,
        logger=logger,
    )
    return Runner(engine=engine, store=store, config=config, logger=logger)


async def _relay(config: BridgeConfig, logger: logging.Logger, watch: bool) -> None:
    telegram_client = None
    if config.destination.delivery_method == "client":
        telegram_client = build_client()
        await connect_authorized(telegram_client)
    try:
        runner = build_runner(config, logger, telegram_client)
        if watch:
            await runner.watch()
        else:
            await runner.run_once()
    finally:
        # Explicit lifecycle management makes shutdown behavior obvious.
        if telegram_client is not None:
            await telegram_client.disconnect()


def _run(config_path: str, test: bool, watch: bool) -> int:
    _print_banner()
    settings.ensure_config(config_path)
    config = settings.load_config(config_path)
    _configure_logging(config.logging, verbose=test)
    logger = logging.getLogger("bridge")
    if test:
        logger.info("TEST MODE")
    logger.info("Starting Discord -> Telegram bridge")

    JSONCursorStore(config.state.path).ensure_directory()
    asyncio.run(_relay(config, logger, watch))
    return 0


def _status(config_path: str) -> int:
    store = JSONCursorStore(settings.load_state_config(config_path).path)
    print("\n📊 Discord Bridge Status:")
    print(json.dumps(cursor_status(store), indent=2, ensure_ascii=False))
    return 0


def _reset(config_path: str, force: bool) -> int:
    store = JSONCursorStore(settings.load_state_config(config_path).path)
    if not reset_cursor(store, force=force, logger=logging.getLogger("bridge")):
        print(f"Use {RESET_CONFIRMATION} to confirm")
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="discord-bridge", description="Forward new Discord messages to Telegram")
    parser.add_argument("--config", default=None, help="Path to the JSON config file")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--test", action="store_true", help="Run one cycle with verbose logging")
    mode.add_argument("--status", action="store_true", help="Show the stored relay state")
    mode.add_argument("--reset", action="store_true", help="Reset the relay state (needs --force)")
    mode.add_argument("--watch", action="store_true", help="Run cycles forever on the configured interval")
    parser.add_argument("--force", action="store_true", help="Confirm --reset")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args = build_arg_parser().parse_args(argv)
    config_path = args.config or settings.default_config_path()
    logger = logging.getLogger("bridge")

    try:
        if args.status:
            return _status(config_path)
        if args.reset:
            return _reset(config_path, args.force)
        return _run(config_path, test=args.test, watch=args.watch)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except PersistenceError as e:
        logger.error("State error: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
