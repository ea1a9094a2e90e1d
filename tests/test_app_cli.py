from __future__ import annotations

import copy
import json
import logging

import pytest

import app
import settings
from adapters.json_cursor_store import JSONCursorStore
from core.models import Cursor


@pytest.fixture
def root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class FakeResponse:
    def __init__(self, body: bytes = b"{}") -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        return None


def _write_config(tmp_path) -> tuple[str, str]:
    state_path = str(tmp_path / "state" / "bridge-state.json")
    data = copy.deepcopy(settings.DEFAULT_CONFIG)
    data["discord"].update({"server_id": "111", "channel_id": "222"})
    data["telegram"]["chat_id"] = "-100333"
    data["state"]["path"] = state_path
    data["logging"] = {"enabled": False}
    config_path = tmp_path / "bridge.json"
    config_path.write_text(json.dumps(data), encoding="utf-8")
    return str(config_path), state_path


def test_status_prints_cursor_without_writing(tmp_path, capsys) -> None:
    config_path, state_path = _write_config(tmp_path)
    JSONCursorStore(state_path).save(Cursor(last_forwarded_id="77", forwarded_total=3))
    before = (tmp_path / "state" / "bridge-state.json").read_bytes()

    assert app.main(["--status", "--config", config_path]) == 0

    out = capsys.readouterr().out
    assert '"last_forwarded_id": "77"' in out
    assert '"forwarded_total": 3' in out
    assert (tmp_path / "state" / "bridge-state.json").read_bytes() == before


def test_reset_requires_force(tmp_path, capsys) -> None:
    config_path, state_path = _write_config(tmp_path)
    JSONCursorStore(state_path).save(Cursor(last_forwarded_id="77"))
    before = (tmp_path / "state" / "bridge-state.json").read_bytes()

    assert app.main(["--reset", "--config", config_path]) == 0

    assert "Use --reset --force to confirm" in capsys.readouterr().out
    assert (tmp_path / "state" / "bridge-state.json").read_bytes() == before


def test_reset_with_force(tmp_path) -> None:
    config_path, state_path = _write_config(tmp_path)
    JSONCursorStore(state_path).save(Cursor(last_forwarded_id="77"))

    assert app.main(["--reset", "--force", "--config", config_path]) == 0
    assert JSONCursorStore(state_path).load() == Cursor()


def test_first_run_creates_placeholder_config_and_exits_nonzero(tmp_path) -> None:
    config_path = tmp_path / "config" / "bridge.json"

    assert app.main(["--config", str(config_path)]) == 1
    assert config_path.exists()


def test_missing_secret_is_a_config_error(tmp_path, monkeypatch) -> None:
    config_path, _ = _write_config(tmp_path)
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    monkeypatch.setattr(app, "load_dotenv", lambda: None)

    assert app.main(["--config", config_path]) == 1


def _discord_body() -> bytes:
    return json.dumps(
        [
            {
                "id": str(message_id),
                "type": 0,
                "channel_id": "222",
                "content": f"message {message_id}",
                "timestamp": "2024-01-01T00:00:00+00:00",
                "author": {"id": "1", "username": "ada"},
            }
            for message_id in (1003, 1001, 1002)
        ]
    ).encode("utf-8")


def _install_urlopen(monkeypatch) -> list[dict]:
    discord_body = _discord_body()
    sent: list[dict] = []

    def fake_urlopen(request, timeout=None):
        if "discord.com" in request.full_url:
            return FakeResponse(discord_body)
        sent.append(json.loads(request.data.decode("utf-8")))
        return FakeResponse()

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    return sent


def test_run_relays_new_messages_and_persists(tmp_path, monkeypatch, root_logging) -> None:
    config_path, state_path = _write_config(tmp_path)
    monkeypatch.setenv("DISCORD_TOKEN", "discord-token")
    monkeypatch.setenv("BOT_API", "bot-token")
    sent = _install_urlopen(monkeypatch)

    assert app.main(["--config", config_path]) == 0

    bodies = [
        next(line for line in payload["text"].split("\n") if line.startswith("message "))
        for payload in sent
    ]
    assert bodies == [
        "message 1001",
        "message 1002",
        "message 1003",
    ]
    assert all(payload["chat_id"] == "-100333" for payload in sent)
    cursor = JSONCursorStore(state_path).load()
    assert cursor.last_forwarded_id == "1003"
    assert cursor.forwarded_total == 3
    assert cursor.channel_id == "222"
    assert cursor.last_check_time is not None


def test_test_mode_logs_debug_to_console(tmp_path, monkeypatch, capsys, root_logging) -> None:
    config_path, _ = _write_config(tmp_path)
    monkeypatch.setenv("DISCORD_TOKEN", "discord-token")
    monkeypatch.setenv("BOT_API", "bot-token")
    _install_urlopen(monkeypatch)

    assert app.main(["--test", "--config", config_path]) == 0

    err = capsys.readouterr().err
    assert "TEST MODE" in err
    assert "DEBUG adapters.telegram_bot_sink: Message delivered to Telegram chat -100333" in err
    assert root_logging.level == logging.DEBUG


def test_test_mode_attaches_console_even_when_logging_disabled(root_logging) -> None:
    app._configure_logging({"enabled": False}, verbose=True)

    consoles = [h for h in root_logging.handlers if type(h) is logging.StreamHandler]
    assert len(consoles) == 1
    assert consoles[0].level == logging.DEBUG


def test_disabled_logging_installs_only_a_null_handler(root_logging) -> None:
    app._configure_logging({"enabled": False})

    assert [type(h) for h in root_logging.handlers] == [logging.NullHandler]


def test_redacting_formatter_masks_secret_values(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "discord-secret")
    monkeypatch.setenv("BOT_API", "123:bot-secret")
    monkeypatch.delenv("API_HASH", raising=False)
    secrets = app._collect_redaction_values(settings.DEFAULT_CONFIG["logging"])
    formatter = app._RedactingFormatter(secrets, fmt="%(message)s")
    record = logging.LogRecord(
        "bridge", logging.INFO, __file__, 1, "GET with %s then POST /bot%s", ("discord-secret", "123:bot-secret"), None
    )

    assert formatter.format(record) == "GET with *** then POST /bot***"


def test_redaction_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "discord-secret")

    assert app._collect_redaction_values({"redact": {"enabled": False, "patterns": ["DISCORD_TOKEN"]}}) == []
