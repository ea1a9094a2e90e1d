from __future__ import annotations

import asyncio
import io
import json
import urllib.error
from datetime import datetime, timezone

import pytest

from adapters.discord_mapper import build_candidate, is_forwardable, parse_discord_timestamp
from adapters.discord_source import DiscordChannelSource
from core.errors import TransientFetchError


def _payload(message_id: str, **overrides) -> dict:
    payload = {
        "id": message_id,
        "type": 0,
        "channel_id": "222",
        "content": f"hello {message_id}",
        "timestamp": "2024-02-03T04:05:06.789000+00:00",
        "author": {"id": "333", "username": "ferris", "global_name": "Ferris", "avatar": "abc"},
        "attachments": [{"url": "https://cdn.discordapp.com/attachments/x.png", "filename": "x.png"}],
    }
    payload.update(overrides)
    return payload


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        return None


def _install_urlopen(monkeypatch, body=None, error: Exception = None) -> list:
    requests: list = []

    def fake_urlopen(request, timeout=None):
        requests.append(request)
        if error is not None:
            raise error
        return FakeResponse(body)

    monkeypatch.setattr("adapters.discord_source.urllib.request.urlopen", fake_urlopen)
    return requests


def test_build_candidate_maps_discord_fields() -> None:
    candidate = build_candidate(_payload("1001"), guild_id="111")

    assert candidate.id == "1001"
    assert candidate.author == "Ferris"
    assert candidate.body == "hello 1001"
    assert candidate.timestamp == datetime(2024, 2, 3, 4, 5, 6, 789000, tzinfo=timezone.utc)
    assert candidate.source_metadata["jump_url"] == "https://discord.com/channels/111/222/1001"
    assert candidate.source_metadata["avatar_url"] == "https://cdn.discordapp.com/avatars/333/abc.png"
    assert candidate.source_metadata["attachments"] == ["https://cdn.discordapp.com/attachments/x.png"]


def test_build_candidate_falls_back_to_username_and_dm_link() -> None:
    payload = _payload("5", author={"id": "9", "username": "plain"}, attachments=[])
    candidate = build_candidate(payload)

    assert candidate.author == "plain"
    assert candidate.source_metadata["avatar_url"] is None
    assert candidate.source_metadata["jump_url"] == "https://discord.com/channels/@me/222/5"


def test_system_messages_are_not_forwardable() -> None:
    assert is_forwardable(_payload("1"))
    assert not is_forwardable(_payload("1", type=7, attachments=[]))
    assert is_forwardable(_payload("1", type=7))


def test_parse_discord_timestamp_handles_garbage() -> None:
    assert parse_discord_timestamp("nope") == datetime.fromtimestamp(0, tz=timezone.utc)
    assert parse_discord_timestamp(None) == datetime.fromtimestamp(0, tz=timezone.utc)


def test_fetch_recent_requests_channel_messages(monkeypatch) -> None:
    body = json.dumps([_payload("1003"), _payload("1002", type=7, attachments=[]), _payload("1001")])
    requests = _install_urlopen(monkeypatch, body.encode("utf-8"))
    source = DiscordChannelSource(token="tok", channel_id="222", server_id="111", fetch_limit=20)

    messages = asyncio.run(source.fetch_recent())

    assert [m.id for m in messages] == ["1003", "1001"]
    request = requests[0]
    assert request.full_url == "https://discord.com/api/v10/channels/222/messages?limit=20"
    assert request.get_header("Authorization") == "Bot tok"


def test_fetch_recent_passes_cursor_as_after(monkeypatch) -> None:
    requests = _install_urlopen(monkeypatch, b"[]")
    source = DiscordChannelSource(token="tok", channel_id="222")

    asyncio.run(source.fetch_recent(after="1187362119887634432"))
    asyncio.run(source.fetch_recent(after="0"))

    assert requests[0].full_url.endswith("?limit=50&after=1187362119887634432")
    assert requests[1].full_url.endswith("?limit=50")


def test_fetch_limit_is_clamped() -> None:
    source = DiscordChannelSource(token="tok", channel_id="1", fetch_limit=500)
    assert "limit=100" in source._endpoint(None)


def test_http_error_becomes_transient_fetch_error(monkeypatch) -> None:
    error = urllib.error.HTTPError(
        "https://discord.com", 403, "Forbidden", {}, io.BytesIO(b'{"message": "Missing Access"}')
    )
    _install_urlopen(monkeypatch, error=error)
    source = DiscordChannelSource(token="tok", channel_id="222")

    with pytest.raises(TransientFetchError, match="403"):
        asyncio.run(source.fetch_recent())


def test_network_error_becomes_transient_fetch_error(monkeypatch) -> None:
    _install_urlopen(monkeypatch, error=urllib.error.URLError("dns failure"))
    source = DiscordChannelSource(token="tok", channel_id="222")

    with pytest.raises(TransientFetchError, match="unreachable"):
        asyncio.run(source.fetch_recent())


def test_unexpected_payload_becomes_transient_fetch_error(monkeypatch) -> None:
    _install_urlopen(monkeypatch, b'{"message": "rate limited"}')
    source = DiscordChannelSource(token="tok", channel_id="222")

    with pytest.raises(TransientFetchError):
        asyncio.run(source.fetch_recent())


def test_identity_and_id_key() -> None:
    source = DiscordChannelSource(token="tok", channel_id="222", server_id="111")

    assert source.identity() == {"server_id": "111", "channel_id": "222"}
    assert source.id_key("10") > source.id_key("9")
