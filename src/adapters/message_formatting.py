"""Shared message formatting helpers.

Keeping formatting here prevents drift between sinks and keeps relayed
messages consistent regardless of delivery channel. Every function is pure:
the same message always renders to the same text.
"""

from __future__ import annotations

import html
from functools import partial
from typing import Callable

from core.models import CandidateMessage

DIVIDER = "━━━━━━━━━━━━━━━━"
TIMESTAMP_FORMAT = "%H:%M:%S %d-%m-%Y"
FORMAT_MODES = ("markdown", "html", "plain")

# Telegram rejects longer texts; it counts UTF-16 code units.
MAX_MESSAGE_LENGTH = 4096
ELLIPSIS = "…"

# Telethon's markdown uses **bold**, the Bot API's legacy Markdown uses *bold*.
MARKDOWN_BOLD = {"client": "**", "bot": "*"}


def _timestamp(message: CandidateMessage) -> str:
    # Rendered in the message's own timezone so output does not depend on the host.
    return message.timestamp.strftime(TIMESTAMP_FORMAT)


def _attachments(message: CandidateMessage) -> list[str]:
    return [str(url) for url in message.source_metadata.get("attachments") or []]


def telegram_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def _format_markdown(message: CandidateMessage, body: str, bold: str = "**") -> str:
    """Create the Markdown body; bold marker depends on the delivery method."""

    def escape_md(value: str) -> str:
        for ch in r"*_[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    lines = [
        f"👤 {bold}{escape_md(message.author)}{bold} · {_timestamp(message)}",
        DIVIDER,
    ]
    if body:
        lines.append(escape_md(body))
    for url in _attachments(message):
        lines.append(f"📎 {url}")
    jump_url = message.source_metadata.get("jump_url")
    if jump_url:
        lines.extend(["", f"[Open in Discord]({jump_url})"])
    return "\n".join(lines)


def _format_html(message: CandidateMessage, body: str) -> str:
    """Create the HTML body used by the Bot API sink."""

    parts = [
        f"👤 <b>{html.escape(message.author)}</b> · {html.escape(_timestamp(message))}",
        DIVIDER,
    ]
    if body:
        parts.append(html.escape(body))
    for url in _attachments(message):
        safe_url = html.escape(url)
        parts.append(f"📎 <a href=\"{safe_url}\">{safe_url}</a>")
    jump_url = message.source_metadata.get("jump_url")
    if jump_url:
        parts.extend(["", f"<a href=\"{html.escape(str(jump_url))}\">Open in Discord</a>"])
    return "\n".join(parts)


def _format_plain(message: CandidateMessage, body: str) -> str:
    lines = [f"👤 {message.author} · {_timestamp(message)}", DIVIDER]
    if body:
        lines.append(body)
    lines.extend(f"📎 {url}" for url in _attachments(message))
    return "\n".join(lines)


def _fit(render: Callable[[str], str], body: str) -> str:
    """Render, cutting the body to the longest prefix that fits one message.

    The body is cut before escaping so no markup or entity is ever split.
    """

    text = render(body)
    if telegram_length(text) <= MAX_MESSAGE_LENGTH:
        return text
    best = render("")
    low, high = 0, len(body)
    while low < high:
        middle = (low + high + 1) // 2
        candidate = render(body[:middle] + ELLIPSIS)
        if telegram_length(candidate) <= MAX_MESSAGE_LENGTH:
            low, best = middle, candidate
        else:
            high = middle - 1
    return best


def format_message(message: CandidateMessage, mode: str = "markdown", delivery_method: str = "client") -> str:
    """Return the message formatted for the requested mode."""

    if mode == "markdown":
        render = partial(_format_markdown, message, bold=MARKDOWN_BOLD.get(delivery_method, "**"))
    elif mode == "html":
        render = partial(_format_html, message)
    elif mode == "plain":
        render = partial(_format_plain, message)
    else:
        raise ValueError(f"Unsupported message format: {mode}")
    return _fit(render, message.body)


def build_formatter(mode: str, delivery_method: str = "client") -> Callable[[CandidateMessage], str]:
    """Bind a mode so the engine can call formatter(message)."""

    if mode not in FORMAT_MODES:
        raise ValueError(f"Unsupported message format: {mode}")
    return partial(format_message, mode=mode, delivery_method=delivery_method)
