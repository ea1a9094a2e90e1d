"""Identifier total orders.

Sources hand the engine a key function instead of raw ids so opaque ids
(Discord snowflakes, "msg_005"-style strings) compare correctly. Key
functions raise ValueError for ids that cannot be placed in the order.
"""

from __future__ import annotations

import re
from typing import Any, Callable

from core.models import MessageId

IdKey = Callable[[MessageId], Any]

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def snowflake_key(message_id: MessageId) -> int:
    """Order decimal integer ids (ints or digit strings) numerically."""

    if isinstance(message_id, bool):
        raise ValueError(f"Not a message id: {message_id!r}")
    if isinstance(message_id, int):
        return message_id
    if isinstance(message_id, str):
        text = message_id.strip()
        if text.isdigit():
            return int(text)
    raise ValueError(f"Not a numeric message id: {message_id!r}")


def numeric_suffix_key(message_id: MessageId) -> int:
    """Order ids by their trailing number, e.g. "msg_005" -> 5."""

    if isinstance(message_id, bool):
        raise ValueError(f"Not a message id: {message_id!r}")
    if isinstance(message_id, int):
        return message_id
    if isinstance(message_id, str):
        match = _TRAILING_DIGITS.search(message_id.strip())
        if match:
            return int(match.group(1))
    raise ValueError(f"Message id has no numeric suffix: {message_id!r}")


ID_ORDERS: dict[str, IdKey] = {
    "snowflake": snowflake_key,
    "numeric_suffix": numeric_suffix_key,
}


def resolve_id_order(name: str) -> IdKey:
    """Return the key function registered under name."""

    try:
        return ID_ORDERS[name]
    except KeyError:
        raise ValueError(f"Unsupported id order: {name}") from None
