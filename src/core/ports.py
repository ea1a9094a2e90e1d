"""Ports (interfaces) used by the core relay.

Ports define the minimal contracts for the cursor store, the message source
and the delivery sink so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from core.models import CandidateMessage, Cursor, MessageId


class CursorStorePort(Protocol):
    """Durable storage for the relay cursor."""

    def load(self) -> Cursor:
        ...

    def save(self, cursor: Cursor) -> None:
        ...

    def exists(self) -> bool:
        ...


class SourcePort(Protocol):
    """Read side: yields candidate messages and their identifier order."""

    async def fetch_recent(self, after: Optional[MessageId] = None) -> Sequence[CandidateMessage]:
        ...

    def id_key(self, message_id: MessageId) -> Any:
        ...

    def identity(self) -> dict[str, Optional[str]]:
        ...


class SinkPort(Protocol):
    """Write side: delivers one formatted message or raises DeliveryError."""

    async def deliver(self, text: str, destination: str) -> None:
        ...


class FormatterPort(Protocol):
    def __call__(self, message: CandidateMessage) -> str:
        ...
