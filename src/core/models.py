"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional, Union

MessageId = Union[str, int]

# Sentinel used before anything was relayed. Every identifier order maps it
# below any real message id.
ZERO_ID: MessageId = "0"

DEFAULT_MAX_ERRORS = 50


@dataclass(frozen=True)
class CandidateMessage:
    """A message fetched this cycle, not yet known to be new."""

    id: MessageId
    author: str
    body: str
    timestamp: datetime
    source_metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorRecord:
    """One failure kept in the cursor's error log."""

    timestamp: datetime
    message: str


@dataclass
class Cursor:
    """Durable relay position plus run metadata."""

    last_forwarded_id: MessageId = ZERO_ID
    last_check_time: Optional[datetime] = None
    forwarded_total: int = 0
    server_id: Optional[str] = None
    channel_id: Optional[str] = None
    error_log: list[ErrorRecord] = field(default_factory=list)

    def copy(self) -> "Cursor":
        return replace(self, error_log=list(self.error_log))

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with a fixed key order; datetimes as ISO 8601 strings."""

        return {
            "last_forwarded_id": self.last_forwarded_id,
            "last_check_time": self.last_check_time.isoformat() if self.last_check_time else None,
            "forwarded_total": self.forwarded_total,
            "server_id": self.server_id,
            "channel_id": self.channel_id,
            "error_log": [
                {"timestamp": record.timestamp.isoformat(), "message": record.message}
                for record in self.error_log
            ],
        }

    def record_error(
        self,
        timestamp: datetime,
        message: str,
        max_errors: int = DEFAULT_MAX_ERRORS,
    ) -> None:
        """Append a failure, dropping the oldest records beyond max_errors."""

        self.error_log.append(ErrorRecord(timestamp=timestamp, message=message))
        if max_errors >= 0 and len(self.error_log) > max_errors:
            del self.error_log[: len(self.error_log) - max_errors]
