"""JSON file cursor store.

Implements the core CursorStorePort with a single human-readable JSON file.
Writes go through a sibling temp file and os.replace so a crash mid-write
never leaves a file that load() cannot parse.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from core.errors import PersistenceError
from core.models import ZERO_ID, Cursor, ErrorRecord

LOGGER = logging.getLogger(__name__)


def _parse_datetime(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _parse_error_log(raw: Any) -> list[ErrorRecord]:
    if not isinstance(raw, list):
        LOGGER.warning("Ignoring malformed error_log in state file")
        return []
    records: list[ErrorRecord] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        # Older state files used "error" for the message text.
        message = entry.get("message", entry.get("error"))
        timestamp = entry.get("timestamp")
        if not isinstance(message, str) or not isinstance(timestamp, str):
            continue
        try:
            records.append(ErrorRecord(timestamp=_parse_datetime(timestamp), message=message))
        except ValueError:
            continue
    return records


# Key names used by state files written before the current layout.
LEGACY_KEYS = {
    "last_message_id": "last_forwarded_id",
    "last_check": "last_check_time",
    "message_count_forwarded": "forwarded_total",
    "errors": "error_log",
}


def cursor_from_dict(raw: dict[str, Any]) -> Cursor:
    """Build a Cursor, falling back to defaults key by key."""

    raw = dict(raw)
    for old_key, new_key in LEGACY_KEYS.items():
        if old_key in raw and new_key not in raw:
            raw[new_key] = raw.pop(old_key)

    cursor = Cursor()

    last_id = raw.get("last_forwarded_id", ZERO_ID)
    if isinstance(last_id, (str, int)) and not isinstance(last_id, bool):
        cursor.last_forwarded_id = last_id
    else:
        LOGGER.warning("Ignoring malformed last_forwarded_id %r", last_id)

    last_check = raw.get("last_check_time")
    if isinstance(last_check, str):
        try:
            cursor.last_check_time = _parse_datetime(last_check)
        except ValueError:
            LOGGER.warning("Ignoring malformed last_check_time %r", last_check)

    total = raw.get("forwarded_total", 0)
    if isinstance(total, int) and not isinstance(total, bool) and total >= 0:
        cursor.forwarded_total = total
    else:
        LOGGER.warning("Ignoring malformed forwarded_total %r", total)

    for key in ("server_id", "channel_id"):
        value = raw.get(key)
        if value is not None:
            setattr(cursor, key, str(value))

    if "error_log" in raw:
        cursor.error_log = _parse_error_log(raw["error_log"])
    return cursor


def dump_cursor(cursor: Cursor) -> str:
    """Stable serialization: fixed key order, two-space indent, newline."""

    return json.dumps(cursor.to_json_dict(), indent=2, ensure_ascii=False) + "\n"


class JSONCursorStore:
    """Cursor persistence backed by one JSON file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def ensure_directory(self) -> None:
        """Create the state directory; raises PersistenceError if impossible."""

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create state directory {self.path.parent}: {e}") from e

    def load(self) -> Cursor:
        """Return the stored cursor, or the default when missing or corrupt."""

        if not self.path.exists():
            return Cursor()
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError) as e:
            LOGGER.error("Failed to load state from %s: %s", self.path, e)
            return Cursor()
        if not isinstance(raw, dict):
            LOGGER.error("Failed to load state from %s: expected a JSON object", self.path)
            return Cursor()
        return cursor_from_dict(raw)

    def save(self, cursor: Cursor) -> None:
        """Atomically write the cursor (temp file, fsync, rename)."""

        serialized = dump_cursor(cursor)
        temp_path = self.path.with_name(f"{self.path.name}.tmp")
        fd: Optional[int] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
            with os.fdopen(fd, "w", encoding="utf-8") as stream:
                fd = None
                stream.write(serialized)
                stream.flush()
                os.fsync(stream.fileno())
            os.replace(temp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not persist state at '{self.path}': {e}") from e
        finally:
            if fd is not None:
                os.close(fd)
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    LOGGER.warning("Could not remove temp state file %s", temp_path)
