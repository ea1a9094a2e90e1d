"""Core relay engine.

One cycle enforces a strict order:
1) Fetch candidates from the source
2) Keep ids strictly above the cursor, drop ids outside the source's order
3) Sort ascending by id
4) Deliver one by one, advancing the cursor after each success and stopping
   at the first failure
5) Stamp last_check_time and persist the cursor

This module is integration-agnostic. It only relies on ports, so the same
engine runs against Discord/Telegram adapters and the in-memory fakes used
by the tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from core.config import BridgeConfig
from core.errors import DeliveryError, PersistenceError, TransientFetchError
from core.models import ZERO_ID, CandidateMessage, Cursor
from core.ports import CursorStorePort, FormatterPort, SinkPort, SourcePort

LOGGER = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CycleReport:
    """Counters for a single cycle, mainly for logging and tests."""

    fetched: int = 0
    new: int = 0
    forwarded: int = 0
    failed: bool = False
    fetch_error: Optional[str] = None
    persist_error: Optional[str] = None


class RelayEngine:
    """Orchestrates fetch, filter, order, deliver and persist for one cycle."""

    def __init__(
        self,
        source: SourcePort,
        sink: SinkPort,
        formatter: FormatterPort,
        store: CursorStorePort,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._source = source
        self._sink = sink
        self._formatter = formatter
        self._store = store
        self._logger = logger or LOGGER
        self._clock = clock
        self.last_report = CycleReport()

    async def run_cycle(self, config: BridgeConfig, cursor: Cursor) -> Cursor:
        """Run one polling cycle and return the updated cursor.

        The caller's cursor is never mutated. In-cycle failures end up in the
        returned cursor's error_log instead of propagating.
        """

        cursor = cursor.copy()
        max_errors = config.state.max_errors
        destination = config.destination.chat_id

        identity = self._source.identity()
        cursor.server_id = identity.get("server_id") or cursor.server_id
        cursor.channel_id = identity.get("channel_id") or cursor.channel_id

        fetched = 0
        new = 0
        forwarded = 0
        failed = False
        fetch_error: Optional[str] = None

        try:
            candidates = list(await self._source.fetch_recent(after=cursor.last_forwarded_id))
        except TransientFetchError as e:
            fetch_error = str(e)
            candidates = []
        except Exception as e:
            self._logger.exception("Unexpected error while fetching messages")
            fetch_error = f"{type(e).__name__}: {e}"
            candidates = []

        if fetch_error is not None:
            self._logger.warning("Fetch failed, ending cycle quietly: %s", fetch_error)
            cursor.record_error(self._clock(), f"fetch: {fetch_error}", max_errors)
        elif not candidates:
            self._logger.info("No new messages")
        else:
            fetched = len(candidates)
            pending = self._select_new(candidates, cursor)
            new = len(pending)
            if not pending:
                self._logger.info("No new messages since last check")

            # Duplicates survive the filter above, so every delivery re-checks
            # against the cursor as it stands after the previous success.
            current_key = self._cursor_key(cursor)
            for key, message in pending:
                try:
                    duplicate = key <= current_key
                except TypeError:
                    self._logger.warning("Dropping message with incomparable id %r", message.id)
                    continue
                if duplicate:
                    self._logger.debug("Skipping duplicate message id %s", message.id)
                    continue
                try:
                    text = self._formatter(message)
                    await self._sink.deliver(text, destination)
                except DeliveryError as e:
                    failed = True
                    self._record_delivery_failure(cursor, message, str(e), max_errors)
                    break
                except Exception as e:
                    failed = True
                    self._logger.exception("Unexpected error while delivering %s", message.id)
                    self._record_delivery_failure(cursor, message, f"{type(e).__name__}: {e}", max_errors)
                    break

                cursor.last_forwarded_id = message.id
                cursor.forwarded_total += 1
                current_key = key
                forwarded += 1
                self._logger.info("Forwarded message %s from %s", message.id, message.author)

        cursor.last_check_time = self._clock()
        persist_error = self._persist(cursor, max_errors)

        self.last_report = CycleReport(
            fetched=fetched,
            new=new,
            forwarded=forwarded,
            failed=failed,
            fetch_error=fetch_error,
            persist_error=persist_error,
        )
        self._logger.info(
            "Bridge cycle complete: fetched=%s, new=%s, forwarded=%s, halted=%s",
            fetched,
            new,
            forwarded,
            failed,
        )
        return cursor

    def _cursor_key(self, cursor: Cursor) -> Any:
        try:
            return self._source.id_key(cursor.last_forwarded_id)
        except (TypeError, ValueError):
            self._logger.error(
                "Cursor id %r is not comparable, treating it as %r",
                cursor.last_forwarded_id,
                ZERO_ID,
            )
            return self._source.id_key(ZERO_ID)

    def _select_new(
        self, candidates: list[CandidateMessage], cursor: Cursor
    ) -> list[tuple[Any, CandidateMessage]]:
        """Return (key, message) pairs above the cursor, sorted ascending."""

        cursor_key = self._cursor_key(cursor)
        keyed: list[tuple[Any, CandidateMessage]] = []
        for message in candidates:
            try:
                key = self._source.id_key(message.id)
                is_new = key > cursor_key
            except (TypeError, ValueError):
                self._logger.warning("Dropping message with malformed id %r", message.id)
                continue
            if is_new:
                keyed.append((key, message))

        # The source's return order is not trusted; sort is stable for ties.
        try:
            keyed.sort(key=lambda pair: pair[0])
        except TypeError:
            self._logger.warning("Dropping ids not ordered like the cursor id %r", cursor.last_forwarded_id)
            keyed = [pair for pair in keyed if type(pair[0]) is type(cursor_key)]
            keyed.sort(key=lambda pair: pair[0])
        return keyed

    def _record_delivery_failure(
        self, cursor: Cursor, message: CandidateMessage, error: str, max_errors: int
    ) -> None:
        self._logger.error(
            "Failed to forward message %s, halting until next cycle: %s",
            message.id,
            error,
        )
        cursor.record_error(self._clock(), f"deliver {message.id}: {error}", max_errors)

    def _persist(self, cursor: Cursor, max_errors: int) -> Optional[str]:
        try:
            self._store.save(cursor)
        except PersistenceError as e:
            self._logger.error("Failed to save state: %s", e)
            cursor.record_error(self._clock(), f"persist: {e}", max_errors)
            return str(e)
        self._logger.info("State saved: %s messages forwarded", cursor.forwarded_total)
        return None
