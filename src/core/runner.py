"""Runner: thin drivers over the relay engine and the cursor store.

The runner owns cycle serialization and the fixed-interval schedule. It adds
no invariants of its own.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from core.config import BridgeConfig
from core.models import Cursor
from core.ports import CursorStorePort
from core.relay import RelayEngine

LOGGER = logging.getLogger(__name__)

RESET_CONFIRMATION = "--reset --force"


def cursor_status(store: CursorStorePort) -> dict[str, Any]:
    """Read-only snapshot of the persisted cursor."""

    snapshot = store.load().to_json_dict()
    snapshot["state_path"] = str(getattr(store, "path", ""))
    snapshot["state_exists"] = store.exists()
    return snapshot


def reset_cursor(store: CursorStorePort, force: bool = False, logger: Optional[logging.Logger] = None) -> bool:
    """Overwrite the cursor with the default. Without force, touch nothing."""

    logger = logger or LOGGER
    if not force:
        logger.info("Reset not confirmed. Use %s to confirm", RESET_CONFIRMATION)
        return False
    store.save(Cursor())
    logger.warning("State reset to default")
    return True


class Runner:
    """Drives one-off cycles and the interval loop for one engine."""

    def __init__(
        self,
        engine: RelayEngine,
        store: CursorStorePort,
        config: BridgeConfig,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._store = store
        self._config = config
        self._logger = logger or LOGGER
        self._sleep = sleep
        self._monotonic = monotonic
        self._cycle_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    async def run_once(self) -> Cursor:
        """Load the cursor and run one cycle, unless a cycle is in flight."""

        if self._cycle_lock.locked():
            # Two cycles advancing the same cursor would race.
            self._logger.warning("Cycle already running, skipping this trigger")
            return self._store.load()

        async with self._cycle_lock:
            self._logger.info("Starting Discord -> Telegram bridge cycle")
            cursor = self._store.load()
            return await self._engine.run_cycle(self._config, cursor)

    async def watch(self, max_cycles: Optional[int] = None) -> int:
        """Run cycles on the configured interval; returns the cycle count.

        Cycle starts are at least interval_minutes apart, best-effort. Errors
        escaping a cycle are logged and the loop keeps going.
        """

        interval = max(1.0, float(self._config.scheduler.interval_minutes) * 60.0)
        self._logger.info("Watching: one cycle every %s seconds", int(interval))
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            started = self._monotonic()
            cycles += 1
            try:
                await self.run_once()
            except Exception:
                self._logger.exception("Cycle %s crashed", cycles)

            if max_cycles is not None and cycles >= max_cycles:
                break
            remaining = interval - (self._monotonic() - started)
            if remaining > 0:
                await self._sleep(remaining)
        return cycles
