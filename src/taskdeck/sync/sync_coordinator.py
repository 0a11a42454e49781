# src/taskdeck/sync/sync_coordinator.py

from __future__ import annotations

"""
Sync coordinator.

A small polling loop that:
- waits for the sync interval or an explicit wake-up,
- runs `task sync` on a worker thread,
- re-reads the record set through the data coordinator (bumping the
  generation only if something changed),
- records the outcome as a SyncStatus instead of raising.

To stop it, cancel the coroutine/task. A sync already running on a worker
thread finishes in the background and its result is dropped.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum

from ..core.errors import BackendError, EngineError, SyncFailed
from ..core.ports import SyncTrigger
from ..data.coordinator import DataAccessCoordinator

logger = logging.getLogger(__name__)


class SyncState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    OK = "ok"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class SyncStatus:
    state: SyncState = SyncState.IDLE
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error: SyncFailed | None = None
    consecutive_failures: int = 0
    generation: int | None = None


class SyncCoordinator:
    def __init__(
        self,
        trigger: SyncTrigger,
        coordinator: DataAccessCoordinator,
        *,
        interval_seconds: float = 300.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._trigger = trigger
        self._coordinator = coordinator
        self._interval = max(1.0, float(interval_seconds))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.Lock()
        self._in_flight = False
        self._requested = False
        self._status = SyncStatus()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake: asyncio.Event | None = None

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def request_sync(self) -> None:
        """
        Ask for a sync as soon as possible.

        Safe to call from any thread. A request made while a sync is running
        is dropped (that sync will pick up the same remote state); requests
        made before run() starts are remembered in a single slot.
        """
        with self._lock:
            if self._in_flight:
                logger.debug("Sync already running; request coalesced")
                return
            self._requested = True
            loop, wake = self._loop, self._wake

        if loop is not None and wake is not None and not loop.is_closed():
            loop.call_soon_threadsafe(wake.set)

    async def sync_once(self) -> SyncStatus:
        with self._lock:
            if self._in_flight:
                return self._status
            self._in_flight = True
            self._requested = False

        started = self._clock()
        self._status = replace(self._status, state=SyncState.RUNNING, last_attempt_at=started)
        try:
            error = await asyncio.to_thread(self._sync_blocking)
        finally:
            with self._lock:
                self._in_flight = False

        if error is None:
            self._status = SyncStatus(
                state=SyncState.OK,
                last_attempt_at=started,
                last_success_at=self._clock(),
                generation=self._coordinator.current_generation(),
            )
        else:
            failures = self._status.consecutive_failures + 1
            logger.warning("Sync failed (%s in a row): %s", failures, error.message)
            self._status = replace(
                self._status,
                state=SyncState.FAILED,
                last_error=error,
                consecutive_failures=failures,
            )
        return self._status

    def _sync_blocking(self) -> SyncFailed | None:
        try:
            self._trigger.run()
        except BackendError as e:
            return SyncFailed(f"{type(e).__name__}: {e}")
        try:
            snap = self._coordinator.fetch_all()
        except EngineError as e:
            return SyncFailed(f"sync ran but re-read failed: {e.message}")
        logger.info("Sync done (generation=%s, records=%s)", snap.generation, len(snap.records))
        return None

    async def run(self) -> None:
        """Loop forever: wait for the interval or a wake-up, then sync once."""
        wake = asyncio.Event()
        with self._lock:
            self._loop = asyncio.get_running_loop()
            self._wake = wake
            if self._requested:
                wake.set()

        logger.info("Sync loop started (interval=%.0fs)", self._interval)
        try:
            while True:
                try:
                    await asyncio.wait_for(wake.wait(), timeout=self._interval)
                except TimeoutError:
                    pass
                wake.clear()
                await self.sync_once()
        finally:
            with self._lock:
                self._loop = None
                self._wake = None
            logger.info("Sync loop stopped")
