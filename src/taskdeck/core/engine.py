# src/taskdeck/core/engine.py

"""
Task engine: the facade the console (or any other front-end) talks to.

query():        never blocks. Returns READY with a cached value, or PENDING with
                a Future that resolves to the finished ReportResult.
query_now():    blocking variant for worker threads / one-shot CLI calls.
mutate():       serialised through the data coordinator; when it returns the
                generation has moved and the cache has been advanced, so the
                next query cannot see pre-mutation results.

Slow work runs on a ThreadPoolExecutor owned by the engine.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..data.coordinator import Backend, DataAccessCoordinator, MutationOutcome, TaskSnapshot
from ..query.cache import CacheKey, ReportCache, make_key
from ..query.filters import FilterSpec
from ..query.reports import ReportKind, ReportOptions, compute_report
from ..sync.sync_coordinator import SyncCoordinator
from ..tasks.task_models import TaskRecord
from ..tasks.task_mutations import TaskMutation
from .errors import EngineError, Unavailable

logger = logging.getLogger(__name__)


class ResultStatus(StrEnum):
    READY = "ready"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ReportResult:
    kind: ReportKind
    generation: int
    status: ResultStatus
    value: Any = None
    computed_at: float | None = None
    error: EngineError | None = None
    # Set only for PENDING; resolves to a READY or FAILED ReportResult.
    future: Future | None = None

    @property
    def ready(self) -> bool:
        return self.status is ResultStatus.READY


@dataclass(frozen=True, slots=True)
class SnapshotInfo:
    generation: int
    records: int
    skipped: int
    source: Backend | None
    fetched_at: datetime | None
    stale: bool


class TaskEngine:
    def __init__(
        self,
        coordinator: DataAccessCoordinator,
        *,
        cache: ReportCache | None = None,
        sync: SyncCoordinator | None = None,
        options: ReportOptions | None = None,
        clock: Callable[[], datetime] | None = None,
        max_workers: int = 4,
    ) -> None:
        self._coordinator = coordinator
        self._cache = cache or ReportCache()
        self._sync = sync
        self._options = options or ReportOptions()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._executor = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="taskdeck")

        self._lock = threading.Lock()
        self._pending: dict[CacheKey, Future] = {}
        self._closed = False

        coordinator.add_listener(self._cache.advance)

    @property
    def cache(self) -> ReportCache:
        return self._cache

    @property
    def sync(self) -> SyncCoordinator | None:
        return self._sync

    # ---- snapshot ----

    def current_generation(self) -> int:
        return self._coordinator.current_generation()

    def snapshot(self) -> TaskSnapshot:
        return self._coordinator.snapshot

    def snapshot_info(self) -> SnapshotInfo:
        snap = self._coordinator.snapshot
        return SnapshotInfo(
            generation=snap.generation,
            records=len(snap.records),
            skipped=snap.skipped,
            source=snap.source,
            fetched_at=snap.fetched_at,
            stale=snap.stale,
        )

    def refresh(self) -> SnapshotInfo:
        """Blocking re-read through the backends."""
        self._coordinator.fetch_all()
        return self.snapshot_info()

    def _ensure_loaded(self) -> TaskSnapshot:
        snap = self._coordinator.snapshot
        if snap.source is None:
            snap = self._coordinator.fetch_all()
        return snap

    # ---- queries ----

    def _compute(self, snap: TaskSnapshot, spec: FilterSpec, kind: ReportKind) -> Any:
        return compute_report(kind, snap.records, spec, self._clock(), self._options)

    def query_now(self, spec: FilterSpec, kind: ReportKind) -> ReportResult:
        """Blocking query; raises EngineError (e.g. Unavailable) if no data can be read."""
        snap = self._ensure_loaded()
        entry = self._cache.get_or_compute_entry(
            snap.generation, spec, kind, lambda: self._compute(snap, spec, kind)
        )
        return ReportResult(
            kind=kind,
            generation=snap.generation,
            status=ResultStatus.READY,
            value=entry.value,
            computed_at=entry.computed_at,
        )

    def _resolve(self, spec: FilterSpec, kind: ReportKind) -> ReportResult:
        try:
            return self.query_now(spec, kind)
        except EngineError as e:
            logger.warning("Report %s failed: %s", kind.value, e.message)
            return ReportResult(
                kind=kind,
                generation=self.current_generation(),
                status=ResultStatus.FAILED,
                error=e,
            )

    def query(self, spec: FilterSpec, kind: ReportKind) -> ReportResult:
        snap = self._coordinator.snapshot
        if snap.source is not None:
            entry = self._cache.peek(snap.generation, spec, kind)
            if entry is not None:
                return ReportResult(
                    kind=kind,
                    generation=snap.generation,
                    status=ResultStatus.READY,
                    value=entry.value,
                    computed_at=entry.computed_at,
                )

        key = make_key(snap.generation, spec, kind)
        with self._lock:
            if self._closed:
                return ReportResult(
                    kind=kind,
                    generation=snap.generation,
                    status=ResultStatus.FAILED,
                    error=Unavailable("engine is closed"),
                )
            fut = self._pending.get(key)
            created = fut is None
            if fut is None:
                fut = self._executor.submit(self._resolve, spec, kind)
                self._pending[key] = fut

        if created:
            # Outside the lock: the callback runs inline if the future is already done.
            fut.add_done_callback(lambda _f, k=key: self._forget(k))
        return ReportResult(kind=kind, generation=snap.generation, status=ResultStatus.PENDING, future=fut)

    def _forget(self, key: CacheKey) -> None:
        with self._lock:
            self._pending.pop(key, None)

    async def query_async(self, spec: FilterSpec, kind: ReportKind) -> ReportResult:
        result = self.query(spec, kind)
        if result.future is None:
            return result
        return await asyncio.wrap_future(result.future)

    # ---- mutations ----

    def mutate(self, mutation: TaskMutation) -> MutationOutcome:
        """Apply a mutation; raises MutationFailed. Generation has moved on return."""
        return self._coordinator.apply(mutation)

    async def mutate_async(self, mutation: TaskMutation) -> MutationOutcome:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.mutate, mutation)

    def import_records(self, records: Iterable[TaskRecord]) -> SnapshotInfo:
        self._coordinator.import_records(records)
        return self.snapshot_info()

    def verify(self) -> bool:
        return self._coordinator.verify()

    # ---- sync ----

    def request_sync(self) -> None:
        """Fire-and-forget; with sync disabled this just schedules a re-read."""
        if self._sync is not None:
            self._sync.request_sync()
            return
        with self._lock:
            if self._closed:
                return
            fut = self._executor.submit(self._coordinator.fetch_all)
        fut.add_done_callback(_log_refresh_failure)

    # ---- lifecycle ----

    def close(self) -> None:
        """Drop queued work; wait for whatever is already running (mutations included)."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())
        for fut in pending:
            fut.cancel()
        self._executor.shutdown(wait=True, cancel_futures=True)
        logger.info("Task engine closed")


def _log_refresh_failure(fut: Future) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.warning("Background refresh failed: %s", exc)
