# src/taskdeck/query/cache.py

"""
Report cache.

Entries are keyed by (generation, filter fingerprint, report kind) and never
change once stored. Invalidation is a generation bump: advance() swaps in a
fresh table, so nothing from an older generation can be matched again.

Concurrency:
- one lock guards the table and the in-flight map (both tiny dict operations)
- the computation itself runs outside the lock
- concurrent callers for the same missing key share one Future, so compute_fn
  runs at most once per key

Expiry: `ttl_seconds` (optional) bounds every entry. Results that depend on
the clock (overdue counts, burndown and activity windows) are also bounded by
`time_bound_seconds`, which cannot be switched off.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, TypeVar

from .filters import FilterSpec
from .reports import ReportKind, is_time_dependent

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[int, str, ReportKind]

DEFAULT_TIME_BOUND_SECONDS = 60.0
MIN_TIME_BOUND_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: Any
    generation: int
    computed_at: float  # wall clock (time.time()), shown to the user
    computed_mono: float  # monotonic, used for TTL checks
    time_dependent: bool = False


@dataclass(frozen=True, slots=True)
class CacheStats:
    generation: int
    entries: int
    in_flight: int
    hits: int
    misses: int
    computations: int


def make_key(generation: int, spec: FilterSpec, kind: ReportKind) -> CacheKey:
    return (int(generation), spec.fingerprint(), ReportKind(kind))


class ReportCache:
    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        time_bound_seconds: float = DEFAULT_TIME_BOUND_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else None
        self._time_bound = max(MIN_TIME_BOUND_SECONDS, float(time_bound_seconds))
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._generation = 0
        self._table: dict[CacheKey, CacheEntry] = {}
        self._in_flight: dict[CacheKey, Future] = {}
        self._hits = 0
        self._misses = 0
        self._computations = 0

    @property
    def generation(self) -> int:
        return self._generation

    def advance(self, generation: int) -> None:
        """Drop every entry from older generations (by replacing the table)."""
        with self._lock:
            self._advance_locked(int(generation))

    def _advance_locked(self, generation: int) -> None:
        if generation <= self._generation:
            return
        dropped = len(self._table)
        self._generation = generation
        self._table = {}
        logger.debug("Report cache advanced to generation=%s (dropped %s entries)", generation, dropped)

    def _fresh_locked(self, key: CacheKey) -> CacheEntry | None:
        entry = self._table.get(key)
        if entry is None:
            return None
        limit = self._ttl
        if entry.time_dependent:
            limit = self._time_bound if limit is None else min(limit, self._time_bound)
        if limit is not None and self._monotonic() - entry.computed_mono >= limit:
            return None
        return entry

    def peek(self, generation: int, spec: FilterSpec, kind: ReportKind) -> CacheEntry | None:
        """Stored entry for the key if present and fresh; never computes."""
        key = make_key(generation, spec, kind)
        with self._lock:
            return self._fresh_locked(key)

    def pending(self, generation: int, spec: FilterSpec, kind: ReportKind) -> Future | None:
        key = make_key(generation, spec, kind)
        with self._lock:
            return self._in_flight.get(key)

    def get_or_compute(
        self,
        generation: int,
        spec: FilterSpec,
        kind: ReportKind,
        compute_fn: Callable[[], T],
    ) -> T:
        return self.get_or_compute_entry(generation, spec, kind, compute_fn).value

    def get_or_compute_entry(
        self,
        generation: int,
        spec: FilterSpec,
        kind: ReportKind,
        compute_fn: Callable[[], Any],
    ) -> CacheEntry:
        key = make_key(generation, spec, kind)

        with self._lock:
            # A caller that already saw a newer generation moves the cache forward.
            self._advance_locked(key[0])

            entry = self._fresh_locked(key)
            if entry is not None:
                self._hits += 1
                logger.debug("Cache hit kind=%s generation=%s", key[2].value, key[0])
                return entry

            fut = self._in_flight.get(key)
            owner = fut is None
            if owner:
                fut = Future()
                fut.set_running_or_notify_cancel()
                self._in_flight[key] = fut
                self._misses += 1

        if not owner:
            logger.debug("Cache wait kind=%s generation=%s (computation in flight)", key[2].value, key[0])
            return fut.result()

        try:
            value = compute_fn()
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            fut.set_exception(exc)
            raise

        entry = CacheEntry(
            value=value,
            generation=key[0],
            computed_at=time.time(),
            computed_mono=self._monotonic(),
            time_dependent=is_time_dependent(spec, kind),
        )
        with self._lock:
            self._in_flight.pop(key, None)
            self._computations += 1
            # Results for a generation that has since been superseded go back to
            # their callers but are never stored.
            if key[0] == self._generation:
                self._table[key] = entry
        logger.debug("Cache computed kind=%s generation=%s", key[2].value, key[0])
        fut.set_result(entry)
        return entry

    def clear(self) -> None:
        with self._lock:
            self._table = {}

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                generation=self._generation,
                entries=len(self._table),
                in_flight=len(self._in_flight),
                hits=self._hits,
                misses=self._misses,
                computations=self._computations,
            )
