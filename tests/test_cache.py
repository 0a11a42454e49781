# tests/test_cache.py

from __future__ import annotations

import threading
import time

import pytest

from taskdeck.query.cache import ReportCache
from taskdeck.query.filters import FilterSpec
from taskdeck.query.reports import ReportKind

SPEC = FilterSpec.default_view()


class Counter:
    def __init__(self, value="v", delay: float = 0.0) -> None:
        self.calls = 0
        self.value = value
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.value


def test_same_key_computes_once() -> None:
    cache = ReportCache()
    fn = Counter()
    assert cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn) == "v"
    assert cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn) == "v"
    assert fn.calls == 1
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.computations) == (1, 1, 1)


def test_equal_specs_share_an_entry_and_kinds_do_not() -> None:
    cache = ReportCache()
    fn = Counter()
    cache.get_or_compute(0, FilterSpec(tags=frozenset({"a", "b"})), ReportKind.SUMMARY, fn)
    cache.get_or_compute(0, FilterSpec(tags=frozenset({"b", "a"})), ReportKind.SUMMARY, fn)
    assert fn.calls == 1
    cache.get_or_compute(0, FilterSpec(tags=frozenset({"a", "b"})), ReportKind.PROJECTS, fn)
    assert fn.calls == 2


def test_concurrent_callers_share_one_computation() -> None:
    cache = ReportCache()
    fn = Counter(delay=0.2)
    results: list[object] = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(cache.get_or_compute(1, SPEC, ReportKind.BURNDOWN, fn))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert fn.calls == 1
    assert results == ["v"] * 8


def test_advance_drops_old_generation() -> None:
    cache = ReportCache()
    fn = Counter()
    cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn)
    cache.advance(1)
    assert cache.peek(0, SPEC, ReportKind.SUMMARY) is None
    cache.get_or_compute(1, SPEC, ReportKind.SUMMARY, fn)
    assert fn.calls == 2
    assert cache.stats().entries == 1


def test_result_for_superseded_generation_is_not_stored() -> None:
    cache = ReportCache()

    def compute_then_bump():
        cache.advance(5)
        return "late"

    assert cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, compute_then_bump) == "late"
    assert cache.stats().entries == 0


def test_failed_computation_is_not_cached() -> None:
    cache = ReportCache()

    def boom():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, boom)

    fn = Counter("ok")
    assert cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn) == "ok"
    assert fn.calls == 1
    assert cache.stats().in_flight == 0


def test_ttl_expires_entries() -> None:
    clock = {"t": 100.0}
    cache = ReportCache(ttl_seconds=10, monotonic=lambda: clock["t"])
    fn = Counter()

    cache.get_or_compute(0, SPEC, ReportKind.RECENT_ACTIVITY, fn)
    clock["t"] += 9
    cache.get_or_compute(0, SPEC, ReportKind.RECENT_ACTIVITY, fn)
    assert fn.calls == 1

    clock["t"] += 2
    assert cache.peek(0, SPEC, ReportKind.RECENT_ACTIVITY) is None
    cache.get_or_compute(0, SPEC, ReportKind.RECENT_ACTIVITY, fn)
    assert fn.calls == 2


def test_time_dependent_reports_expire_without_a_ttl() -> None:
    clock = {"t": 0.0}
    cache = ReportCache(ttl_seconds=0, time_bound_seconds=30, monotonic=lambda: clock["t"])
    fn = Counter()
    cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn)
    cache.get_or_compute(0, SPEC, ReportKind.TASK_LIST, fn)

    clock["t"] += 29
    cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn)
    assert fn.calls == 2

    clock["t"] += 10_000
    cache.get_or_compute(0, SPEC, ReportKind.SUMMARY, fn)
    assert fn.calls == 3
    # A plain list does not read the clock: only a TTL would expire it.
    cache.get_or_compute(0, SPEC, ReportKind.TASK_LIST, fn)
    assert fn.calls == 3


def test_time_bound_cannot_be_disabled() -> None:
    clock = {"t": 0.0}
    cache = ReportCache(time_bound_seconds=0, monotonic=lambda: clock["t"])
    fn = Counter()
    cache.get_or_compute(0, SPEC, ReportKind.BURNDOWN, fn)
    clock["t"] += 1
    assert cache.peek(0, SPEC, ReportKind.BURNDOWN) is None
