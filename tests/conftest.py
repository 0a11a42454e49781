# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdeck.core.engine import TaskEngine
from taskdeck.core.state import AppState
from taskdeck.data.coordinator import DataAccessCoordinator
from taskdeck.query.cache import ReportCache

from .fakes import FakeBulkChannel, FakeCommandRunner, FakeReadStore, FakeTaskwarrior, make_row

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the bootstrap and console code.

    A SimpleNamespace rather than real config keeps tests independent of the
    environment.
    """
    return SimpleNamespace(
        app_name="taskdeck-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        task_bin="task",
        taskrc_path=None,
        task_data_dir=tmp_path / "taskdata",
        direct_read_enabled=True,
        command_timeout_seconds=1.0,
        bulk_timeout_seconds=1.0,
        command_retries=2,
        retry_backoff_seconds=0.0,
        freshness_threshold_seconds=2.0,
        sync_enabled=False,
        sync_interval_seconds=60.0,
        report_ttl_seconds=None,
        report_time_bound_seconds=60.0,
        burndown_buckets=30,
        activity_window_days=7,
        activity_limit=50,
        worker_threads=4,
    )


@pytest.fixture()
def db() -> FakeTaskwarrior:
    return FakeTaskwarrior(
        [
            make_row("a", "write report", project="work", priority="H", urgency=8.0),
            make_row("b", "buy milk", tags=["home"], urgency=1.5),
            make_row("c", "old thing", status="completed", end=datetime(2024, 1, 3, tzinfo=timezone.utc)),
        ]
    )


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def coordinator(db: FakeTaskwarrior, sleeps: list[float]) -> DataAccessCoordinator:
    return DataAccessCoordinator(
        read_store=FakeReadStore(db),
        command_runner=FakeCommandRunner(db),
        bulk_channel=FakeBulkChannel(db),
        retries=2,
        backoff_seconds=0.1,
        clock=lambda: NOW,
        wall_time=lambda: 1_000.0,
        sleep=sleeps.append,
    )


@pytest.fixture()
def engine(coordinator: DataAccessCoordinator) -> Iterator[TaskEngine]:
    eng = TaskEngine(coordinator, cache=ReportCache(), clock=lambda: NOW, max_workers=4)
    yield eng
    eng.close()


@pytest.fixture()
def state(settings: SimpleNamespace, engine: TaskEngine) -> AppState:
    return AppState(settings=settings, engine=engine)
