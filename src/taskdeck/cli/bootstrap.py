# src/taskdeck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete backends (TaskChampion reader, `task` runner, bulk channel,
  sync trigger) into the coordinator, engine and AppState.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from ..config import get_settings
from ..core.engine import TaskEngine
from ..core.ports import ReadStore
from ..core.state import AppState
from ..data.bulk import TaskwarriorBulkChannel
from ..data.command_runner import TaskwarriorCommandRunner
from ..data.coordinator import DataAccessCoordinator
from ..data.sync_trigger import TaskwarriorSyncTrigger
from ..data.task_store import TaskChampionReadStore
from ..query.cache import ReportCache
from ..query.reports import ReportOptions
from ..sync.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)

DEFAULT_TASK_DATA = Path.home() / ".task"


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def build_read_store(settings) -> ReadStore | None:
    if not settings.direct_read_enabled:
        return None
    data_dir = settings.task_data_dir or DEFAULT_TASK_DATA
    store = TaskChampionReadStore.from_data_dir(data_dir)
    if not store.db_path.exists():
        # Taskwarrior 2.x keeps no SQLite replica; reads go straight to `task export`.
        logger.info("No TaskChampion database at %s; direct reads disabled", store.db_path)
        return None
    return store


def build_coordinator(settings) -> DataAccessCoordinator:
    return DataAccessCoordinator(
        read_store=build_read_store(settings),
        command_runner=TaskwarriorCommandRunner(
            task_bin=settings.task_bin,
            taskrc_path=settings.taskrc_path,
            timeout=settings.command_timeout_seconds,
        ),
        bulk_channel=TaskwarriorBulkChannel(
            task_bin=settings.task_bin,
            taskrc_path=settings.taskrc_path,
            timeout=settings.bulk_timeout_seconds,
        ),
        retries=settings.command_retries,
        backoff_seconds=settings.retry_backoff_seconds,
        freshness_threshold_seconds=settings.freshness_threshold_seconds,
    )


def build_engine(settings, coordinator: DataAccessCoordinator | None = None) -> TaskEngine:
    coordinator = coordinator or build_coordinator(settings)

    sync: SyncCoordinator | None = None
    if settings.sync_enabled:
        trigger = TaskwarriorSyncTrigger(
            task_bin=settings.task_bin,
            taskrc_path=settings.taskrc_path,
            timeout=settings.bulk_timeout_seconds,
        )
        sync = SyncCoordinator(trigger, coordinator, interval_seconds=settings.sync_interval_seconds)

    options = ReportOptions(
        burndown_buckets=settings.burndown_buckets,
        activity_window=timedelta(days=settings.activity_window_days),
        activity_limit=settings.activity_limit,
    )
    return TaskEngine(
        coordinator,
        cache=ReportCache(
            ttl_seconds=settings.report_ttl_seconds,
            time_bound_seconds=settings.report_time_bound_seconds,
        ),
        sync=sync,
        options=options,
        max_workers=settings.worker_threads,
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    return AppState(settings=settings, engine=build_engine(settings))
