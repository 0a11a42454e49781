# src/taskdeck/config.py

"""Settings for taskdeck, read from TASKDECK_* environment variables.

A local .env (python-dotenv) fills in variables that are not already set.
Reading settings never touches Taskwarrior itself: no `task` calls, no DB opens.
Taskwarrior's own TASKRC / TASKDATA variables are used when the prefixed ones
are absent.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from dotenv import load_dotenv

ENV_PREFIX = "TASKDECK"

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})

N = TypeVar("N", int, float)

load_dotenv(override=False)


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _raw(name: str) -> str | None:
    """Env value with surrounding whitespace removed; blank counts as unset."""
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return v.strip()


def _str(name: str, default: str) -> str:
    v = _raw(name)
    return default if v is None else v


def _flag(name: str, default: bool) -> bool:
    v = _raw(name)
    return default if v is None else v.lower() in _TRUTHY


def _number(name: str, default: N, cast: Callable[[str], N]) -> N:
    """Parse with `cast`; garbage falls back to `default` instead of failing startup."""
    v = _raw(name)
    if v is None:
        return default
    try:
        return cast(v)
    except ValueError:
        return default


def _path(*names: str) -> Path | None:
    """First non-blank variable among `names`, as an expanded Path."""
    for n in names:
        v = _raw(n)
        if v is not None:
            return Path(v).expanduser()
    return None


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Taskwarrior access ----
    task_bin: str
    taskrc_path: Path | None
    task_data_dir: Path | None
    direct_read_enabled: bool

    # ---- Command / bulk backends ----
    command_timeout_seconds: float
    bulk_timeout_seconds: float
    command_retries: int
    retry_backoff_seconds: float
    freshness_threshold_seconds: float

    # ---- Background sync ----
    sync_enabled: bool
    sync_interval_seconds: float

    # ---- Reports / cache ----
    report_ttl_seconds: float | None
    report_time_bound_seconds: float
    burndown_buckets: int
    activity_window_days: int
    activity_limit: int
    worker_threads: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _str(_k("APP_NAME"), "taskdeck")
        log_level = _str(_k("LOG_LEVEL"), "INFO")
        data_dir = _path(_k("DATA_DIR")) or Path(".local/taskdeck")

        task_bin = _str(_k("TASK_BIN"), "task")
        taskrc_path = _path(_k("TASKRC"), "TASKRC")
        task_data_dir = _path(_k("TASKDATA"), "TASKDATA")
        direct_read_enabled = _flag(_k("DIRECT_READ_ENABLED"), True)

        command_timeout_seconds = _number(_k("COMMAND_TIMEOUT_SECONDS"), 10.0, float)
        bulk_timeout_seconds = _number(_k("BULK_TIMEOUT_SECONDS"), 60.0, float)
        command_retries = max(0, _number(_k("COMMAND_RETRIES"), 2, int))
        retry_backoff_seconds = _number(_k("RETRY_BACKOFF_SECONDS"), 0.25, float)
        freshness_threshold_seconds = _number(_k("FRESHNESS_THRESHOLD_SECONDS"), 2.0, float)

        sync_enabled = _flag(_k("SYNC_ENABLED"), False)
        sync_interval_seconds = _number(_k("SYNC_INTERVAL_SECONDS"), 300.0, float)

        # 0 or negative lifts the bound on clock-independent reports (task lists).
        ttl = _number(_k("REPORT_TTL_SECONDS"), 60.0, float)
        report_ttl_seconds = ttl if ttl > 0 else None
        # Reports that read the clock (overdue, burndown, activity) always expire.
        report_time_bound_seconds = max(1.0, _number(_k("REPORT_TIME_BOUND_SECONDS"), 60.0, float))

        burndown_buckets = max(1, _number(_k("BURNDOWN_BUCKETS"), 30, int))
        activity_window_days = max(1, _number(_k("ACTIVITY_WINDOW_DAYS"), 7, int))
        activity_limit = max(1, _number(_k("ACTIVITY_LIMIT"), 50, int))
        worker_threads = max(1, _number(_k("WORKER_THREADS"), 4, int))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            task_bin=task_bin,
            taskrc_path=taskrc_path,
            task_data_dir=task_data_dir,
            direct_read_enabled=direct_read_enabled,
            command_timeout_seconds=command_timeout_seconds,
            bulk_timeout_seconds=bulk_timeout_seconds,
            command_retries=command_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            freshness_threshold_seconds=freshness_threshold_seconds,
            sync_enabled=sync_enabled,
            sync_interval_seconds=sync_interval_seconds,
            report_ttl_seconds=report_ttl_seconds,
            report_time_bound_seconds=report_time_bound_seconds,
            burndown_buckets=burndown_buckets,
            activity_window_days=activity_window_days,
            activity_limit=activity_limit,
            worker_threads=worker_threads,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
