# src/taskdeck/data/sync_trigger.py

from __future__ import annotations

import logging
from pathlib import Path

from ..core.errors import AuthFailure, CommandNonZeroExit, NetworkFailure
from .command_runner import run_task

logger = logging.getLogger(__name__)

_AUTH_MARKERS = ("auth", "credential", "unauthorized", "forbidden", "401", "403", "encryption secret")


class TaskwarriorSyncTrigger:
    """Runs `task sync` and classifies failures as auth vs network problems."""

    def __init__(
        self,
        *,
        task_bin: str = "task",
        taskrc_path: Path | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._task_bin = task_bin
        self._taskrc_path = taskrc_path
        self._timeout = timeout

    def run(self) -> None:
        try:
            out = run_task(self._task_bin, ["sync"], taskrc_path=self._taskrc_path, timeout=self._timeout)
        except CommandNonZeroExit as e:
            msg = e.message
            if any(m in msg.lower() for m in _AUTH_MARKERS):
                raise AuthFailure(msg) from e
            raise NetworkFailure(msg) from e
        logger.debug("task sync: %s", out or "(no output)")
