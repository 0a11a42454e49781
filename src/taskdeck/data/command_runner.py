# src/taskdeck/data/command_runner.py

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any

from ..core.errors import CommandNonZeroExit, CommandTimeout, ParseFailure

logger = logging.getLogger(__name__)

# Overrides applied to every invocation: never prompt, never page, JSON arrays on export.
_RC_OVERRIDES = ("rc.confirmation=no", "rc.bulk=0", "rc.json.array=on", "rc.color=off")


def run_task(
    task_bin: str,
    args: list[str],
    *,
    taskrc_path: Path | None = None,
    timeout: float = 10.0,
    stdin: str | None = None,
) -> str:
    """
    Run one `task` invocation and return stripped stdout.

    Raises CommandNonZeroExit (including a missing binary) or CommandTimeout.
    """
    cmd = [task_bin]
    if taskrc_path is not None:
        cmd.append(f"rc:{taskrc_path}")
    cmd.extend(_RC_OVERRIDES)
    cmd.extend(args)

    logger.debug("exec %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeout(f"task {' '.join(args)} timed out after {timeout:.1f}s") from e
    except OSError as e:
        raise CommandNonZeroExit(args, 127, f"cannot run {task_bin}: {e}") from e

    stdout = (proc.stdout or "").strip()
    if proc.returncode != 0:
        raise CommandNonZeroExit(args, proc.returncode, (proc.stderr or "").strip(), stdout)
    return stdout


def parse_export(output: str) -> list[dict[str, Any]]:
    """`task export` output -> list of row dicts (ParseFailure if not a JSON array)."""
    if not output:
        return []
    try:
        data = json.loads(output)
    except ValueError as e:
        raise ParseFailure(f"Failed to parse task export JSON: {e}") from e
    if not isinstance(data, list):
        raise ParseFailure("task export did not return a JSON array")
    return data


class TaskwarriorCommandRunner:
    """Runs `task` subcommands for mutations and for the command read path."""

    def __init__(
        self,
        *,
        task_bin: str = "task",
        taskrc_path: Path | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._task_bin = task_bin
        self._taskrc_path = taskrc_path
        self._timeout = timeout

    def execute(self, args: list[str]) -> str:
        return run_task(self._task_bin, args, taskrc_path=self._taskrc_path, timeout=self._timeout)

    def export(self) -> list[dict[str, Any]]:
        return parse_export(self.execute(["export"]))
