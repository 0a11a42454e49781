# src/taskdeck/data/bulk.py

"""
Bulk export/import channels.

- TaskwarriorBulkChannel: full `task export` / `task import` with a long timeout,
  used when the coordinator needs an authoritative full copy.
- JsonFileBulkChannel: a JSON array on disk (backups, offline demos, tests).

write_export() dumps records to JSON or CSV for the console's /export command.
"""

from __future__ import annotations

import contextlib
import csv
import json
import logging
import os
from collections.abc import Iterable
from enum import StrEnum
from pathlib import Path
from typing import Any

from ..core.errors import ParseFailure, StoreUnavailable
from ..tasks.task_models import Priority, TaskRecord
from .command_runner import parse_export, run_task

logger = logging.getLogger(__name__)


class TaskwarriorBulkChannel:
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

    def export(self) -> list[dict[str, Any]]:
        out = run_task(self._task_bin, ["export"], taskrc_path=self._taskrc_path, timeout=self._timeout)
        return parse_export(out)

    def import_(self, rows: list[dict[str, Any]]) -> None:
        payload = json.dumps(rows, ensure_ascii=False)
        run_task(
            self._task_bin,
            ["import", "-"],
            taskrc_path=self._taskrc_path,
            timeout=self._timeout,
            stdin=payload,
        )
        logger.info("Imported %s task(s) through task import", len(rows))


class JsonFileBulkChannel:
    """A JSON array of export rows kept in one file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def export(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            raise StoreUnavailable(f"bulk file not found: {self._path}")
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except OSError as e:
            raise StoreUnavailable(f"cannot read {self._path}: {e}") from e
        except ValueError as e:
            raise ParseFailure(f"bad JSON in {self._path}: {e}") from e
        if not isinstance(data, list):
            raise ParseFailure(f"{self._path} does not hold a JSON array")
        return data

    def import_(self, rows: list[dict[str, Any]]) -> None:
        """Merge rows by uuid (imported rows win) and rewrite the file atomically."""
        existing: list[dict[str, Any]] = []
        if self._path.exists():
            existing = self.export()
        merged: dict[str, dict[str, Any]] = {}
        for row in [*existing, *rows]:
            uuid = row.get("uuid") if isinstance(row, dict) else None
            if uuid:
                merged[str(uuid)] = row
        _atomic_write(self._path, json.dumps(list(merged.values()), ensure_ascii=False, indent=2))


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"


_CSV_HEADER = ["id", "uuid", "status", "description", "project", "priority", "due", "tags"]


def write_export(records: Iterable[TaskRecord], path: str | Path, fmt: ExportFormat) -> int:
    """Write records to `path`; returns how many were written."""
    path = Path(path)
    rows = list(records)

    if fmt is ExportFormat.JSON:
        _atomic_write(path, json.dumps([r.to_json() for r in rows], ensure_ascii=False, indent=2))
        return len(rows)

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(_CSV_HEADER)
        for r in rows:
            writer.writerow(
                [
                    r.id if r.id is not None else "",
                    r.uuid,
                    r.status.value,
                    r.description,
                    r.project or "",
                    r.priority.value if r.priority is not Priority.NONE else "",
                    r.due.date().isoformat() if r.due else "",
                    ";".join(sorted(r.tags)),
                ]
            )
    return len(rows)


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        os.chmod(path, 0o600)
