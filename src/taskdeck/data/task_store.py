# src/taskdeck/data/task_store.py

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.errors import ParseFailure, StoreUnavailable
from ..tasks.urgency import estimate_urgency

logger = logging.getLogger(__name__)

# TaskChampion stores every attribute as a string; these are the timestamp keys.
_TS_KEYS = ("entry", "modified", "due", "wait", "scheduled", "start", "end", "until")


class TaskChampionReadStore:
    """
    Read-only view of Taskwarrior 3's TaskChampion SQLite replica.

    Schema (owned by Taskwarrior, never written here):
    - tasks(uuid, data)        data is a JSON object of string -> string
    - working_set(id, uuid)    short display ids of pending tasks

    Tags, dependencies and annotations are flattened into keys
    (tag_<name>, dep_<uuid>, annotation_<epoch>); rows are rebuilt into the
    same shape `task export` produces.

    Thread-safety:
    - each call opens its own read-only SQLite connection
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_data_dir(cls, data_dir: str | Path) -> TaskChampionReadStore:
        return cls(Path(data_dir) / "taskchampion.sqlite3")

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        if not self._db_path.exists():
            raise StoreUnavailable(f"TaskChampion database not found: {self._db_path}")
        try:
            conn = sqlite3.connect(f"file:{self._db_path}?mode=ro", uri=True, timeout=5.0)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _row_to_export(self, uuid: str, data: dict[str, Any], display_id: int | None) -> dict[str, Any]:
        out: dict[str, Any] = {"uuid": uuid}
        tags: list[str] = []
        depends: list[str] = []
        annotations: list[dict[str, str]] = []

        for key, value in data.items():
            if key.startswith("tag_"):
                tags.append(key[4:])
            elif key.startswith("dep_"):
                depends.append(key[4:])
            elif key.startswith("annotation_"):
                annotations.append({"entry": key[len("annotation_"):], "description": str(value)})
            elif key in _TS_KEYS or key in ("description", "status", "project", "priority"):
                out[key] = value

        if tags:
            out["tags"] = sorted(tags)
        if depends:
            out["depends"] = sorted(depends)
        if annotations:
            out["annotations"] = sorted(annotations, key=lambda a: a["entry"])
        if display_id is not None:
            out["id"] = display_id
        try:
            out["urgency"] = estimate_urgency(out, self._clock())
        except ValueError:
            # Unparsable due date; the coordinator rejects the row when it parses it.
            out["urgency"] = 0.0
        return out

    # ---- public API ----

    def fetch_all(self) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT t.uuid AS uuid, t.data AS data, w.id AS display_id
                FROM tasks t
                LEFT JOIN working_set w ON w.uuid = t.uuid
                ORDER BY t.uuid
                """
            )
            rows = cur.fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"TaskChampion query failed: {e}") from e
        finally:
            conn.close()

        out: list[dict[str, Any]] = []
        bad = 0
        for row in rows:
            try:
                data = json.loads(row["data"] or "{}")
            except (TypeError, ValueError):
                data = None
            if not isinstance(data, dict):
                # Keep a bare row so the coordinator counts it as skipped.
                bad += 1
                out.append({"uuid": str(row["uuid"])})
                continue
            display_id = int(row["display_id"]) if row["display_id"] is not None else None
            out.append(self._row_to_export(str(row["uuid"]), data, display_id))

        if rows and bad == len(rows):
            raise ParseFailure(f"no readable task rows in {self._db_path}")

        logger.debug("TaskChampion fetch_all rows=%s db=%s", len(out), self._db_path)
        return out

    def data_version(self) -> float | None:
        """Newest mtime of the database and its WAL file."""
        mtimes = []
        for p in (self._db_path, self._db_path.with_name(self._db_path.name + "-wal")):
            try:
                mtimes.append(p.stat().st_mtime)
            except OSError:
                continue
        return max(mtimes) if mtimes else None
