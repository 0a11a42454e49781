# src/taskdeck/tasks/task_models.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..core.errors import MalformedRecord

_COMPACT_TS = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$")


class TaskStatus(StrEnum):
    """
    Task lifecycle status as exported by Taskwarrior.

    Notes:
    - "recurring" marks recurrence templates; it is kept so such rows are not
      misread as pending.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    DELETED = "deleted"
    WAITING = "waiting"
    RECURRING = "recurring"

    @classmethod
    def from_raw(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.PENDING

    @property
    def is_closed(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.DELETED)


class Priority(StrEnum):
    HIGH = "H"
    MEDIUM = "M"
    LOW = "L"
    NONE = "none"

    @classmethod
    def from_raw(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.NONE
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return cls.NONE

    @property
    def rank(self) -> int:
        """Lower rank sorts first (High=0 ... None=3)."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2, Priority.NONE: 3}


def parse_timestamp(raw: Any) -> datetime | None:
    """
    Parse a timestamp as Taskwarrior hands them out.

    Accepted:
    - compact export form: 20251007T192937Z
    - ISO-8601 / RFC3339 (naive values are taken as UTC)
    - epoch seconds (int/float or digit string; TaskChampion stores these)

    Returns None for empty input; raises ValueError for garbage.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(float(raw), tz=timezone.utc)

    s = str(raw).strip()
    m = _COMPACT_TS.match(s)
    if m:
        y, mo, d, h, mi, sec = (int(g) for g in m.groups())
        return datetime(y, mo, d, h, mi, sec, tzinfo=timezone.utc)

    if s.isdigit():
        return datetime.fromtimestamp(int(s), tz=timezone.utc)

    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Render in Taskwarrior's compact export form."""
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


@dataclass(frozen=True, slots=True)
class Annotation:
    entry: datetime
    description: str


@dataclass(frozen=True, slots=True)
class TaskRecord:
    """
    One task as known to the front-end.

    Records are immutable: a refresh builds new ones. Active / overdue / blocked
    are methods, never fields, since "now" keeps moving under a cached record.
    """

    uuid: str
    description: str
    status: TaskStatus
    entry: datetime

    id: int | None = None
    project: str | None = None
    priority: Priority = Priority.NONE
    tags: frozenset[str] = field(default_factory=frozenset)

    modified: datetime | None = None
    due: datetime | None = None
    wait: datetime | None = None
    scheduled: datetime | None = None
    start: datetime | None = None
    end: datetime | None = None
    until: datetime | None = None

    urgency: float = 0.0
    depends: tuple[str, ...] = ()
    annotations: tuple[Annotation, ...] = ()

    def is_active(self) -> bool:
        return self.start is not None and self.end is None

    def is_overdue(self, now: datetime) -> bool:
        if self.due is None:
            return False
        return self.due < now and not self.status.is_closed

    def is_blocked(self) -> bool:
        return bool(self.depends)

    @property
    def is_open(self) -> bool:
        return self.status in (TaskStatus.PENDING, TaskStatus.WAITING)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> TaskRecord:
        """Build a record from one Taskwarrior export object."""
        if not isinstance(data, dict):
            raise MalformedRecord(f"expected an object, got {type(data).__name__}")

        uuid = data.get("uuid")
        if not isinstance(uuid, str) or not uuid.strip():
            raise MalformedRecord("task uuid is required")
        description = data.get("description")
        if not isinstance(description, str):
            raise MalformedRecord(f"task {uuid}: description is required")

        try:
            entry = parse_timestamp(data.get("entry"))
            ts = {
                name: parse_timestamp(data.get(name))
                for name in ("modified", "due", "wait", "scheduled", "start", "end", "until")
            }
            annotations = tuple(
                Annotation(entry=parse_timestamp(a["entry"]), description=str(a["description"]))
                for a in (data.get("annotations") or [])
                if isinstance(a, dict) and a.get("entry") and "description" in a
            )
        except (ValueError, TypeError, OverflowError) as e:
            raise MalformedRecord(f"task {uuid}: bad timestamp ({e})") from e

        if entry is None:
            # Taskwarrior always stamps entry; fall back to modified rather than "now"
            # so parsing stays deterministic.
            entry = ts["modified"] or datetime.fromtimestamp(0, tz=timezone.utc)

        raw_id = data.get("id")
        display_id = int(raw_id) if isinstance(raw_id, int) and raw_id > 0 else None

        project = data.get("project")
        project = str(project) if project else None

        tags_raw = data.get("tags") or []
        if isinstance(tags_raw, str):
            tags_raw = tags_raw.split(",")
        tags = frozenset(str(t) for t in tags_raw if t)

        depends_raw = data.get("depends") or []
        if isinstance(depends_raw, str):
            depends_raw = depends_raw.split(",")
        depends = tuple(sorted(str(d) for d in depends_raw if d))

        try:
            urgency = float(data.get("urgency") or 0.0)
        except (TypeError, ValueError):
            urgency = 0.0

        return cls(
            uuid=uuid.strip(),
            id=display_id,
            description=description,
            status=TaskStatus.from_raw(data.get("status")),
            project=project,
            priority=Priority.from_raw(data.get("priority")),
            tags=tags,
            entry=entry,
            urgency=urgency,
            depends=depends,
            annotations=annotations,
            **ts,
        )

    def to_json(self) -> dict[str, Any]:
        """Inverse of from_json, in the shape `task import` accepts."""
        out: dict[str, Any] = {
            "uuid": self.uuid,
            "description": self.description,
            "status": self.status.value,
            "entry": format_timestamp(self.entry),
            "urgency": self.urgency,
        }
        if self.id is not None:
            out["id"] = self.id
        if self.project:
            out["project"] = self.project
        if self.priority is not Priority.NONE:
            out["priority"] = self.priority.value
        if self.tags:
            out["tags"] = sorted(self.tags)
        if self.depends:
            out["depends"] = list(self.depends)
        for name in ("modified", "due", "wait", "scheduled", "start", "end", "until"):
            value = getattr(self, name)
            if value is not None:
                out[name] = format_timestamp(value)
        if self.annotations:
            out["annotations"] = [
                {"entry": format_timestamp(a.entry), "description": a.description}
                for a in self.annotations
            ]
        return out
