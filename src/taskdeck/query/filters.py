# src/taskdeck/query/filters.py

"""
Filter evaluator.

A FilterSpec is a set of optional criteria combined with AND. Evaluation is a
pure function of (record, spec, now): no caching, no hidden state, so it is safe
to call from any number of worker threads at once.

Computed criteria (active / overdue / blocked) are derived per call from the
record's stored fields and the caller's `now`.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from ..tasks.task_models import Priority, TaskRecord, TaskStatus
from ..tasks.validation import parse_date

_YES = {"yes", "y", "true", "1", "on"}
_NO = {"no", "n", "false", "0", "off"}


@dataclass(frozen=True, slots=True)
class FilterSpec:
    status: TaskStatus | None = None  # None == "All"
    project: str | None = None
    project_exact: bool = False
    priority: Priority | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    text: str | None = None
    due_before: datetime | None = None
    due_after: datetime | None = None
    active: bool | None = None
    overdue: bool | None = None
    blocked: bool | None = None

    @classmethod
    def default_view(cls) -> FilterSpec:
        """What the task list shows on startup: pending tasks only."""
        return cls(status=TaskStatus.PENDING)

    def matches(self, task: TaskRecord, now: datetime) -> bool:
        if self.status is not None and task.status is not self.status:
            return False

        if self.project is not None:
            if task.project is None:
                return False
            if self.project_exact:
                if task.project != self.project:
                    return False
            elif self.project not in task.project:
                return False

        if self.priority is not None and task.priority is not self.priority:
            return False

        if self.due_before is not None:
            if task.due is None or task.due >= self.due_before:
                return False

        if self.due_after is not None:
            if task.due is None or task.due <= self.due_after:
                return False

        if self.tags and not self.tags <= task.tags:
            return False

        if self.text and self.text.casefold() not in task.description.casefold():
            return False

        if self.active is not None and task.is_active() != self.active:
            return False

        if self.overdue is not None and task.is_overdue(now) != self.overdue:
            return False

        if self.blocked is not None and task.is_blocked() != self.blocked:
            return False

        return True

    # ---- cache key ----

    def fingerprint(self) -> str:
        """
        Canonical encoding used in cache keys.

        Equal specs give equal fingerprints regardless of how they were built
        (tag order, datetime timezone, field order).
        """
        payload = {
            "status": self.status.value if self.status is not None else None,
            "project": self.project,
            "project_exact": self.project_exact if self.project is not None else False,
            "priority": self.priority.value if self.priority is not None else None,
            "tags": sorted(self.tags),
            "text": self.text.casefold() if self.text else None,
            "due_before": _utc_iso(self.due_before),
            "due_after": _utc_iso(self.due_after),
            "active": self.active,
            "overdue": self.overdue,
            "blocked": self.blocked,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    # ---- parsing / display ----

    @classmethod
    def parse(cls, tokens: Iterable[str], *, base: FilterSpec | None = None) -> FilterSpec:
        """
        Build a spec from Taskwarrior-like tokens, e.g.

            status:pending project:work +urgent priority:H overdue:yes fix login

        Unknown `key:value` tokens raise ValueError; bare words become the
        description text criterion.
        """
        spec = base if base is not None else cls()
        words: list[str] = []
        tags = set(spec.tags)

        for tok in tokens:
            tok = tok.strip()
            if not tok:
                continue
            if tok.startswith("+") and len(tok) > 1:
                tags.add(tok[1:])
                continue
            key, sep, value = tok.partition(":")
            if not sep:
                words.append(tok)
                continue

            key = key.lower()
            if key == "status":
                v = value.lower()
                if v in ("all", "any", ""):
                    spec = replace(spec, status=None)
                else:
                    try:
                        spec = replace(spec, status=TaskStatus(v))
                    except ValueError:
                        raise ValueError(f"Unknown status {value!r}") from None
            elif key in ("project", "pro"):
                spec = replace(spec, project=value or None, project_exact=False)
            elif key == "project.is":
                spec = replace(spec, project=value or None, project_exact=True)
            elif key in ("priority", "pri"):
                if value.lower() in ("none", ""):
                    spec = replace(spec, priority=Priority.NONE)
                else:
                    try:
                        spec = replace(spec, priority=Priority(value.upper()))
                    except ValueError:
                        raise ValueError(f"Unknown priority {value!r}") from None
            elif key in ("due.before", "due.by"):
                spec = replace(spec, due_before=parse_date(value))
            elif key == "due.after":
                spec = replace(spec, due_after=parse_date(value))
            elif key in ("active", "overdue", "blocked"):
                spec = replace(spec, **{key: _tri_state(key, value)})
            else:
                raise ValueError(f"Unknown filter {tok!r}")

        text = " ".join(words) if words else spec.text
        return replace(spec, tags=frozenset(tags), text=text or None)

    def describe(self) -> str:
        parts: list[str] = [f"status:{self.status.value if self.status else 'all'}"]
        if self.project is not None:
            parts.append(f"{'project.is' if self.project_exact else 'project'}:{self.project}")
        if self.priority is not None:
            parts.append(f"priority:{self.priority.value}")
        parts.extend(f"+{t}" for t in sorted(self.tags))
        if self.due_before is not None:
            parts.append(f"due.before:{self.due_before.date().isoformat()}")
        if self.due_after is not None:
            parts.append(f"due.after:{self.due_after.date().isoformat()}")
        for name in ("active", "overdue", "blocked"):
            value = getattr(self, name)
            if value is not None:
                parts.append(f"{name}:{'yes' if value else 'no'}")
        if self.text:
            parts.append(repr(self.text))
        return " ".join(parts)


def apply_filter(
    tasks: Iterable[TaskRecord], spec: FilterSpec, now: datetime
) -> tuple[TaskRecord, ...]:
    return tuple(t for t in tasks if spec.matches(t, now))


def _tri_state(name: str, value: str) -> bool | None:
    v = value.strip().lower()
    if v in _YES:
        return True
    if v in _NO:
        return False
    if v in ("any", ""):
        return None
    raise ValueError(f"{name} expects yes/no/any, got {value!r}")


def _utc_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
