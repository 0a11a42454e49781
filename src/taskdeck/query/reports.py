# src/taskdeck/query/reports.py

"""
Aggregation engine.

Every function here is a deterministic, side-effect free computation over a
slice of task records:
- Read-only (records are immutable anyway)
- Deterministic (same input + same `now` -> same output, same order)
- `now` is always injected, never read from the clock here

compute_report() is the single entry point the cache layer calls on a miss.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from enum import StrEnum
from itertools import islice
from types import MappingProxyType
from typing import Any

from ..tasks.task_models import Priority, TaskRecord, TaskStatus
from .filters import FilterSpec, apply_filter

NO_PROJECT_LABEL = "none"


class ReportKind(StrEnum):
    SUMMARY = "summary"
    BURNDOWN = "burndown"
    PROJECTS = "projects"
    RECENT_ACTIVITY = "recent_activity"
    TASK_LIST = "task_list"


@dataclass(frozen=True, slots=True)
class ReportOptions:
    burndown_buckets: int = 30
    burndown_width: timedelta = timedelta(days=1)
    activity_window: timedelta = timedelta(days=7)
    activity_limit: int | None = 50


def completion_rate(completed: int, pending: int) -> float:
    """completed / (completed + pending); 0.0 when both are zero."""
    denominator = completed + pending
    if denominator == 0:
        return 0.0
    return completed / denominator


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


# ---- Summary ----


@dataclass(frozen=True, slots=True)
class Summary:
    total: int
    # Read-only views: a Summary is shared by everyone reading the cache.
    by_status: Mapping[TaskStatus, int]
    by_priority: Mapping[Priority, int]
    active: int
    overdue: int
    completion_rate: float
    mean_urgency: float

    def count(self, status: TaskStatus) -> int:
        return self.by_status.get(status, 0)


def summarize(tasks: Iterable[TaskRecord], now: datetime) -> Summary:
    by_status = {s: 0 for s in TaskStatus}
    by_priority = {p: 0 for p in Priority}
    active = overdue = total = 0
    open_urgency: list[float] = []

    for t in tasks:
        total += 1
        by_status[t.status] += 1
        by_priority[t.priority] += 1
        if t.is_active():
            active += 1
        if t.is_overdue(now):
            overdue += 1
        if t.is_open:
            open_urgency.append(t.urgency)

    return Summary(
        total=total,
        by_status=MappingProxyType(by_status),
        by_priority=MappingProxyType(by_priority),
        active=active,
        overdue=overdue,
        completion_rate=completion_rate(by_status[TaskStatus.COMPLETED], by_status[TaskStatus.PENDING]),
        mean_urgency=_mean(open_urgency),
    )


# ---- Burndown ----


@dataclass(frozen=True, slots=True)
class BurndownPoint:
    start: datetime
    end: datetime
    added: int
    completed: int
    remaining: int


@dataclass(frozen=True, slots=True)
class Burndown:
    points: tuple[BurndownPoint, ...]
    width: timedelta

    @property
    def remaining(self) -> tuple[int, ...]:
        return tuple(p.remaining for p in self.points)

    @property
    def completed(self) -> tuple[int, ...]:
        return tuple(p.completed for p in self.points)

    @property
    def added(self) -> tuple[int, ...]:
        return tuple(p.added for p in self.points)


def _window_end(now: datetime, width: timedelta) -> datetime:
    """First bucket boundary after `now`, counting from UTC midnight of now's day."""
    now_utc = now.astimezone(timezone.utc)
    anchor = datetime.combine(now_utc.date(), time(0, 0), tzinfo=timezone.utc)
    steps = (now_utc - anchor) // width + 1
    return anchor + steps * width


def burndown(
    tasks: Iterable[TaskRecord],
    now: datetime,
    *,
    buckets: int = 30,
    width: timedelta = timedelta(days=1),
) -> Burndown:
    """
    Trailing window of `buckets` buckets, the last one containing `now`.

    Per bucket [start, end):
    - added:     tasks whose entry falls in the bucket
    - completed: tasks whose end falls in the bucket (Taskwarrior stamps `end`
                 on both done and delete, so deletions burn down too)
    - remaining: tasks open at `end` = entered before `end` - ended before `end`

    Because both counts are taken against the same boundaries,
    remaining[i] == remaining[i-1] - completed[i] + added[i] holds exactly.
    """
    if buckets < 1:
        raise ValueError("buckets must be >= 1")
    if width <= timedelta(0):
        raise ValueError("width must be positive")

    entries: list[datetime] = []
    ends: list[datetime] = []
    for t in tasks:
        entries.append(t.entry)
        if t.end is not None:
            ends.append(t.end)
    entries.sort()
    ends.sort()

    window_end = _window_end(now, width)
    boundaries = [window_end - (buckets - i) * width for i in range(buckets + 1)]

    points: list[BurndownPoint] = []
    for start, end in zip(boundaries, boundaries[1:]):
        entered_before_end = bisect_left(entries, end)
        ended_before_end = bisect_left(ends, end)
        points.append(
            BurndownPoint(
                start=start,
                end=end,
                added=entered_before_end - bisect_left(entries, start),
                completed=ended_before_end - bisect_left(ends, start),
                remaining=entered_before_end - ended_before_end,
            )
        )

    return Burndown(points=tuple(points), width=width)


# ---- Project analytics ----


@dataclass(frozen=True, slots=True)
class ProjectStats:
    project: str | None  # None is the "no project" group
    total: int
    pending: int
    completed: int
    deleted: int
    waiting: int
    completion_rate: float
    next_due: datetime | None
    mean_urgency: float

    @property
    def name(self) -> str:
        return self.project if self.project is not None else NO_PROJECT_LABEL


@dataclass(slots=True)
class _ProjectAcc:
    counts: dict[TaskStatus, int] = field(default_factory=lambda: {s: 0 for s in TaskStatus})
    next_due: datetime | None = None
    open_urgency: list[float] = field(default_factory=list)


def project_analytics(tasks: Iterable[TaskRecord], now: datetime) -> tuple[ProjectStats, ...]:
    """
    Per-project statistics.

    mean_urgency is the arithmetic mean of urgency over the group's open
    (pending/waiting) tasks, 0.0 when there are none.
    Ordered by total desc, then project name; the no-project group sorts after
    named projects with the same total.
    """
    groups: dict[str | None, _ProjectAcc] = {}

    for t in tasks:
        acc = groups.get(t.project)
        if acc is None:
            acc = groups[t.project] = _ProjectAcc()
        acc.counts[t.status] += 1
        if t.due is not None and not t.status.is_closed:
            if acc.next_due is None or t.due < acc.next_due:
                acc.next_due = t.due
        if t.is_open:
            acc.open_urgency.append(t.urgency)

    stats = [
        ProjectStats(
            project=project,
            total=sum(acc.counts.values()),
            pending=acc.counts[TaskStatus.PENDING],
            completed=acc.counts[TaskStatus.COMPLETED],
            deleted=acc.counts[TaskStatus.DELETED],
            waiting=acc.counts[TaskStatus.WAITING],
            completion_rate=completion_rate(acc.counts[TaskStatus.COMPLETED], acc.counts[TaskStatus.PENDING]),
            next_due=acc.next_due,
            mean_urgency=_mean(acc.open_urgency),
        )
        for project, acc in groups.items()
    ]
    stats.sort(key=lambda s: (-s.total, s.project is None, s.project or ""))
    return tuple(stats)


# ---- Recent activity ----


class ActivityKind(StrEnum):
    COMPLETED = "completed"
    DELETED = "deleted"
    MODIFIED = "modified"
    CREATED = "created"


# Same task, same second: newest lifecycle step first.
_ACTIVITY_RANK = {
    ActivityKind.COMPLETED: 0,
    ActivityKind.DELETED: 1,
    ActivityKind.MODIFIED: 2,
    ActivityKind.CREATED: 3,
}


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    timestamp: datetime
    kind: ActivityKind
    uuid: str
    description: str
    project: str | None


def _task_events(t: TaskRecord) -> Iterator[ActivityEvent]:
    def ev(ts: datetime, kind: ActivityKind) -> ActivityEvent:
        return ActivityEvent(timestamp=ts, kind=kind, uuid=t.uuid, description=t.description, project=t.project)

    yield ev(t.entry, ActivityKind.CREATED)

    if t.end is not None:
        if t.status is TaskStatus.COMPLETED:
            yield ev(t.end, ActivityKind.COMPLETED)
        elif t.status is TaskStatus.DELETED:
            yield ev(t.end, ActivityKind.DELETED)

    if t.modified is not None and t.modified != t.entry and t.modified != t.end:
        yield ev(t.modified, ActivityKind.MODIFIED)


def iter_recent_activity(
    tasks: Iterable[TaskRecord],
    now: datetime,
    *,
    window: timedelta = timedelta(days=7),
) -> Iterator[ActivityEvent]:
    """
    Lazily yield derived events newest first.

    Ties on timestamp are broken by task uuid ascending, then by lifecycle step,
    so the sequence is identical for identical input.
    """
    since = now - window
    events = [e for t in tasks for e in _task_events(t) if e.timestamp >= since]
    # Two stable sorts: secondary keys first, then timestamp descending.
    events.sort(key=lambda e: (e.uuid, _ACTIVITY_RANK[e.kind]))
    events.sort(key=lambda e: e.timestamp, reverse=True)
    yield from events


def recent_activity(
    tasks: Iterable[TaskRecord],
    now: datetime,
    *,
    window: timedelta = timedelta(days=7),
    limit: int | None = None,
) -> tuple[ActivityEvent, ...]:
    return tuple(islice(iter_recent_activity(tasks, now, window=window), limit))


# ---- Task list ----


def task_list(tasks: Iterable[TaskRecord]) -> tuple[TaskRecord, ...]:
    return tuple(sorted(tasks, key=lambda t: (-t.urgency, t.uuid)))


# ---- dispatch ----


def compute_report(
    kind: ReportKind,
    tasks: Iterable[TaskRecord],
    spec: FilterSpec,
    now: datetime,
    options: ReportOptions | None = None,
) -> Any:
    """Filter `tasks` with `spec`, then build the requested report."""
    opts = options or ReportOptions()
    selected = apply_filter(tasks, spec, now)

    if kind is ReportKind.SUMMARY:
        return summarize(selected, now)
    if kind is ReportKind.BURNDOWN:
        return burndown(selected, now, buckets=opts.burndown_buckets, width=opts.burndown_width)
    if kind is ReportKind.PROJECTS:
        return project_analytics(selected, now)
    if kind is ReportKind.RECENT_ACTIVITY:
        return recent_activity(selected, now, window=opts.activity_window, limit=opts.activity_limit)
    if kind is ReportKind.TASK_LIST:
        return task_list(selected)
    raise ValueError(f"Unknown report kind: {kind!r}")


def is_time_dependent(spec: FilterSpec, kind: ReportKind) -> bool:
    """
    True when the result can change with `now` alone (same records).

    Every aggregate reads `now` (overdue counts, burndown and activity windows);
    a plain task list only does through an `overdue:` criterion.
    """
    return kind is not ReportKind.TASK_LIST or spec.overdue is not None
