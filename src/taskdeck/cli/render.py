# src/taskdeck/cli/render.py

"""Plain-text rendering of reports for the console."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from ..core.engine import SnapshotInfo
from ..query.reports import ActivityEvent, Burndown, ProjectStats, Summary
from ..sync.sync_coordinator import SyncStatus
from ..tasks.task_models import Priority, TaskRecord, TaskStatus

BAR_WIDTH = 40


def _date(dt: datetime | None) -> str:
    return dt.astimezone().strftime("%Y-%m-%d") if dt else "-"


def _pct(rate: float) -> str:
    return f"{rate * 100:.0f}%"


def render_summary(s: Summary) -> str:
    statuses = ", ".join(f"{st.value}={s.count(st)}" for st in TaskStatus if s.count(st))
    priorities = ", ".join(
        f"{p.value}={n}" for p, n in s.by_priority.items() if n and p is not Priority.NONE
    )
    return (
        "Summary:\n"
        f"  Tasks: {s.total} ({statuses or 'none'})\n"
        f"  Active: {s.active}  Overdue: {s.overdue}\n"
        f"  Priorities: {priorities or '-'}\n"
        f"  Completion rate: {_pct(s.completion_rate)}\n"
        f"  Mean urgency (open): {s.mean_urgency:.2f}"
    )


def render_burndown(b: Burndown) -> str:
    if not b.points:
        return "Burndown: no data."
    peak = max(max(b.remaining), 1)
    lines = ["Burndown (remaining | +added -completed):"]
    for p in b.points:
        bar = "#" * round(p.remaining / peak * BAR_WIDTH)
        lines.append(f"  {p.start:%m-%d} {p.remaining:>5} {bar:<{BAR_WIDTH}} +{p.added} -{p.completed}")
    return "\n".join(lines)


def render_projects(stats: Sequence[ProjectStats]) -> str:
    if not stats:
        return "No projects."
    lines = [f"  {'project':<24} {'total':>5} {'pend':>5} {'done':>5} {'rate':>5} {'urg':>6}  next due"]
    for s in stats:
        lines.append(
            f"  {s.name[:24]:<24} {s.total:>5} {s.pending:>5} {s.completed:>5} "
            f"{_pct(s.completion_rate):>5} {s.mean_urgency:>6.2f}  {_date(s.next_due)}"
        )
    return "Projects:\n" + "\n".join(lines)


def render_activity(events: Sequence[ActivityEvent]) -> str:
    if not events:
        return "No recent activity."
    lines = ["Recent activity:"]
    for e in events:
        when = e.timestamp.astimezone().strftime("%Y-%m-%d %H:%M")
        proj = f" [{e.project}]" if e.project else ""
        lines.append(f"  {when} {e.kind.value:<9} {e.description}{proj}")
    return "\n".join(lines)


def render_tasks(tasks: Sequence[TaskRecord], now: datetime, *, limit: int = 50) -> str:
    if not tasks:
        return "No matching tasks."
    lines = [f"  {'id':>4} {'pri':<3} {'due':<10} {'urg':>6}  description"]
    for t in tasks[:limit]:
        ident = str(t.id) if t.id is not None else t.uuid[:8]
        flags = ""
        if t.is_active():
            flags += "*"
        if t.is_overdue(now):
            flags += "!"
        pri = t.priority.value if t.priority is not Priority.NONE else ""
        proj = f" [{t.project}]" if t.project else ""
        tags = " " + " ".join(f"+{x}" for x in sorted(t.tags)) if t.tags else ""
        lines.append(f"  {ident:>4} {pri:<3} {_date(t.due):<10} {t.urgency:>6.2f}  {flags}{t.description}{proj}{tags}")
    if len(tasks) > limit:
        lines.append(f"  ... {len(tasks) - limit} more")
    return f"Tasks ({len(tasks)}):\n" + "\n".join(lines)


def render_snapshot(info: SnapshotInfo) -> str:
    source = info.source.value if info.source else "not loaded"
    fetched = info.fetched_at.astimezone().strftime("%H:%M:%S") if info.fetched_at else "-"
    line = f"generation {info.generation}, {info.records} records from {source} at {fetched}"
    if info.skipped:
        line += f", {info.skipped} skipped"
    if info.stale:
        line += " (stale)"
    return line


def render_sync(status: SyncStatus | None) -> str:
    if status is None:
        return "disabled"
    out = status.state.value
    if status.last_success_at:
        out += f", last ok {status.last_success_at.astimezone():%H:%M:%S}"
    if status.last_error is not None and status.consecutive_failures:
        out += f", {status.consecutive_failures} failure(s): {status.last_error.message}"
    return out
