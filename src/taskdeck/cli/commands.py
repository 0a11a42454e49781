# src/taskdeck/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import shlex
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, cast

from ..core.errors import EngineError, ParseFailure, StoreUnavailable
from ..core.state import AppState
from ..data.bulk import ExportFormat, JsonFileBulkChannel, write_export
from ..data.coordinator import parse_payload
from ..query.filters import FilterSpec
from ..query.reports import ReportKind
from ..tasks.task_models import Priority
from ..tasks.task_mutations import TaskMutation
from ..tasks.validation import parse_date
from . import render

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            # Unbalanced quotes: fall back to plain whitespace splitting.
            parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except ValueError as e:
            return f"Invalid input: {e}"
        except EngineError as e:
            return f"[{e.kind.value}] {e.message}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _spec(state: AppState, args: list[str]) -> FilterSpec:
    """Filter arguments refine the default view; no arguments means the current view."""
    if not args:
        return state.view
    return FilterSpec.parse(args, base=FilterSpec.default_view())


def _parse_attrs(tokens: list[str]) -> tuple[list[str], dict[str, Any]]:
    """
    Split Taskwarrior-style attribute tokens from free words.

    project:x pro:x priority:H pri:L due:2024-05-01 +tag -tag
    An empty value (project:, due:, priority:) clears the attribute.
    """
    words: list[str] = []
    attrs: dict[str, Any] = {"tags_add": [], "tags_remove": [], "clear": []}
    for tok in tokens:
        key, sep, value = tok.partition(":")
        key = key.lower()
        if tok.startswith("+") and len(tok) > 1:
            attrs["tags_add"].append(tok[1:])
        elif tok.startswith("-") and len(tok) > 1 and not tok[1:].isdigit():
            attrs["tags_remove"].append(tok[1:])
        elif sep and key in ("project", "pro"):
            if value:
                attrs["project"] = value
            else:
                attrs["clear"].append("project")
        elif sep and key in ("priority", "pri"):
            if value.lower() in ("", "none"):
                attrs["priority"] = Priority.NONE
            else:
                try:
                    attrs["priority"] = Priority(value.upper())
                except ValueError:
                    raise ValueError(f"Unknown priority {value!r} (use H, M, L or none)") from None
        elif sep and key == "due":
            if value:
                attrs["due"] = parse_date(value)
            else:
                attrs["clear"].append("due")
        else:
            words.append(tok)
    return words, attrs


def _report(state: AppState, args: list[str], kind: ReportKind) -> Any:
    return state.engine.query_now(_spec(state, args), kind).value


def _analytics(state: AppState, args: list[str], kind: ReportKind) -> Any:
    # Analytics need closed tasks too, so no arguments means "all statuses".
    spec = FilterSpec.parse(args) if args else FilterSpec()
    return state.engine.query_now(spec, kind).value


def _applied(state: AppState, mutation: TaskMutation, emit: CommandEmitter | None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit(f"[TASK] {mutation.describe()} ...")
    outcome = state.engine.mutate(mutation)
    text = f"Done: {mutation.describe()} (generation {outcome.generation})."
    if outcome.output:
        text += f"\n{outcome.output}"
    return text


# ---- info ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    engine = state.engine
    stats = engine.cache.stats()
    sync_status = engine.sync.status if engine.sync is not None else None
    return (
        "Status:\n"
        f"  Data: {render.render_snapshot(engine.snapshot_info())}\n"
        f"  View: {state.view.describe()}\n"
        f"  Cache: {stats.entries} entries, {stats.hits} hits, {stats.misses} misses, "
        f"{stats.in_flight} in flight\n"
        f"  Sync: {render.render_sync(sync_status)}"
    )


def cmd_filter(state: AppState, args: list[str]) -> str:
    """
    /filter              -> show current view
    /filter reset        -> pending tasks only
    /filter all          -> every task, any status
    /filter <tokens>     -> e.g. project:work +urgent overdue:yes
    """
    if not args:
        return f"Current view: {state.view.describe()}"
    sub = args[0].lower()
    if sub == "reset":
        state.view = FilterSpec.default_view()
    elif sub == "all":
        state.view = FilterSpec()
    else:
        state.view = FilterSpec.parse(args, base=FilterSpec.default_view())
    return f"View set: {state.view.describe()}"


# ---- reports ----


def cmd_summary(state: AppState, args: list[str]) -> str:
    return render.render_summary(_analytics(state, args, ReportKind.SUMMARY))


def cmd_burndown(state: AppState, args: list[str]) -> str:
    return render.render_burndown(_analytics(state, args, ReportKind.BURNDOWN))


def cmd_projects(state: AppState, args: list[str]) -> str:
    return render.render_projects(_analytics(state, args, ReportKind.PROJECTS))


def cmd_activity(state: AppState, args: list[str]) -> str:
    return render.render_activity(_analytics(state, args, ReportKind.RECENT_ACTIVITY))


def cmd_list(state: AppState, args: list[str]) -> str:
    return render.render_tasks(_report(state, args, ReportKind.TASK_LIST), _now())


# ---- mutations ----


def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    words, attrs = _parse_attrs(args)
    mutation = TaskMutation.add(
        " ".join(words),
        project=attrs.get("project"),
        priority=attrs.get("priority"),
        due=attrs.get("due"),
        tags=attrs["tags_add"],
    )
    return _applied(state, mutation, emit)


def cmd_modify(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /modify <id> [project:x] [pri:H] [due:YYYY-MM-DD] [+tag] [-tag] [new description]"
    words, attrs = _parse_attrs(args[1:])
    mutation = TaskMutation.modify(
        args[0],
        description=" ".join(words) if words else None,
        project=attrs.get("project"),
        priority=attrs.get("priority"),
        due=attrs.get("due"),
        tags_add=attrs["tags_add"],
        tags_remove=attrs["tags_remove"],
        clear=attrs["clear"],
    )
    return _applied(state, mutation, emit)


def _single_target(factory: Callable[[str], TaskMutation], usage: str) -> CommandHandler3:
    def handler(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
        if len(args) != 1:
            return usage
        return _applied(state, factory(args[0]), emit)

    return handler


def cmd_duplicate(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /duplicate <id> [new description]"
    desc = " ".join(args[1:]) or None
    return _applied(state, TaskMutation.duplicate(args[0], description=desc), emit)


def cmd_annotate(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /annotate <id> <text>"
    return _applied(state, TaskMutation.annotate(args[0], " ".join(args[1:])), emit)


# ---- data ----


def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.engine.request_sync()
    if state.engine.sync is None:
        return "Sync is disabled; reloading tasks in the background."
    return "Sync requested."


def cmd_verify(state: AppState, args: list[str]) -> str:
    if state.engine.verify():
        return "Backends agree."
    return "Backends disagreed; tasks were reloaded from a full export."


def cmd_export(state: AppState, args: list[str]) -> str:
    """/export <path> [json|csv] -> write the tasks of the current view."""
    if not args:
        return "Usage: /export <path> [json|csv]"
    path = args[0]
    fmt_raw = args[1].lower() if len(args) > 1 else ("csv" if path.lower().endswith(".csv") else "json")
    try:
        fmt = ExportFormat(fmt_raw)
    except ValueError:
        return f"Unknown export format {fmt_raw!r} (use json or csv)."
    tasks = state.engine.query_now(state.view, ReportKind.TASK_LIST).value
    try:
        count = write_export(tasks, path, fmt)
    except OSError as e:
        logger.warning("Export to %s failed: %s", path, e)
        return f"Export failed: {e}"
    return f"Exported {count} task(s) to {path} ({fmt.value})."


def cmd_import(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/import <path> -> restore tasks from a JSON export file."""
    if len(args) != 1:
        return "Usage: /import <path.json>"
    try:
        rows = JsonFileBulkChannel(args[0]).export()
    except (StoreUnavailable, ParseFailure) as e:
        return f"Cannot read {args[0]}: {e}"
    records, skipped = parse_payload(rows, source=args[0])
    if emit:
        with contextlib.suppress(Exception):
            emit(f"[TASK] Importing {len(records)} task(s)...")
    info = state.engine.import_records(records)
    note = f" ({skipped} malformed skipped)" if skipped else ""
    return f"Imported {len(records)} task(s){note}; now {info.records} records (generation {info.generation})."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show data source, cache and sync state.")
registry.register("filter", cmd_filter, help_text="Show/set the view: /filter [reset|all|<tokens>].")
registry.register("list", cmd_list, help_text="List tasks by urgency: /list [filter tokens].", aliases=["ls"])
registry.register("summary", cmd_summary, help_text="Counts, completion rate, urgency.")
registry.register("burndown", cmd_burndown, help_text="Remaining work per day.")
registry.register("projects", cmd_projects, help_text="Per-project statistics.")
registry.register("activity", cmd_activity, help_text="Recently created/modified/closed tasks.")
registry.register("add", cmd_add, help_text="Add a task: /add <text> [project:x] [pri:H] [due:date] [+tag].")
registry.register("modify", cmd_modify, help_text="Modify a task: /modify <id> [attrs] [text].", aliases=["mod"])
registry.register(
    "done",
    _single_target(TaskMutation.complete, "Usage: /done <id>"),
    help_text="Mark a task completed.",
)
registry.register(
    "delete",
    _single_target(TaskMutation.delete, "Usage: /delete <id>"),
    help_text="Delete a task.",
    aliases=["rm"],
)
registry.register(
    "start",
    _single_target(TaskMutation.start, "Usage: /start <id>"),
    help_text="Start working on a task.",
)
registry.register(
    "stop",
    _single_target(TaskMutation.stop, "Usage: /stop <id>"),
    help_text="Stop working on a task.",
)
registry.register("duplicate", cmd_duplicate, help_text="Copy a task: /duplicate <id> [text].")
registry.register("annotate", cmd_annotate, help_text="Add a note: /annotate <id> <text>.")
registry.register("sync", cmd_sync, help_text="Run task sync now (background).")
registry.register("verify", cmd_verify, help_text="Cross-check backends; reload on mismatch.")
registry.register("export", cmd_export, help_text="Write the current view: /export <path> [json|csv].")
registry.register("import", cmd_import, help_text="Restore tasks from a JSON export: /import <path>.")
