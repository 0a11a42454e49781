# src/taskdeck/tasks/task_mutations.py

"""
Task mutations.

A TaskMutation is a validated, immutable description of one change. The command
runner turns it into `task` CLI arguments; nothing here talks to Taskwarrior.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from .task_models import Priority, format_timestamp
from .validation import validate_description, validate_project, validate_tag


class MutationKind(StrEnum):
    ADD = "add"
    MODIFY = "modify"
    COMPLETE = "done"
    DELETE = "delete"
    DUPLICATE = "duplicate"
    ANNOTATE = "annotate"
    START = "start"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class TaskMutation:
    kind: MutationKind
    target: str | None = None  # uuid (preferred) or display id

    description: str | None = None
    project: str | None = None
    priority: Priority | None = None
    due: datetime | None = None
    tags_add: tuple[str, ...] = ()
    tags_remove: tuple[str, ...] = ()
    clear: tuple[str, ...] = ()  # attribute names to blank out ("project", "due", ...)
    annotation: str | None = None

    # ---- constructors (validate input) ----

    @classmethod
    def add(
        cls,
        description: str,
        *,
        project: str | None = None,
        priority: Priority | None = None,
        due: datetime | None = None,
        tags: tuple[str, ...] | list[str] = (),
    ) -> TaskMutation:
        return cls(
            kind=MutationKind.ADD,
            description=validate_description(description),
            project=validate_project(project) if project else None,
            priority=priority,
            due=due,
            tags_add=tuple(validate_tag(t) for t in tags),
        )

    @classmethod
    def modify(
        cls,
        target: str,
        *,
        description: str | None = None,
        project: str | None = None,
        priority: Priority | None = None,
        due: datetime | None = None,
        tags_add: tuple[str, ...] | list[str] = (),
        tags_remove: tuple[str, ...] | list[str] = (),
        clear: tuple[str, ...] | list[str] = (),
    ) -> TaskMutation:
        bad = set(clear) - {"project", "priority", "due", "tags", "wait", "scheduled"}
        if bad:
            raise ValueError(f"Cannot clear attribute(s): {', '.join(sorted(bad))}")
        m = cls(
            kind=MutationKind.MODIFY,
            target=_target(target),
            description=validate_description(description) if description is not None else None,
            project=validate_project(project) if project else None,
            priority=priority,
            due=due,
            tags_add=tuple(validate_tag(t) for t in tags_add),
            tags_remove=tuple(validate_tag(t) for t in tags_remove),
            clear=tuple(clear),
        )
        if not m._attribute_args():
            raise ValueError("Nothing to modify")
        return m

    @classmethod
    def complete(cls, target: str) -> TaskMutation:
        return cls(kind=MutationKind.COMPLETE, target=_target(target))

    @classmethod
    def delete(cls, target: str) -> TaskMutation:
        return cls(kind=MutationKind.DELETE, target=_target(target))

    @classmethod
    def duplicate(cls, target: str, *, description: str | None = None) -> TaskMutation:
        return cls(
            kind=MutationKind.DUPLICATE,
            target=_target(target),
            description=validate_description(description) if description is not None else None,
        )

    @classmethod
    def annotate(cls, target: str, text: str) -> TaskMutation:
        note = (text or "").strip()
        if not note:
            raise ValueError("Annotation cannot be empty")
        return cls(kind=MutationKind.ANNOTATE, target=_target(target), annotation=note)

    @classmethod
    def start(cls, target: str) -> TaskMutation:
        return cls(kind=MutationKind.START, target=_target(target))

    @classmethod
    def stop(cls, target: str) -> TaskMutation:
        return cls(kind=MutationKind.STOP, target=_target(target))

    # ---- rendering ----

    def _attribute_args(self) -> list[str]:
        args: list[str] = []
        if self.kind is not MutationKind.ADD and self.description is not None:
            args.append(f"description:{self.description}")
        if self.project:
            args.append(f"project:{self.project}")
        if self.priority is not None:
            args.append("priority:" if self.priority is Priority.NONE else f"priority:{self.priority.value}")
        if self.due is not None:
            args.append(f"due:{format_timestamp(self.due)}")
        args.extend(f"+{t}" for t in self.tags_add)
        args.extend(f"-{t}" for t in self.tags_remove)
        args.extend(f"{name}:" for name in self.clear)
        return args

    def to_args(self) -> list[str]:
        """Arguments for the `task` binary (without rc overrides)."""
        if self.kind is MutationKind.ADD:
            # "--" stops Taskwarrior from parsing the description as attributes.
            return ["add", *self._attribute_args(), "--", self.description or ""]
        if not self.target:
            raise ValueError(f"{self.kind.value} needs a target task")
        if self.kind is MutationKind.MODIFY:
            return [self.target, "modify", *self._attribute_args()]
        if self.kind is MutationKind.DUPLICATE:
            return [self.target, "duplicate", *self._attribute_args()]
        if self.kind is MutationKind.ANNOTATE:
            return [self.target, "annotate", "--", self.annotation or ""]
        return [self.target, self.kind.value]

    def describe(self) -> str:
        if self.kind is MutationKind.ADD:
            return f"add {self.description!r}"
        return f"{self.kind.value} {self.target}"


def _target(raw: str) -> str:
    t = str(raw or "").strip()
    if not t:
        raise ValueError("A task id or uuid is required")
    return t
