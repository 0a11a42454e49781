# src/taskdeck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The engine depends on Protocols instead of concrete Taskwarrior access.
This keeps backends swappable and makes testing easier: tests plug in
in-memory fakes for every port.

Rows are Taskwarrior export objects (plain dicts); parsing into TaskRecord
happens once, in the data access coordinator.
"""

from typing import Any, Protocol

ExportRow = dict[str, Any]


class ReadStore(Protocol):
    """
    Direct, read-optimized access (e.g. the TaskChampion SQLite file).

    Raises StoreUnavailable when it cannot be opened/read and ParseFailure when
    the payload as a whole is unusable.
    """

    def fetch_all(self) -> list[ExportRow]: ...

    def data_version(self) -> float | None:
        """Wall-clock time of the last write the store has seen, if known."""
        ...


class CommandRunner(Protocol):
    """
    Executes `task` commands. Used for every mutation and as the second read path.

    Raises CommandNonZeroExit / CommandTimeout; export() may also raise ParseFailure.
    """

    def execute(self, args: list[str]) -> str: ...

    def export(self) -> list[ExportRow]: ...


class BulkChannel(Protocol):
    """Full export/import, used for reconciliation and restores."""

    def export(self) -> list[ExportRow]: ...

    def import_(self, rows: list[ExportRow]) -> None: ...


class SyncTrigger(Protocol):
    """Runs the external synchronization (e.g. `task sync`)."""

    def run(self) -> None: ...
