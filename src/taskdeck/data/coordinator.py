# src/taskdeck/data/coordinator.py

"""
Data access coordinator.

Owns the published TaskSnapshot and the generation counter, and decides which
backend serves each request:

reads:      DIRECT (TaskChampion file; any doubt about it, a single malformed
            record included, moves the read on) -> COMMAND (`task
            export`, retried with backoff) -> BULK (full export, i.e. a reconcile)
mutations:  COMMAND only, serialised; success re-reads (a direct re-read is
            cross-checked against `task export`) and bumps the generation once
            before returning

Every backend error is caught here and turned into an engine error
(Unavailable / MutationFailed / Inconsistent). Nothing above this module sees a
raw backend failure.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, TypeVar

from ..core.errors import (
    BackendError,
    CommandNonZeroExit,
    CommandTimeout,
    Inconsistent,
    Malformed,
    MalformedRecord,
    MutationFailed,
    ParseFailure,
    StoreUnavailable,
    Unavailable,
)
from ..core.ports import BulkChannel, CommandRunner, ReadStore
from ..tasks.task_models import TaskRecord
from ..tasks.task_mutations import TaskMutation

logger = logging.getLogger(__name__)

T = TypeVar("T")

GenerationListener = Callable[[int], None]
RecordSignature = frozenset


class Backend(StrEnum):
    DIRECT = "direct"
    COMMAND = "command"
    BULK = "bulk"


def record_signature(records: Iterable[TaskRecord]) -> RecordSignature:
    """
    What counts as "the record set changed": every stored field.

    Urgency is left out: it is derived, and the direct store estimates it
    differently from Taskwarrior.
    """
    return frozenset(replace(r, urgency=0.0) for r in records)


def backend_signature(records: Iterable[TaskRecord]) -> RecordSignature:
    """Identity, status and edit stamps; what two backends must agree on."""
    return frozenset((r.uuid, r.id, r.status.value, r.modified or r.entry, r.end) for r in records)


@dataclass(frozen=True, slots=True)
class TaskSnapshot:
    generation: int
    records: tuple[TaskRecord, ...]
    source: Backend | None = None
    fetched_at: datetime | None = None
    skipped: int = 0
    stale: bool = False  # a mutation succeeded but the re-read did not
    signature: RecordSignature = field(default_factory=frozenset, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class _Read:
    records: tuple[TaskRecord, ...]
    skipped: int
    source: Backend


@dataclass(frozen=True, slots=True)
class MutationOutcome:
    mutation: TaskMutation
    generation: int
    output: str


def parse_rows(rows: Iterable[Any], *, source: str = "") -> tuple[tuple[TaskRecord, ...], int]:
    """Parse export rows; malformed ones are logged and skipped (returned as a count)."""
    by_uuid: dict[str, TaskRecord] = {}
    skipped = 0
    for row in rows:
        try:
            rec = TaskRecord.from_json(row)
        except MalformedRecord as e:
            skipped += 1
            logger.warning("Skipping malformed record from %s: %s", source or "backend", e)
            continue
        by_uuid[rec.uuid] = rec
    return tuple(by_uuid.values()), skipped


def parse_payload(rows: list[Any], *, source: str = "") -> tuple[tuple[TaskRecord, ...], int]:
    """
    parse_rows() for a whole document (an import file): a payload that has rows
    but not one usable record raises Malformed instead of importing nothing.
    """
    records, skipped = parse_rows(rows, source=source)
    if skipped and not records:
        raise Malformed(f"{source or 'payload'}: all {skipped} record(s) are malformed")
    return records, skipped


class DataAccessCoordinator:
    def __init__(
        self,
        *,
        command_runner: CommandRunner,
        bulk_channel: BulkChannel,
        read_store: ReadStore | None = None,
        retries: int = 2,
        backoff_seconds: float = 0.25,
        freshness_threshold_seconds: float = 2.0,
        clock: Callable[[], datetime] | None = None,
        wall_time: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._commands = command_runner
        self._bulk = bulk_channel
        self._direct = read_store
        self._retries = max(0, int(retries))
        self._backoff = max(0.0, float(backoff_seconds))
        self._freshness = max(0.0, float(freshness_threshold_seconds))
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._wall_time = wall_time
        self._sleep = sleep

        self._write_lock = threading.Lock()
        self._listeners: list[GenerationListener] = []
        self._snapshot = TaskSnapshot(generation=0, records=())
        self._last_mutation_at: float | None = None

    # ---- published state (lock-free reads: a single reference) ----

    @property
    def snapshot(self) -> TaskSnapshot:
        return self._snapshot

    def current_generation(self) -> int:
        return self._snapshot.generation

    def add_listener(self, listener: GenerationListener) -> None:
        self._listeners.append(listener)

    # ---- reads ----

    def fetch_all(self) -> TaskSnapshot:
        """Re-read through the fallback chain; bump the generation only if data changed."""
        with self._write_lock:
            return self._publish(self._read(), force_bump=False)

    def reconcile(self) -> TaskSnapshot:
        """Full resync through the bulk channel."""
        with self._write_lock:
            return self._reconcile_locked(force_bump=False)

    def verify(self) -> bool:
        """
        Compare the direct and command read paths.

        Returns True when they agree (or there is no direct store). On
        disagreement logs a warning, reconciles through the bulk channel and
        returns False; raises Inconsistent if that reconcile fails too.
        """
        if self._direct is None:
            return True
        with self._write_lock:
            try:
                direct = self._parse(self._direct.fetch_all(), Backend.DIRECT)
                command = self._read_command()
            except BackendError as e:
                raise Unavailable(f"cannot verify backends: {e}") from e

            if self._agree(direct, command):
                return True
            try:
                self._reconcile_locked(force_bump=False)
            except Unavailable as e:
                raise Inconsistent(f"backends disagree and reconcile failed: {e.message}") from e
            return False

    # ---- mutations ----

    def apply(self, mutation: TaskMutation) -> MutationOutcome:
        """
        Run one mutation through the command runner.

        - rejected by the store -> MutationFailed with the store's message; no bump
        - timed out             -> outcome unknown: reconcile, then MutationFailed
        - success               -> re-read, bump generation once, return
        """
        with self._write_lock:
            started = self._wall_time()
            args = mutation.to_args()
            try:
                output = self._commands.execute(args)
            except CommandNonZeroExit as e:
                logger.warning("Mutation rejected (%s): %s", mutation.describe(), e.message)
                raise MutationFailed(e.message) from e
            except CommandTimeout as e:
                logger.error("Mutation timed out (%s); reconciling", mutation.describe())
                try:
                    self._reconcile_locked(force_bump=False)
                except Unavailable:
                    logger.exception("Reconcile after timed-out mutation failed")
                raise MutationFailed(f"{mutation.describe()} timed out; state reloaded from the store") from e
            except BackendError as e:
                raise MutationFailed(str(e)) from e

            self._last_mutation_at = started
            logger.info("Applied %s", mutation.describe())

            try:
                read = self._read()
            except Unavailable:
                logger.exception("Re-read after %s failed; keeping previous records", mutation.describe())
                snap = self._bump(replace(self._snapshot, stale=True))
            else:
                if read.source is Backend.DIRECT:
                    read = self._cross_check_locked(read)
                snap = self._publish(read, force_bump=True)
            return MutationOutcome(mutation=mutation, generation=snap.generation, output=output)

    def import_records(self, records: Iterable[TaskRecord]) -> TaskSnapshot:
        """Push records through the bulk channel (a restore), then reconcile."""
        rows = [r.to_json() for r in records]
        with self._write_lock:
            try:
                self._bulk.import_(rows)
            except BackendError as e:
                raise MutationFailed(f"import failed: {e}") from e
            self._last_mutation_at = self._wall_time()
            return self._reconcile_locked(force_bump=True)

    # ---- internals (callers hold _write_lock) ----

    def _with_retries(self, label: str, fn: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except (CommandNonZeroExit, CommandTimeout, ParseFailure) as e:
                if attempt >= self._retries:
                    raise
                delay = self._backoff * (2**attempt)
                attempt += 1
                logger.warning("%s failed (%s); retry %s/%s in %.2fs", label, e, attempt, self._retries, delay)
                self._sleep(delay)

    def _direct_is_stale(self) -> bool:
        if self._last_mutation_at is None or self._direct is None:
            return False
        version = self._direct.data_version()
        if version is None:
            return False
        return self._last_mutation_at - version > self._freshness

    def _parse(self, rows: list[Any], source: Backend) -> _Read:
        records, skipped = parse_rows(rows, source=source)
        return _Read(records=records, skipped=skipped, source=source)

    def _read_command(self) -> _Read:
        return self._parse(self._with_retries("task export", self._commands.export), Backend.COMMAND)

    def _read(self) -> _Read:
        if self._direct is not None:
            try:
                direct = self._parse(self._direct.fetch_all(), Backend.DIRECT)
            except (StoreUnavailable, ParseFailure) as e:
                logger.warning("Direct read failed (%s); falling back to task export", e)
            else:
                if direct.skipped:
                    logger.warning(
                        "Direct store returned %s malformed record(s); falling back to task export",
                        direct.skipped,
                    )
                elif self._direct_is_stale():
                    logger.info("Direct store is behind the last mutation; using task export")
                else:
                    return direct

        try:
            return self._read_command()
        except BackendError as e:
            logger.warning("Command read failed after retries (%s); escalating to bulk export", e)

        try:
            rows = self._bulk.export()
        except BackendError as e:
            raise Unavailable(f"no backend could read tasks: {e}") from e
        return self._parse(rows, Backend.BULK)

    def _agree(self, direct: _Read, command: _Read) -> bool:
        direct_sig = backend_signature(direct.records)
        command_sig = backend_signature(command.records)
        if direct_sig == command_sig:
            return True
        logger.warning(
            "Backends disagree (direct=%s records, command=%s records, %s differing); reconciling",
            len(direct_sig),
            len(command_sig),
            len(direct_sig ^ command_sig),
        )
        return False

    def _cross_check_locked(self, direct: _Read) -> _Read:
        """
        After a mutation served from the direct store: confirm it against
        `task export`. On disagreement the bulk export wins (the command read if
        the bulk channel is down too).
        """
        try:
            command = self._read_command()
        except BackendError as e:
            logger.warning("Cannot cross-check the direct store (%s); keeping its records", e)
            return direct
        if self._agree(direct, command):
            return direct
        try:
            return self._parse(self._bulk.export(), Backend.BULK)
        except BackendError as e:
            logger.warning("Bulk export failed (%s); using task export", e)
            return command

    def _reconcile_locked(self, *, force_bump: bool) -> TaskSnapshot:
        try:
            rows = self._bulk.export()
        except BackendError as e:
            raise Unavailable(f"bulk export failed: {e}") from e
        snap = self._publish(self._parse(rows, Backend.BULK), force_bump=force_bump)
        logger.info("Reconciled from bulk export: %s records, generation=%s", len(snap.records), snap.generation)
        return snap

    def _publish(self, read: _Read, *, force_bump: bool) -> TaskSnapshot:
        sig = record_signature(read.records)
        current = self._snapshot
        now = self._clock()

        changed = current.source is None or sig != current.signature or current.stale
        if not changed and not force_bump:
            # Same data: keep the record objects (and the generation) reports were built on.
            self._snapshot = replace(current, source=read.source, fetched_at=now, skipped=read.skipped)
            return self._snapshot

        return self._bump(
            TaskSnapshot(
                generation=current.generation,
                records=read.records,
                source=read.source,
                fetched_at=now,
                skipped=read.skipped,
                signature=sig,
            )
        )

    def _bump(self, snap: TaskSnapshot) -> TaskSnapshot:
        new = replace(snap, generation=self._snapshot.generation + 1)
        self._snapshot = new
        logger.info(
            "Published generation=%s records=%s source=%s skipped=%s",
            new.generation,
            len(new.records),
            new.source.value if new.source else "-",
            new.skipped,
        )
        for listener in list(self._listeners):
            try:
                listener(new.generation)
            except Exception:
                logger.exception("Generation listener failed")
        return new
