# tests/test_coordinator.py

from __future__ import annotations

import logging

import pytest

from taskdeck.core.errors import (
    CommandNonZeroExit,
    CommandTimeout,
    MutationFailed,
    ParseFailure,
    Unavailable,
)
from taskdeck.data.coordinator import Backend, DataAccessCoordinator
from taskdeck.tasks.task_models import TaskRecord
from taskdeck.tasks.task_mutations import TaskMutation

from .conftest import NOW
from .fakes import FakeBulkChannel, FakeCommandRunner, FakeReadStore, FakeTaskwarrior, make_row


def build(
    db: FakeTaskwarrior,
    *,
    direct: bool = True,
    wall: float = 1_000.0,
    read_store: FakeReadStore | None = None,
):
    if read_store is None and direct:
        read_store = FakeReadStore(db)
    runner = FakeCommandRunner(db)
    bulk = FakeBulkChannel(db)
    sleeps: list[float] = []
    coord = DataAccessCoordinator(
        read_store=read_store,
        command_runner=runner,
        bulk_channel=bulk,
        retries=2,
        backoff_seconds=0.1,
        freshness_threshold_seconds=2.0,
        clock=lambda: NOW,
        wall_time=lambda: wall,
        sleep=sleeps.append,
    )
    return coord, read_store, runner, bulk, sleeps


def test_first_read_uses_direct_store_and_publishes_generation_one(db) -> None:
    coord, _, runner, _, _ = build(db)
    assert coord.current_generation() == 0

    snap = coord.fetch_all()
    assert snap.source is Backend.DIRECT
    assert snap.generation == 1
    assert {r.uuid for r in snap.records} == {"a", "b", "c"}
    assert runner.export_calls == 0


def test_unchanged_reread_keeps_generation_and_records(db) -> None:
    coord, *_ = build(db)
    first = coord.fetch_all()
    second = coord.fetch_all()
    assert second.generation == first.generation
    assert second.records is first.records


def test_changed_reread_bumps_generation(db) -> None:
    coord, *_ = build(db)
    coord.fetch_all()
    db.rows["z"] = make_row("z", "pulled from sync")
    assert coord.fetch_all().generation == 2


def test_direct_unavailable_falls_back_to_command(db) -> None:
    coord, store, runner, bulk, _ = build(db)
    store.available = False
    snap = coord.fetch_all()
    assert snap.source is Backend.COMMAND
    assert runner.export_calls == 1
    assert bulk.export_calls == 0


def test_command_retries_with_backoff_then_succeeds(db) -> None:
    coord, _, runner, _, sleeps = build(db, direct=False)
    runner.export_errors = [CommandTimeout("slow"), ParseFailure("garbled")]
    snap = coord.fetch_all()
    assert snap.source is Backend.COMMAND
    assert runner.export_calls == 3
    assert sleeps == [0.1, 0.2]


def test_exhausted_command_path_escalates_to_bulk(db) -> None:
    coord, _, runner, bulk, _ = build(db, direct=False)
    runner.export_errors = [CommandNonZeroExit(["export"], 2, "boom")] * 3
    snap = coord.fetch_all()
    assert snap.source is Backend.BULK
    assert bulk.export_calls == 1


def test_all_backends_down_raises_unavailable(db) -> None:
    coord, store, runner, bulk, _ = build(db)
    store.available = False
    runner.export_errors = [CommandTimeout("t")] * 3
    bulk.available = False
    with pytest.raises(Unavailable):
        coord.fetch_all()
    assert coord.current_generation() == 0


def test_direct_store_behind_last_mutation_is_skipped(db) -> None:
    coord, store, runner, _, _ = build(db, wall=1_000.0)
    coord.fetch_all()

    store.version = 990.0  # last write 10s before the mutation started
    coord.apply(TaskMutation.complete("a"))
    assert coord.snapshot.source is Backend.COMMAND

    store.version = 999.5  # within the freshness threshold
    coord.fetch_all()
    assert coord.snapshot.source is Backend.DIRECT


def test_successful_apply_bumps_once_and_notifies(db) -> None:
    coord, *_ = build(db)
    coord.fetch_all()
    seen: list[int] = []
    coord.add_listener(seen.append)

    outcome = coord.apply(TaskMutation.add("new task"))

    assert outcome.generation == 2
    assert seen == [2]
    assert "new task" in {r.description for r in coord.snapshot.records}


def test_rejected_mutation_raises_verbatim_and_keeps_generation(db) -> None:
    coord, _, runner, _, _ = build(db)
    coord.fetch_all()
    runner.execute_error = CommandNonZeroExit(["x", "done"], 1, "No tasks specified.")

    with pytest.raises(MutationFailed) as exc:
        coord.apply(TaskMutation.complete("x"))

    assert exc.value.message == "No tasks specified."
    assert coord.current_generation() == 1


def test_timed_out_mutation_reconciles_then_fails(db) -> None:
    coord, _, runner, bulk, _ = build(db)
    coord.fetch_all()
    # The command did land before the timeout hit.
    db.rows["a"]["status"] = "completed"
    runner.execute_error = CommandTimeout("task a done timed out")

    with pytest.raises(MutationFailed):
        coord.apply(TaskMutation.complete("a"))

    assert bulk.export_calls == 1
    assert coord.current_generation() == 2
    assert coord.snapshot.source is Backend.BULK


def test_malformed_rows_are_skipped_and_counted(db, caplog) -> None:
    db.rows["bad"] = {"uuid": "bad", "status": "pending"}
    coord, *_ = build(db)
    with caplog.at_level(logging.WARNING, logger="taskdeck.data.coordinator"):
        snap = coord.fetch_all()
    assert snap.skipped == 1
    assert len(snap.records) == 3
    assert "malformed" in caplog.text


def test_verify_disagreement_logs_and_reconciles(db, caplog) -> None:
    other = FakeReadStore(FakeTaskwarrior([make_row("a", "stale copy")]))
    coord, _, _, bulk, _ = build(db, read_store=other)

    with caplog.at_level(logging.WARNING, logger="taskdeck.data.coordinator"):
        assert coord.verify() is False
    assert "disagree" in caplog.text
    assert bulk.export_calls == 1


def test_verify_agreement(db) -> None:
    coord, *_ = build(db)
    assert coord.verify() is True


def test_import_records_goes_through_bulk_and_bumps(db) -> None:
    coord, _, _, bulk, _ = build(db)
    coord.fetch_all()
    restored = TaskRecord.from_json(make_row("r", "restored"))

    snap = coord.import_records([restored])

    assert bulk.imported and bulk.imported[0][0]["uuid"] == "r"
    assert snap.generation == 2
    assert "r" in {r.uuid for r in snap.records}


def test_content_change_under_same_stamp_bumps_generation(db) -> None:
    coord, *_ = build(db)
    coord.fetch_all()

    # Pulled by a sync: new text, same `modified` second.
    db.rows["a"]["description"] = "rewritten on another machine"
    snap = coord.fetch_all()

    assert snap.generation == 2
    assert "rewritten on another machine" in {r.description for r in snap.records}


def test_urgency_only_change_keeps_generation(db) -> None:
    coord, *_ = build(db)
    coord.fetch_all()
    db.rows["a"]["urgency"] = 3.25
    assert coord.fetch_all().generation == 1


def test_malformed_direct_row_falls_back_to_command(db) -> None:
    replica = FakeTaskwarrior(db.export())
    del replica.rows["a"]["description"]
    coord, _, runner, _, _ = build(db, read_store=FakeReadStore(replica))

    snap = coord.fetch_all()

    assert snap.source is Backend.COMMAND
    assert snap.skipped == 0
    assert {r.uuid for r in snap.records} == {"a", "b", "c"}
    assert runner.export_calls == 1


def test_direct_reread_after_mutation_is_cross_checked(db, caplog) -> None:
    # A replica that never sees writes made through `task`.
    replica = FakeReadStore(FakeTaskwarrior(db.export()))
    coord, _, runner, bulk, _ = build(db, read_store=replica)
    coord.fetch_all()

    with caplog.at_level(logging.WARNING, logger="taskdeck.data.coordinator"):
        outcome = coord.apply(TaskMutation.complete("a"))

    assert outcome.generation == 2
    assert coord.snapshot.source is Backend.BULK
    assert {r.uuid: r.status.value for r in coord.snapshot.records}["a"] == "completed"
    assert (runner.export_calls, bulk.export_calls) == (1, 1)
    assert "disagree" in caplog.text


def test_agreeing_direct_reread_after_mutation_is_kept(db) -> None:
    coord, _, runner, bulk, _ = build(db)
    coord.fetch_all()
    coord.apply(TaskMutation.complete("a"))
    assert coord.snapshot.source is Backend.DIRECT
    assert (runner.export_calls, bulk.export_calls) == (1, 0)
