# tests/test_command_runner.py

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from taskdeck.core.errors import (
    AuthFailure,
    CommandNonZeroExit,
    CommandTimeout,
    NetworkFailure,
    ParseFailure,
    StoreUnavailable,
)
from taskdeck.data import bulk, command_runner, sync_trigger
from taskdeck.data.bulk import ExportFormat, JsonFileBulkChannel, write_export
from taskdeck.data.command_runner import TaskwarriorCommandRunner, parse_export, run_task
from taskdeck.data.sync_trigger import TaskwarriorSyncTrigger
from taskdeck.tasks.task_models import TaskRecord


class FakeCompleted:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_run_task_adds_overrides_and_returns_stdout(monkeypatch) -> None:
    seen = {}

    def fake_run(cmd, **kw):
        seen["cmd"] = cmd
        seen["kw"] = kw
        return FakeCompleted(stdout="ok\n")

    monkeypatch.setattr(command_runner.subprocess, "run", fake_run)
    out = run_task("task", ["1", "done"], taskrc_path=Path("/tmp/rc"), timeout=3.0)

    assert out == "ok"
    assert seen["cmd"][:2] == ["task", "rc:/tmp/rc"]
    assert "rc.confirmation=no" in seen["cmd"]
    assert seen["cmd"][-2:] == ["1", "done"]
    assert seen["kw"]["timeout"] == 3.0


def test_run_task_maps_failures(monkeypatch) -> None:
    monkeypatch.setattr(
        command_runner.subprocess, "run", lambda cmd, **kw: FakeCompleted(1, "", "No tasks specified.")
    )
    with pytest.raises(CommandNonZeroExit) as exc:
        run_task("task", ["9", "done"])
    assert exc.value.returncode == 1
    assert exc.value.message == "No tasks specified."

    def timeout(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, kw["timeout"])

    monkeypatch.setattr(command_runner.subprocess, "run", timeout)
    with pytest.raises(CommandTimeout):
        run_task("task", ["export"])


def test_missing_binary_is_nonzero_exit(tmp_path: Path) -> None:
    with pytest.raises(CommandNonZeroExit) as exc:
        run_task(str(tmp_path / "no-such-task-binary"), ["export"])
    assert exc.value.returncode == 127


def test_parse_export() -> None:
    assert parse_export("") == []
    assert parse_export('[{"uuid": "a"}]') == [{"uuid": "a"}]
    with pytest.raises(ParseFailure):
        parse_export("{oops")
    with pytest.raises(ParseFailure):
        parse_export('{"uuid": "a"}')


def test_command_runner_export(monkeypatch) -> None:
    monkeypatch.setattr(
        command_runner.subprocess, "run", lambda cmd, **kw: FakeCompleted(stdout=json.dumps([{"uuid": "x"}]))
    )
    assert TaskwarriorCommandRunner().export() == [{"uuid": "x"}]


@pytest.mark.parametrize(
    ("stderr", "expected"),
    [
        ("Could not connect to server", NetworkFailure),
        ("Server returned 401 Unauthorized", AuthFailure),
    ],
)
def test_sync_trigger_classifies_failures(monkeypatch, stderr, expected) -> None:
    def fail(*args, **kw):
        raise CommandNonZeroExit(["sync"], 1, stderr)

    monkeypatch.setattr(sync_trigger, "run_task", fail)
    with pytest.raises(expected):
        TaskwarriorSyncTrigger().run()


def test_bulk_channel_imports_through_stdin(monkeypatch) -> None:
    seen = {}

    def fake_run_task(task_bin, args, **kw):
        seen["args"] = args
        seen["stdin"] = kw.get("stdin")
        return ""

    monkeypatch.setattr(bulk, "run_task", fake_run_task)
    bulk.TaskwarriorBulkChannel().import_([{"uuid": "a", "description": "x"}])
    assert seen["args"] == ["import", "-"]
    assert json.loads(seen["stdin"]) == [{"uuid": "a", "description": "x"}]


def test_json_file_channel_merges_by_uuid(tmp_path: Path) -> None:
    path = tmp_path / "backup.json"
    channel = JsonFileBulkChannel(path)
    with pytest.raises(StoreUnavailable):
        channel.export()

    channel.import_([{"uuid": "a", "description": "one"}])
    channel.import_([{"uuid": "a", "description": "uno"}, {"uuid": "b", "description": "two"}])
    assert channel.export() == [{"uuid": "a", "description": "uno"}, {"uuid": "b", "description": "two"}]

    path.write_text("{broken", "utf-8")
    with pytest.raises(ParseFailure):
        channel.export()


def test_write_export_json_and_csv(tmp_path: Path) -> None:
    records = [
        TaskRecord.from_json({"uuid": "a", "description": "one", "entry": "20240101T000000Z", "tags": ["x", "y"]}),
        TaskRecord.from_json({"uuid": "b", "description": "two", "priority": "M", "id": 4}),
    ]
    assert write_export(records, tmp_path / "out.json", ExportFormat.JSON) == 2
    data = json.loads((tmp_path / "out.json").read_text("utf-8"))
    assert [d["uuid"] for d in data] == ["a", "b"]

    assert write_export(records, tmp_path / "out.csv", ExportFormat.CSV) == 2
    lines = (tmp_path / "out.csv").read_text("utf-8").splitlines()
    assert lines[0].startswith("id,uuid,status")
    assert lines[1].endswith("x;y")
    assert lines[2].startswith("4,b,pending,two,,M")
