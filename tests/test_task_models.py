# tests/test_task_models.py

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from taskdeck.core.errors import MalformedRecord
from taskdeck.tasks.task_models import (
    Priority,
    TaskRecord,
    TaskStatus,
    format_timestamp,
    parse_timestamp,
)

UTC = timezone.utc


def test_parse_timestamp_accepts_export_epoch_and_iso_forms() -> None:
    expected = datetime(2025, 10, 7, 19, 29, 37, tzinfo=UTC)
    assert parse_timestamp("20251007T192937Z") == expected
    assert parse_timestamp(int(expected.timestamp())) == expected
    assert parse_timestamp(str(int(expected.timestamp()))) == expected
    assert parse_timestamp("2025-10-07T19:29:37Z") == expected
    assert parse_timestamp("") is None
    assert format_timestamp(expected) == "20251007T192937Z"


def test_parse_timestamp_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_timestamp("next tuesday")


def test_from_json_reads_export_row() -> None:
    rec = TaskRecord.from_json(
        {
            "id": 3,
            "uuid": "u-1",
            "description": "Ship it",
            "status": "pending",
            "entry": "20240101T090000Z",
            "modified": "20240102T090000Z",
            "due": "20240105T000000Z",
            "project": "work.release",
            "priority": "h",
            "tags": ["a", "b"],
            "depends": "x,y",
            "urgency": 9.5,
            "annotations": [{"entry": "20240101T100000Z", "description": "note"}],
        }
    )
    assert rec.id == 3
    assert rec.status is TaskStatus.PENDING
    assert rec.priority is Priority.HIGH
    assert rec.tags == frozenset({"a", "b"})
    assert rec.depends == ("x", "y")
    assert rec.is_blocked()
    assert rec.annotations[0].description == "note"
    assert rec.due == datetime(2024, 1, 5, tzinfo=UTC)


def test_from_json_defaults_and_unknown_values() -> None:
    rec = TaskRecord.from_json({"uuid": "u", "description": "d", "status": "weird", "id": 0})
    assert rec.status is TaskStatus.PENDING
    assert rec.priority is Priority.NONE
    assert rec.id is None
    assert rec.entry == datetime.fromtimestamp(0, tz=UTC)


@pytest.mark.parametrize(
    "row",
    [
        {"description": "no uuid"},
        {"uuid": "u"},
        {"uuid": "u", "description": "d", "due": "not a date"},
        ["not", "a", "dict"],
    ],
)
def test_from_json_malformed(row) -> None:
    with pytest.raises(MalformedRecord):
        TaskRecord.from_json(row)


def test_to_json_is_accepted_by_from_json() -> None:
    rec = TaskRecord.from_json(
        {
            "uuid": "u",
            "description": "d",
            "status": "waiting",
            "entry": "20240101T090000Z",
            "wait": "20240201T000000Z",
            "tags": ["x"],
        }
    )
    assert TaskRecord.from_json(rec.to_json()) == rec


def test_active_and_overdue_are_derived() -> None:
    now = datetime(2024, 1, 10, tzinfo=UTC)
    base = TaskRecord(uuid="u", description="d", status=TaskStatus.PENDING, entry=now - timedelta(days=5))

    started = replace(base, start=now - timedelta(hours=1))
    assert started.is_active()
    assert not base.is_active()

    late = replace(base, due=now - timedelta(days=1))
    assert late.is_overdue(now)

    done_late = replace(base, status=TaskStatus.COMPLETED, due=now - timedelta(days=1), end=now)
    assert not done_late.is_overdue(now)
