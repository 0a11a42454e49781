# tests/test_bootstrap.py

from __future__ import annotations

import sqlite3
from types import SimpleNamespace

from taskdeck.cli.bootstrap import build_read_store, create_initial_state
from taskdeck.data.task_store import TaskChampionReadStore
from taskdeck.query.filters import FilterSpec


def test_read_store_needs_an_existing_database(settings: SimpleNamespace) -> None:
    assert build_read_store(settings) is None

    settings.task_data_dir.mkdir(parents=True)
    sqlite3.connect(settings.task_data_dir / "taskchampion.sqlite3").close()
    assert isinstance(build_read_store(settings), TaskChampionReadStore)

    settings.direct_read_enabled = False
    assert build_read_store(settings) is None


def test_create_initial_state_wires_engine(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)
    try:
        assert settings.data_dir.is_dir()
        assert state.engine.sync is None
        assert state.engine.current_generation() == 0
        assert state.view == FilterSpec.default_view()
    finally:
        state.engine.close()


def test_sync_enabled_adds_a_sync_coordinator(settings: SimpleNamespace) -> None:
    settings.sync_enabled = True
    state = create_initial_state(settings=settings)
    try:
        assert state.engine.sync is not None
        assert state.engine.sync.status.state == "idle"
    finally:
        state.engine.close()
