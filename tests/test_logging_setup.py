# tests/test_logging_setup.py

from __future__ import annotations

import logging

from taskdeck.logging_setup import _ConsoleFilter, level_from_name


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_level_from_name() -> None:
    assert level_from_name("debug") == logging.DEBUG
    assert level_from_name(" Warning ") == logging.WARNING
    assert level_from_name("chatty") == logging.INFO
    assert level_from_name(None, default=logging.ERROR) == logging.ERROR


def test_console_filter_quiets_background_and_third_party() -> None:
    f = _ConsoleFilter()
    assert f.filter(_record("taskdeck.cli.commands", logging.INFO))
    assert not f.filter(_record("taskdeck.sync.sync_coordinator", logging.INFO))
    assert f.filter(_record("taskdeck.data.coordinator", logging.WARNING))
    assert not f.filter(_record("urllib3", logging.WARNING))
    assert f.filter(_record("py.warnings", logging.ERROR))
