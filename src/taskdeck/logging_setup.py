# src/taskdeck/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER = "taskdeck"

# Loggers that run off the console's thread; on screen only problems matter.
_BACKGROUND_PREFIXES = ("taskdeck.sync.", "taskdeck.data.")


class _ConsoleFilter(logging.Filter):
    """
    Keep the prompt readable while the engine works in the background:
    taskdeck logs pass (background components only from WARNING),
    everything else (third-party, captured py.warnings) only from ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith(APP_LOGGER + "."):
            return record.levelno >= logging.ERROR
        if record.name.startswith(_BACKGROUND_PREFIXES):
            return record.levelno >= logging.WARNING
        return True


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    """'debug' -> logging.DEBUG; unknown names give `default`."""
    level = logging.getLevelName(str(name or "").strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskdeck",
    console_level: int | str = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backups: int = 3,
) -> Path:
    """
    Install two root handlers and return the log file path.

    The stderr handler is filtered for interactive use. The rotating file
    handler gets everything down to `file_level`: cache hits, backend
    fallbacks, skipped records.

    Call once, before the first log line. Calling again replaces the handlers.
    """
    if isinstance(console_level, str):
        console_level = level_from_name(console_level)

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskdeck.log"

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter("%(levelname).1s %(name)s: %(message)s"))
    console.addFilter(_ConsoleFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    # warnings.warn(...) -> 'py.warnings' logger
    logging.captureWarnings(True)
    return log_file
