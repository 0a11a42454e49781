# src/taskdeck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs on one asyncio loop:
- console REPL,
- background sync loop (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.engine.close()
    except Exception:
        logger.exception("Engine shutdown failed.")


async def _run(state: AppState) -> None:
    sync_task: asyncio.Task | None = None
    if state.engine.sync is not None:
        sync_task = asyncio.create_task(state.engine.sync.run(), name="taskdeck-sync")

    try:
        await run_console_loop(state)
    finally:
        if sync_task is not None:
            sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sync_task


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
