# src/taskdeck/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.engine import ResultStatus
from ..core.state import AppState
from ..query.reports import ReportKind

logger = logging.getLogger(__name__)

PROMPT = "taskdeck> "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]) -> threading.Thread:
    """
    Read stdin on a daemon thread and hand lines to the event loop.

    A daemon thread (rather than asyncio.to_thread) so a blocked input() never
    holds up interpreter shutdown. None marks EOF.
    """

    def _reader() -> None:
        while True:
            try:
                line: str | None = sys.stdin.readline()
            except (OSError, ValueError):
                line = ""
            if not line:
                line = None
            try:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\n") if line else None)
            except RuntimeError:
                return  # loop closed
            if line is None:
                return

    t = threading.Thread(target=_reader, name="console-stdin", daemon=True)
    t.start()
    return t


def _preload(state: AppState) -> None:
    """Start loading the default view in the background; the prompt stays responsive."""
    result = state.engine.query(state.view, ReportKind.TASK_LIST)
    if result.future is None:
        return

    def _done(fut) -> None:
        if fut.cancelled():
            return
        res = fut.result()
        if res.status is ResultStatus.FAILED and res.error is not None:
            _print_ts(f"[DATA] Could not load tasks: {res.error.message}")
        else:
            logger.info("Loaded %s task(s) in view (generation=%s)", len(res.value), res.generation)

    result.future.add_done_callback(_done)


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands, /exit to quit.\n")

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(loop, queue)
    _preload(state)

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (mutations, imports)
        loop.call_soon_threadsafe(_print_ts, text)

    while True:
        print(PROMPT, end="", flush=True)
        line = await queue.get()
        if line is None:
            logger.info("Console EOF received, exiting.")
            print()
            break

        user_input = line.strip()
        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            _print_ts("Commands start with '/'. Try /help.")
            continue

        # Handlers may block on backend I/O, so they run off the event loop.
        try:
            response = await asyncio.to_thread(_handle_locked, state, user_input, emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is not None:
            _print_ts(response)

    logger.info("Console connector finished.")


def _handle_locked(state: AppState, line: str, emit) -> str | None:
    with state.lock:
        return command_registry.handle(state, line, emit=emit)
