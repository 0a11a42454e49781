# src/taskdeck/core/errors.py

"""
Error types.

Two tiers:
- Backend errors are raised by concrete store/CLI/bulk/sync implementations.
- Engine errors are what the rest of the app sees. The data access coordinator
  catches every backend error and translates it into one of these.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"
    MUTATION_FAILED = "mutation_failed"
    SYNC_FAILED = "sync_failed"
    INCONSISTENT = "inconsistent"


# ---- backend tier ----


class BackendError(Exception):
    """Raised by port implementations; never escapes the coordinator."""


class StoreUnavailable(BackendError):
    pass


class ParseFailure(BackendError):
    pass


class CommandNonZeroExit(BackendError):
    def __init__(self, args: list[str], returncode: int, stderr: str, stdout: str = "") -> None:
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.stderr:
            return self.stderr
        if self.stdout:
            return self.stdout
        return f"task {' '.join(self.command)} exited with status {self.returncode}"


class CommandTimeout(BackendError):
    pass


class NetworkFailure(BackendError):
    pass


class AuthFailure(BackendError):
    pass


class MalformedRecord(ValueError):
    """A single export row could not be turned into a TaskRecord."""


# ---- engine tier ----


class EngineError(Exception):
    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unavailable(EngineError):
    kind = ErrorKind.UNAVAILABLE


class Malformed(EngineError):
    kind = ErrorKind.MALFORMED


class MutationFailed(EngineError):
    kind = ErrorKind.MUTATION_FAILED


class SyncFailed(EngineError):
    kind = ErrorKind.SYNC_FAILED


class Inconsistent(EngineError):
    kind = ErrorKind.INCONSISTENT
