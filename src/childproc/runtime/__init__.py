"""Runtime module for launching and supervising a single child process.

This module provides a launcher state machine with owned stdin/stdout/stderr
pipes, exit watchers for bounded waiting, and anyio helpers for awaiting a
child from async code.
"""

from __future__ import annotations

from .aio import CompletedRun, feed_stdin, run, wait_finished
from .errors import (
    ChildProcError,
    ConsistencyError,
    InvalidStateError,
    ShortReadError,
    SyscallError,
    WatcherUnavailableError,
)
from .launcher import (
    EXEC_FAILURE_STATUS,
    INVALID_PID,
    ExitStatus,
    Launcher,
    LauncherState,
    States,
    Termination,
)
from .pipes import PipePair
from .syscall import syscall
from .watcher import ExitWatcher, open_exit_watcher

__all__ = [
    "EXEC_FAILURE_STATUS",
    "INVALID_PID",
    "ChildProcError",
    "CompletedRun",
    "ConsistencyError",
    "ExitStatus",
    "ExitWatcher",
    "InvalidStateError",
    "Launcher",
    "LauncherState",
    "PipePair",
    "ShortReadError",
    "States",
    "SyscallError",
    "Termination",
    "WatcherUnavailableError",
    "feed_stdin",
    "open_exit_watcher",
    "run",
    "syscall",
    "wait_finished",
]
