"""Process exit watchers.

An exit watcher is a pollable object bound to one child pid. It becomes
ready once the child has terminated, without reaping it, so the launcher can
wait with a timeout and then reap without racing anyone.

Backends:
- pidfd (Linux >= 5.3): ``os.pidfd_open`` polled with ``select.poll``
- kqueue (macOS/BSD): ``KQ_FILTER_PROC`` with ``KQ_NOTE_EXIT``
"""

from __future__ import annotations

import logging
import os
import select
from typing import Protocol

from ..config import WatcherKind
from .errors import WatcherUnavailableError
from .pipes import INVALID_FD, close_fd
from .syscall import syscall

__all__ = [
    "ExitWatcher",
    "PidfdWatcher",
    "KqueueWatcher",
    "open_exit_watcher",
    "resolve_watcher_kind",
]

logger = logging.getLogger(__name__)

HAS_PIDFD = hasattr(os, "pidfd_open")
HAS_KQUEUE = hasattr(select, "kqueue")


class ExitWatcher(Protocol):
    """Capability interface: {open, poll, fileno, close}."""

    pid: int

    def poll(self, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for the child to exit.

        Negative waits indefinitely, zero returns immediately. Returns True
        once the child has terminated.
        """
        ...

    def fileno(self) -> int:
        """Descriptor that turns readable when the child exits."""
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> ExitWatcher:
        ...

    def __exit__(self, *exc_info: object) -> None:
        ...


class PidfdWatcher:
    """Exit watcher backed by a Linux pidfd."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self._fd = INVALID_FD
        self._fd = syscall(os.pidfd_open, pid, 0)

    def poll(self, timeout_ms: int) -> bool:
        poller = select.poll()
        poller.register(self._fd, select.POLLIN)
        # an empty result is the expected timeout, not a failure
        events = syscall(poller.poll, timeout_ms if timeout_ms >= 0 else None)
        return bool(events)

    def fileno(self) -> int:
        return self._fd

    def close(self) -> None:
        if self._fd != INVALID_FD:
            close_fd(self._fd)
            self._fd = INVALID_FD

    def __enter__(self) -> PidfdWatcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()


class KqueueWatcher:
    """Exit watcher backed by a kqueue process filter."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self._kq = None
        self._exited = False
        self._kq = syscall(select.kqueue)
        event = select.kevent(
            pid,
            filter=select.KQ_FILTER_PROC,
            flags=select.KQ_EV_ADD | select.KQ_EV_ONESHOT,
            fflags=select.KQ_NOTE_EXIT,
        )
        try:
            self._kq.control([event], 0, 0)
        except ProcessLookupError:
            # already exited (and possibly reaped) before registration
            self._exited = True

    def poll(self, timeout_ms: int) -> bool:
        if self._exited:
            return True
        timeout = None if timeout_ms < 0 else timeout_ms / 1000
        events = syscall(self._kq.control, None, 1, timeout)
        if events:
            self._exited = True
        return self._exited

    def fileno(self) -> int:
        return self._kq.fileno()

    def close(self) -> None:
        if self._kq is not None:
            self._kq.close()
            self._kq = None

    def __enter__(self) -> KqueueWatcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()


def resolve_watcher_kind(kind: WatcherKind) -> WatcherKind:
    """Turn ``AUTO`` into a concrete backend available on this platform.

    Raises:
        WatcherUnavailableError: If the requested backend is missing
    """
    if kind is WatcherKind.AUTO:
        if HAS_PIDFD:
            return WatcherKind.PIDFD
        if HAS_KQUEUE:
            return WatcherKind.KQUEUE
        raise WatcherUnavailableError(
            "no exit watcher available - need os.pidfd_open or select.kqueue"
        )
    if kind is WatcherKind.PIDFD and not HAS_PIDFD:
        raise WatcherUnavailableError("pidfd exit watcher is not available")
    if kind is WatcherKind.KQUEUE and not HAS_KQUEUE:
        raise WatcherUnavailableError("kqueue exit watcher is not available")
    return kind


def open_exit_watcher(pid: int, kind: WatcherKind = WatcherKind.AUTO) -> ExitWatcher:
    """Open an exit watcher for ``pid`` using the requested backend.

    Raises:
        WatcherUnavailableError: If the backend is missing
        SyscallError: If the OS refuses to create the watcher
    """
    kind = resolve_watcher_kind(kind)
    logger.debug(f"Opening {kind.value} exit watcher for pid={pid}")
    if kind is WatcherKind.PIDFD:
        return PidfdWatcher(pid)
    return KqueueWatcher(pid)
