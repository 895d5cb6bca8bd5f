"""Exception classes for the runtime module.

childproc runtime module v0.1.0
"""

from __future__ import annotations

__all__ = [
    "ChildProcError",
    "InvalidStateError",
    "SyscallError",
    "ConsistencyError",
    "ShortReadError",
    "WatcherUnavailableError",
]


class ChildProcError(Exception):
    """Base exception of the runtime module."""
    pass


class InvalidStateError(ChildProcError):
    """Operation attempted outside its lifecycle state or without a process."""
    pass


class SyscallError(ChildProcError):
    """An OS call unexpectedly reported failure.

    Attributes:
        site: Call site as ``file:line``
        call: Name of the failed call
        errno: Error number captured right after the failure
        strerror: Human readable cause
    """

    def __init__(self, site: str, call: str, errno: int, strerror: str) -> None:
        self.site = site
        self.call = call
        self.errno = errno
        self.strerror = strerror
        super().__init__(f'{site}: {call} failed - errno {errno} ~ "{strerror}"')


class ConsistencyError(ChildProcError):
    """The OS contradicted the launcher's own bookkeeping."""
    pass


class ShortReadError(ConsistencyError):
    """Fewer bytes were read from a pipe than it reported as available.

    Attributes:
        expected: Bytes reported by FIONREAD
        received: Bytes actually read
    """

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(
            f"failed to read all available bytes from pipe "
            f"(expected {expected}, got {received})"
        )


class WatcherUnavailableError(ChildProcError):
    """No usable exit-watcher backend on this platform."""
    pass
