"""Ownership of a single OS pipe.

A :class:`PipePair` owns both descriptors of one pipe: the read end and the
write end. Each end is closed independently and at most once; closing never
raises, a failing ``close`` is only logged.
"""

from __future__ import annotations

import array
import errno
import fcntl
import logging
import os
import termios

from .errors import ShortReadError
from .syscall import syscall

__all__ = ["INVALID_FD", "PipePair", "close_fd"]

logger = logging.getLogger(__name__)

INVALID_FD = -1


def close_fd(fd: int) -> None:
    """Close ``fd``, reporting a failure as a diagnostic only."""
    try:
        os.close(fd)
    except OSError as e:
        if e.errno == errno.EBADF:
            cause = "invalid file descriptor"
        elif e.errno == errno.EINTR:
            cause = "was interrupted by a signal"
        elif e.errno == errno.EIO:
            cause = "I/O error occurred"
        else:
            cause = f"unspecified errno {e.errno}"
        logger.warning(f"close failed for fd={fd} - {cause}")


def _bytes_available(fd: int) -> int:
    """Number of bytes readable from ``fd`` without blocking (FIONREAD)."""
    buf = array.array("i", [0])
    syscall(fcntl.ioctl, fd, termios.FIONREAD, buf, True)
    return buf[0]


class PipePair:
    """One OS pipe with an owned read end and an owned write end.

    Both ends start closed; :meth:`init` creates them. The pair is move-only:
    :meth:`move` hands the descriptors to a new instance and copying is
    refused.

    Example:
        with PipePair() as pipe:
            pipe.init()
            os.write(pipe.write_fd, b"ping")
            pipe.close_write()
            data = pipe.read_available()
    """

    def __init__(self) -> None:
        self._read_fd = INVALID_FD
        self._write_fd = INVALID_FD

    @property
    def read_fd(self) -> int:
        return self._read_fd

    @property
    def write_fd(self) -> int:
        return self._write_fd

    def init(self) -> None:
        """Create the pipe.

        Raises:
            SyscallError: If the pipe cannot be created
        """
        self._read_fd, self._write_fd = syscall(os.pipe)

    def close_read(self) -> None:
        if self._read_fd != INVALID_FD:
            close_fd(self._read_fd)
            self._read_fd = INVALID_FD

    def close_write(self) -> None:
        if self._write_fd != INVALID_FD:
            close_fd(self._write_fd)
            self._write_fd = INVALID_FD

    def close(self) -> None:
        self.close_read()
        self.close_write()

    def read_available(self) -> bytes:
        """Read exactly the bytes currently buffered in the pipe.

        Returns an empty result when nothing is buffered; never blocks.

        Raises:
            SyscallError: If the availability query or the read fails
            ShortReadError: If fewer bytes arrive than were reported
        """
        available = _bytes_available(self._read_fd)
        if available <= 0:
            return b""
        data = syscall(os.read, self._read_fd, available)
        if len(data) < available:
            raise ShortReadError(available, len(data))
        return data

    def move(self) -> PipePair:
        """Transfer both descriptors to a new pair, leaving this one closed."""
        moved = PipePair()
        moved._read_fd, self._read_fd = self._read_fd, INVALID_FD
        moved._write_fd, self._write_fd = self._write_fd, INVALID_FD
        return moved

    def __copy__(self) -> PipePair:
        raise TypeError("PipePair owns OS descriptors and cannot be copied; use move()")

    def __deepcopy__(self, memo: dict) -> PipePair:
        return self.__copy__()

    def __enter__(self) -> PipePair:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PipePair(read_fd={self._read_fd}, write_fd={self._write_fd})"
