"""Managed child process with owned stdin/stdout/stderr pipes.

childproc runtime module v0.1.0

This module provides:
- A four-state launcher (uninitialized -> ready -> running -> finished)
- Fork + dup2 + execv spawning with all three standard channels redirected
- Bounded, non-blocking or indefinite status polling through an exit watcher
- Incremental output draining into owned buffers
- Kill + reap on teardown so no zombie is left behind

Key design points:
- The only state-advancing call is update_and_get_state(); every other
  query reports what was last observed
- Between fork and exec the child only closes/duplicates descriptors and
  execs; if exec fails it leaves through os._exit() and never unwinds
- A Launcher owns OS resources: it cannot be copied, only moved or swapped
"""

from __future__ import annotations

import errno
import logging
import os
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, NoReturn, Sequence, Union

from ..config import WatcherKind, get_config
from .errors import ChildProcError, ConsistencyError, InvalidStateError, SyscallError
from .pipes import INVALID_FD, PipePair
from .syscall import syscall
from .watcher import ExitWatcher, open_exit_watcher

__all__ = [
    "EXEC_FAILURE_STATUS",
    "INVALID_PID",
    "KILL_SIGNAL",
    "ExitStatus",
    "Launcher",
    "LauncherState",
    "States",
    "Termination",
]

logger = logging.getLogger(__name__)

INVALID_PID = -1

# status of a child whose execv failed
EXEC_FAILURE_STATUS = 1

KILL_SIGNAL = signal.SIGKILL

StrPath = Union[str, bytes, "os.PathLike[str]"]


class LauncherState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RUNNING = "running"
    FINISHED = "finished"


class States(NamedTuple):
    """States observed before and after one update_and_get_state() call."""

    previous: LauncherState
    current: LauncherState


class Termination(Enum):
    EXITED = "exited"
    KILLED = "killed"
    DUMPED = "dumped"


@dataclass(frozen=True)
class ExitStatus:
    """How a child terminated.

    Attributes:
        termination: Normal exit, killed by a signal, or killed with a core dump
        value: Exit code for EXITED, signal number otherwise
    """

    termination: Termination
    value: int

    @property
    def signal(self) -> signal.Signals | None:
        if self.termination is Termination.EXITED:
            return None
        return signal.Signals(self.value)

    @property
    def shell_code(self) -> int:
        """Exit code the way a POSIX shell reports it (128 + signal)."""
        if self.termination is Termination.EXITED:
            return self.value
        return 128 + self.value

    @classmethod
    def from_wait_status(cls, status: int) -> ExitStatus | None:
        """Decode a waitpid() status; None if it does not describe termination."""
        if os.WIFEXITED(status):
            return cls(Termination.EXITED, os.WEXITSTATUS(status))
        if os.WIFSIGNALED(status):
            termination = Termination.DUMPED if os.WCOREDUMP(status) else Termination.KILLED
            return cls(termination, os.WTERMSIG(status))
        return None

    def __str__(self) -> str:
        if self.termination is Termination.EXITED:
            return f"exited with code {self.value}"
        if self.termination is Termination.DUMPED:
            return f"dumped core on {self.signal.name}"
        return f"killed by {self.signal.name}"


class _OutputBuffer:
    """Captured bytes of one stream plus the incremental-read cursor."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.consumed = 0

    def read(self, whole: bool) -> bytes:
        start = 0 if whole else self.consumed
        self.consumed = len(self.data)
        return bytes(self.data[start:])

    def take(self) -> bytes:
        data = bytes(self.data)
        self.data = bytearray()
        self.consumed = 0
        return data


def _exec_in_child(
    path: bytes,
    argv: list[bytes],
    unused_fds: tuple[int, ...],
    redirects: tuple[tuple[int, int], ...],
    failure_prefix: bytes,
) -> NoReturn:
    """Body of the forked child: redirect descriptors, then exec.

    Everything is prepared by the parent. Nothing here may log, format
    messages, flush Python buffers or run cleanup handlers; every path
    ends in os._exit().
    """
    try:
        for fd in unused_fds:
            os.close(fd)
        for fd, target in redirects:
            if fd == target:
                os.set_inheritable(fd, True)
            else:
                os.dup2(fd, target)
        # Python ignores SIGPIPE and an ignored disposition survives exec
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)
        os.execv(path, argv)
    except OSError as e:
        os.write(2, failure_prefix)
        os.write(2, os.strerror(e.errno).encode())
        os.write(2, b"\n")
    finally:
        os._exit(EXEC_FAILURE_STATUS)


class Launcher:
    """Launches one child process and tracks it until it is reaped.

    The command is bound at construction; nothing happens until the first
    update_and_get_state() call, which spawns the child with its stdin,
    stdout and stderr connected to pipes owned by this instance. Later
    calls poll for termination with poll(2)-style timeouts.

    Output is not drained in the background: the child blocks once a pipe
    holds a full pipe buffer (usually 64 KiB) until the caller reads it.
    The async helpers in ``childproc.runtime.aio`` drain periodically.

    Example:
        with Launcher("/usr/bin/env", ["sh", "-c", "printf hi"]) as proc:
            proc.finish()
            assert proc.read_stdout(whole=True) == b"hi"
            assert proc.get_return_code() == 0

    Attributes:
        path: Executable path, passed to the child as argv[0]
        args: Remaining arguments
    """

    def __init__(
        self,
        path: StrPath | None = None,
        args: Sequence[str | bytes] = (),
        *,
        watcher: WatcherKind | None = None,
    ) -> None:
        """Bind a command.

        Args:
            path: Executable to run; None leaves the launcher uninitialized
            args: Arguments following argv[0]
            watcher: Exit watcher backend (default from config)
        """
        self._pid = INVALID_PID
        self._stdin_pipe = PipePair()
        self._stdout_pipe = PipePair()
        self._stderr_pipe = PipePair()
        self._stdout = _OutputBuffer()
        self._stderr = _OutputBuffer()
        self._time_spawned_ns = 0
        self._time_finished_ns = 0
        self._exit_status: ExitStatus | None = None

        self._path = os.fspath(path) if path is not None else None
        self._args = tuple(args)
        self._watcher_kind = watcher if watcher is not None else get_config().watcher
        self._state = LauncherState.READY if path is not None else LauncherState.UNINITIALIZED

    @property
    def path(self) -> str | bytes | None:
        return self._path

    @property
    def args(self) -> tuple[str | bytes, ...]:
        return self._args

    @property
    def pid(self) -> int:
        """Child pid, or INVALID_PID when no process is owned."""
        return self._pid

    @property
    def state(self) -> LauncherState:
        return self._state

    def manages_process(self) -> bool:
        return self._pid != INVALID_PID

    def is_finished(self) -> bool:
        return self._state is LauncherState.FINISHED

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def update_and_get_state(self, timeout_ms: int = 0) -> States:
        """Advance the state machine and report the transition.

        - READY: spawn the child; with a non-zero timeout keep going and
          wait for it in the same call
        - RUNNING: wait up to ``timeout_ms`` for termination and reap it
        - FINISHED: nothing to do

        Args:
            timeout_ms: Negative waits until the child terminates, zero
                never blocks, positive waits at most that many milliseconds

        Returns:
            States(previous, current)

        Raises:
            InvalidStateError: If uninitialized or no process is owned
            SyscallError: If an OS call fails
            ConsistencyError: If an indefinite wait ends without termination
                or the OS reaps an unexpected pid
        """
        previous = self._state

        if previous is LauncherState.READY:
            self._spawn()
            if timeout_ms != 0:
                return States(previous, self.update_and_get_state(timeout_ms).current)

        elif previous is LauncherState.RUNNING:
            self._require_process("cannot update state")
            with self.exit_watcher() as watcher:
                if watcher.poll(timeout_ms):
                    self._query_status(wait=False)
            if timeout_ms < 0 and self._state is not LauncherState.FINISHED:
                raise ConsistencyError(
                    "failed to wait for child process to finish without any timeout"
                )

        elif previous is LauncherState.FINISHED:
            self._require_process("cannot update state")

        else:
            raise InvalidStateError("cannot update state - process wasn't initialized")

        return States(previous, self._state)

    def finish_and_get_prev_state(self) -> LauncherState:
        return self.update_and_get_state(-1).previous

    def finish(self) -> None:
        self.finish_and_get_prev_state()

    def exit_watcher(self) -> ExitWatcher:
        """Open a new exit watcher for the running child (caller closes it)."""
        self._require_process("cannot watch process")
        if self._state is not LauncherState.RUNNING:
            raise InvalidStateError("cannot watch process - it isn't running")
        return open_exit_watcher(self._pid, self._watcher_kind)

    def _spawn(self) -> None:
        self._stdin_pipe.init()
        self._stdout_pipe.init()
        self._stderr_pipe.init()

        # everything the child needs is prepared before forking
        path = os.fsencode(self._path)
        argv = [path, *(os.fsencode(arg) for arg in self._args)]
        unused_fds = (
            self._stdin_pipe.write_fd,
            self._stdout_pipe.read_fd,
            self._stderr_pipe.read_fd,
        )
        redirects = (
            (self._stdin_pipe.read_fd, 0),
            (self._stdout_pipe.write_fd, 1),
            (self._stderr_pipe.write_fd, 2),
        )
        failure_prefix = b"childproc: exec of " + path + b" failed - "

        pid = syscall(os.fork)
        if pid == 0:
            _exec_in_child(path, argv, unused_fds, redirects, failure_prefix)

        self._stdin_pipe.close_read()
        self._stdout_pipe.close_write()
        self._stderr_pipe.close_write()

        self._time_spawned_ns = time.monotonic_ns()
        self._pid = pid
        self._state = LauncherState.RUNNING

        logger.debug(f"Spawned child pid={pid} path={self._path} args={list(self._args)}")

    def _query_status(self, wait: bool) -> None:
        """Reap the child if it terminated; block for it when ``wait``."""
        self._require_process("can't query status")
        if self._state is LauncherState.FINISHED:
            return
        if self._state is not LauncherState.RUNNING:
            raise InvalidStateError("cannot wait for pid - process isn't running or finished")

        pid, status = syscall(os.waitpid, self._pid, 0 if wait else os.WNOHANG)
        if pid == 0:
            return

        exit_status = ExitStatus.from_wait_status(status)
        if exit_status is None:
            return
        if pid != self._pid:
            raise ConsistencyError(
                f"waitpid returned unexpected pid {pid} - managed one is {self._pid}"
            )

        self._time_finished_ns = time.monotonic_ns()
        self._exit_status = exit_status
        self._state = LauncherState.FINISHED
        logger.debug(f"Child pid={pid} {exit_status}")

    def _require_process(self, action: str) -> None:
        if not self.manages_process():
            raise InvalidStateError(f"{action} - process handle is invalid")

    # ------------------------------------------------------------------
    # Standard input
    # ------------------------------------------------------------------

    def send_to_stdin(self, data: bytes | str) -> None:
        """Write all of ``data`` to the child's stdin.

        May block while the pipe is full. A ``str`` is UTF-8 encoded.

        Raises:
            InvalidStateError: If not running or stdin was closed
            SyscallError: If the write fails (e.g. EPIPE after the child exited)
        """
        self._require_stdin()
        if isinstance(data, str):
            data = data.encode("utf-8")
        view = memoryview(data).cast("B")
        written = 0
        while written < len(view):
            written += syscall(os.write, self._stdin_pipe.write_fd, view[written:])

    def send_to_stdin_nowait(self, data: bytes | memoryview) -> int:
        """Write as much of ``data`` as the stdin pipe accepts without blocking.

        Returns:
            Number of bytes written, 0 if the pipe is full

        Raises:
            InvalidStateError: If not running or stdin was closed
            SyscallError: If the write fails (e.g. EPIPE after the child exited)
        """
        self._require_stdin()
        fd = self._stdin_pipe.write_fd
        os.set_blocking(fd, False)
        try:
            return syscall(os.write, fd, data)
        except SyscallError as e:
            if e.errno in (errno.EAGAIN, errno.EWOULDBLOCK):
                return 0
            raise
        finally:
            os.set_blocking(fd, True)

    def stdin_fileno(self) -> int:
        """Write end of the child's stdin pipe, for readiness polling."""
        self._require_stdin()
        return self._stdin_pipe.write_fd

    def _require_stdin(self) -> None:
        if not self.manages_process():
            raise InvalidStateError("cannot write to child stdin - process handle is invalid")
        if self._stdin_pipe.write_fd == INVALID_FD:
            raise InvalidStateError(
                "cannot write to child stdin - stdin pipe is closed or not initialized"
            )
        if self._state is not LauncherState.RUNNING:
            raise InvalidStateError("cannot write to child stdin - process isn't running")

    def close_stdin(self) -> None:
        """Close the child's stdin so it sees end-of-file.

        Raises:
            InvalidStateError: If not running or already closed
        """
        self._require_process("cannot close child stdin")
        if (
            self._state is not LauncherState.RUNNING
            or self._stdin_pipe.write_fd == INVALID_FD
        ):
            raise InvalidStateError(
                "cannot close child stdin - process isn't running or stdin is already closed"
            )
        self._stdin_pipe.close_write()

    # ------------------------------------------------------------------
    # Standard output / error
    # ------------------------------------------------------------------

    def read_stdout(self, whole: bool = False) -> bytes:
        """Drain stdout and return captured bytes.

        Args:
            whole: False returns only what arrived since the previous read;
                True returns everything captured since spawn (or since the
                last get_stdout()) and can be repeated

        Raises:
            InvalidStateError: If no process is owned
            ShortReadError: If the pipe delivered less than it reported
        """
        self._update_buffer(self._stdout_pipe, self._stdout)
        return self._stdout.read(whole)

    def read_stderr(self, whole: bool = False) -> bytes:
        """Drain stderr and return captured bytes; see read_stdout()."""
        self._update_buffer(self._stderr_pipe, self._stderr)
        return self._stderr.read(whole)

    def get_stdout(self) -> bytes:
        """Drain stdout and take ownership of everything captured so far."""
        self._update_buffer(self._stdout_pipe, self._stdout)
        return self._stdout.take()

    def get_stderr(self) -> bytes:
        """Drain stderr and take ownership of everything captured so far."""
        self._update_buffer(self._stderr_pipe, self._stderr)
        return self._stderr.take()

    def drain(self) -> None:
        """Pull pending output of both streams into the buffers.

        Read cursors are left untouched.
        """
        self._update_buffer(self._stdout_pipe, self._stdout)
        self._update_buffer(self._stderr_pipe, self._stderr)

    def _update_buffer(self, pipe: PipePair, buffer: _OutputBuffer) -> None:
        self._require_process("cannot update any buffer")
        # after close() the pipes are gone but the captured bytes remain
        if pipe.read_fd == INVALID_FD:
            return
        buffer.data += pipe.read_available()

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def do_kill(self) -> None:
        """SIGKILL and reap a running child; a no-op in any other state."""
        if self.manages_process() and self._state is LauncherState.RUNNING:
            logger.debug(f"Killing child pid={self._pid}")
            syscall(os.kill, self._pid, KILL_SIGNAL)
            self._query_status(wait=True)

    def time_running_ms(self) -> float:
        """Milliseconds since spawn, frozen once the child was reaped.

        Does not poll: a child that exited but was not observed yet still
        counts as running.
        """
        self._require_process("can't measure time")
        if self._state is LauncherState.RUNNING:
            return (time.monotonic_ns() - self._time_spawned_ns) / 1_000_000
        if self._state is LauncherState.FINISHED:
            return (self._time_finished_ns - self._time_spawned_ns) / 1_000_000
        raise InvalidStateError("cannot get running time - process isn't running or finished")

    def get_exit_status(self) -> ExitStatus:
        self._require_process("can't obtain exit status")
        if self._state is not LauncherState.FINISHED or self._exit_status is None:
            raise InvalidStateError("can't obtain exit status - process isn't finished")
        return self._exit_status

    def get_return_code(self) -> int:
        """Exit code, or the signal number if the child was killed by one."""
        return self.get_exit_status().value

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def swap(self, other: Launcher) -> None:
        """Exchange everything, including the owned process, with ``other``."""
        self.__dict__, other.__dict__ = other.__dict__, self.__dict__

    def move(self) -> Launcher:
        """Transfer ownership to a new Launcher.

        This instance is left uninitialized and without a process; it can
        still be closed or killed safely.
        """
        moved = type(self)(watcher=self._watcher_kind)
        self.swap(moved)
        return moved

    def close(self) -> None:
        """Kill and reap a running child, then release all descriptors.

        Captured output, the exit status and timings stay readable.
        Never raises.
        """
        if self.manages_process():
            try:
                self.do_kill()
                self.drain()
            except ChildProcError as e:
                logger.warning(f"Teardown of child pid={self._pid} failed: {e}")
        self._stdin_pipe.close()
        self._stdout_pipe.close()
        self._stderr_pipe.close()

    def __copy__(self) -> Launcher:
        raise TypeError("Launcher owns a process and its pipes and cannot be copied; use move()")

    def __deepcopy__(self, memo: dict) -> Launcher:
        return self.__copy__()

    def __enter__(self) -> Launcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Launcher(path={self._path!r}, state={self._state.value}, pid={self._pid})"
