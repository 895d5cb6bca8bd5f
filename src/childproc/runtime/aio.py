"""Async waiting for a Launcher without blocking the event loop.

The exit watcher's descriptor is awaited with anyio, so any anyio backend
can wait for many children concurrently. While waiting, output pipes are
drained on a fixed interval so a chatty child never stalls on a full pipe.
Input is fed through non-blocking writes gated on stdin writability, so
feeding and draining interleave on the same event loop.

Cancellation of the waiting task kills and reaps the child inside a
shielded scope before the cancellation propagates.
"""

from __future__ import annotations

import errno
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Sequence

import anyio

from ..config import get_config
from .errors import SyscallError
from .launcher import ExitStatus, Launcher, LauncherState, StrPath

__all__ = ["CompletedRun", "feed_stdin", "run", "wait_finished"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletedRun:
    """Result of :func:`run`.

    Attributes:
        argv: Command that was run (path first)
        stdout: Everything the child wrote to stdout
        stderr: Everything the child wrote to stderr
        exit_status: How the child terminated
        duration_ms: Time between spawn and reap
    """

    argv: tuple[str | bytes, ...]
    stdout: bytes
    stderr: bytes
    exit_status: ExitStatus
    duration_ms: float

    @property
    def return_code(self) -> int:
        return self.exit_status.value


async def wait_finished(
    launcher: Launcher,
    *,
    drain_interval: float | None = None,
) -> int:
    """Spawn ``launcher`` if needed and wait until it is reaped.

    Args:
        launcher: A ready or running launcher
        drain_interval: Seconds between output drains (default from config)

    Returns:
        The child's return code

    Raises:
        InvalidStateError: If the launcher has no command or process
        SyscallError: If an OS call fails
    """
    interval = drain_interval if drain_interval is not None else get_config().drain_interval

    try:
        if launcher.update_and_get_state(0).current is LauncherState.RUNNING:
            with launcher.exit_watcher() as watcher:
                while not launcher.is_finished():
                    with anyio.move_on_after(interval):
                        await anyio.wait_readable(watcher.fileno())
                    launcher.drain()
                    launcher.update_and_get_state(0)
    except anyio.get_cancelled_exc_class():
        with anyio.CancelScope(shield=True):
            logger.debug(f"Wait cancelled, killing child pid={launcher.pid}")
            launcher.do_kill()
        raise

    return launcher.get_return_code()


async def feed_stdin(launcher: Launcher, data: bytes) -> None:
    """Write ``data`` to the child's stdin without blocking the event loop, then close it.

    Runs alongside :func:`wait_finished`, which keeps draining the output
    pipes, so a child echoing its input can never fill both directions.
    Stops quietly if the child exits or closes its stdin first.
    """
    view = memoryview(data).cast("B")
    written = 0
    try:
        while written < len(view) and not launcher.is_finished():
            await anyio.wait_writable(launcher.stdin_fileno())
            if launcher.is_finished():
                return
            written += launcher.send_to_stdin_nowait(view[written:])
    except SyscallError as e:
        if e.errno != errno.EPIPE:
            raise
        logger.debug(f"Child pid={launcher.pid} closed stdin early")

    if not launcher.is_finished():
        launcher.close_stdin()


async def run(
    path: StrPath,
    args: Sequence[str | bytes] = (),
    *,
    stdin_bytes: bytes | None = None,
    timeout: float | None = None,
) -> CompletedRun:
    """Run a command to completion and collect its output.

    Args:
        path: Executable, also passed as argv[0]
        args: Remaining arguments
        stdin_bytes: Optional bytes for the child's stdin (closed afterwards)
        timeout: Optional limit in seconds; the child is killed on expiry

    Returns:
        CompletedRun with the captured output and exit status

    Raises:
        TimeoutError: If ``timeout`` expired
        SyscallError: If an OS call fails
    """
    with Launcher(path, args) as launcher:
        launcher.update_and_get_state(0)

        with anyio.fail_after(timeout) if timeout is not None else nullcontext():
            async with anyio.create_task_group() as tg:
                tg.start_soon(feed_stdin, launcher, stdin_bytes or b"")
                await wait_finished(launcher)
                # a grandchild may still hold stdin open
                tg.cancel_scope.cancel()

        return CompletedRun(
            argv=(launcher.path, *launcher.args),
            stdout=launcher.get_stdout(),
            stderr=launcher.get_stderr(),
            exit_status=launcher.get_exit_status(),
            duration_ms=launcher.time_running_ms(),
        )
