"""OS call result checking.

Every OS call whose failure is unexpected goes through :func:`syscall`.
Failures become :class:`SyscallError` carrying the caller's ``file:line``,
the call name and the errno text.

Calls whose failure is an expected, handled outcome (a poll that times out,
a non-blocking reap that finds nothing) must not be wrapped.
"""

from __future__ import annotations

import ctypes
import os
import sys
from pathlib import Path
from typing import Any, Callable, TypeVar

from .errors import SyscallError

__all__ = ["syscall", "call_site"]

T = TypeVar("T")


def call_site(depth: int = 1) -> str:
    """Return ``file:line`` of the frame ``depth`` levels above the caller."""
    frame = sys._getframe(depth + 1)
    return f"{Path(frame.f_code.co_filename).name}:{frame.f_lineno}"


def _call_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__name__", None) or repr(fn)


def syscall(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Call ``fn`` and convert an OS failure into :class:`SyscallError`.

    Two failure conventions are recognised:

    - the ``os`` module style, where the call raises :class:`OSError`;
    - the raw style, where the call returns a negative integer and leaves the
      cause in the ctypes errno (foreign functions loaded with
      ``use_errno=True``).

    Any other result is returned unchanged.

    Args:
        fn: The OS call
        *args: Positional arguments for ``fn``
        **kwargs: Keyword arguments for ``fn``

    Returns:
        Whatever ``fn`` returned

    Raises:
        SyscallError: If the call failed
    """
    try:
        result = fn(*args, **kwargs)
    except OSError as e:
        errno_val = e.errno if e.errno is not None else 0
        raise SyscallError(
            call_site(),
            _call_name(fn),
            errno_val,
            e.strerror or os.strerror(errno_val),
        ) from e

    if isinstance(result, int) and not isinstance(result, bool) and result < 0:
        # read before anything else can overwrite it
        errno_val = ctypes.get_errno()
        raise SyscallError(
            call_site(),
            _call_name(fn),
            errno_val,
            os.strerror(errno_val),
        )

    return result
