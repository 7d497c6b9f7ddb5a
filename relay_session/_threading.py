"""
Owner-thread helpers.

All store and session-state mutations happen on one event loop (the
"owner"). SDK completions may arrive on arbitrary threads; they are
marshaled back with :func:`call_on_owner` before touching shared state.

:class:`CriticalSection` guards snapshot reads that a presentation layer
might issue from another thread. It is a real lock on free-threaded
(PEP 703) builds and a no-op on regular GIL builds.
"""

from __future__ import annotations

import asyncio
import sys
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = ["CriticalSection", "call_on_owner", "is_free_threaded", "settle_future"]


def is_free_threaded() -> bool:
    """Return *True* if the interpreter is a free-threaded (nogil) build."""
    _is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    if _is_gil_enabled is not None:
        return not _is_gil_enabled()
    return False


class _NoOpLock:
    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        return True

    def release(self) -> None:
        pass


class CriticalSection:
    """A reentrant lock on nogil builds, a no-op otherwise."""

    def __init__(self) -> None:
        self._free_threaded = is_free_threaded()
        self._lock: threading.RLock | _NoOpLock = (
            threading.RLock() if self._free_threaded else _NoOpLock()
        )

    @property
    def is_real_lock(self) -> bool:
        return self._free_threaded

    def __enter__(self) -> CriticalSection:
        self._lock.acquire()
        return self

    def __exit__(self, *args: object) -> None:
        self._lock.release()


# ---------------------------------------------------------------------------
# Marshaling
# ---------------------------------------------------------------------------


def _loop_thread_matches(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def call_on_owner(loop: asyncio.AbstractEventLoop, fn: Callable[..., Any], *args: Any) -> None:
    """Run ``fn(*args)`` on *loop*'s thread.

    Calls from the loop's own thread are still deferred with ``call_soon``
    so a completion never runs re-entrantly inside the code that issued the
    request.
    """
    if _loop_thread_matches(loop):
        loop.call_soon(fn, *args)
    else:
        loop.call_soon_threadsafe(fn, *args)


def settle_future(
    future: asyncio.Future[Any], result: Any = None, error: BaseException | None = None
) -> None:
    """Resolve *future* unless it was already cancelled or settled."""
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
