"""
Tests for relay_session._threading: owner-loop marshaling and critical sections.
"""

from __future__ import annotations

import asyncio
import threading

import relay_session._threading as threading_mod
from relay_session._threading import (
    CriticalSection,
    _NoOpLock,
    call_on_owner,
    is_free_threaded,
    settle_future,
)

# ---------------------------------------------------------------------------
# Detection helpers
# ---------------------------------------------------------------------------


def test_is_free_threaded_returns_bool():
    assert isinstance(is_free_threaded(), bool)


def test_is_free_threaded_honours_gil_probe(monkeypatch):
    monkeypatch.setattr(threading_mod.sys, "_is_gil_enabled", lambda: False, raising=False)
    assert is_free_threaded() is True
    monkeypatch.setattr(threading_mod.sys, "_is_gil_enabled", lambda: True, raising=False)
    assert is_free_threaded() is False


# ---------------------------------------------------------------------------
# CriticalSection
# ---------------------------------------------------------------------------


def test_critical_section_noop_on_gil_build(monkeypatch):
    monkeypatch.setattr(threading_mod, "is_free_threaded", lambda: False)
    cs = CriticalSection()
    assert cs.is_real_lock is False
    assert isinstance(cs._lock, _NoOpLock)
    with cs:
        pass


def test_critical_section_is_reentrant_when_real(monkeypatch):
    monkeypatch.setattr(threading_mod, "is_free_threaded", lambda: True)
    cs = CriticalSection()
    assert cs.is_real_lock is True
    with cs, cs:
        pass


# ---------------------------------------------------------------------------
# Marshaling
# ---------------------------------------------------------------------------


async def test_call_on_owner_defers_same_thread_calls():
    loop = asyncio.get_running_loop()
    calls = []
    call_on_owner(loop, calls.append, "x")
    assert calls == []
    await asyncio.sleep(0)
    assert calls == ["x"]


async def test_call_on_owner_from_worker_thread_runs_on_loop():
    loop = asyncio.get_running_loop()
    done = asyncio.Event()
    seen = []

    def record():
        seen.append(threading.get_ident())
        done.set()

    worker = threading.Thread(target=call_on_owner, args=(loop, record))
    worker.start()
    worker.join()
    await asyncio.wait_for(done.wait(), timeout=1)

    assert seen == [threading.get_ident()]


async def test_settle_future():
    loop = asyncio.get_running_loop()

    ok = loop.create_future()
    settle_future(ok, 42)
    assert await ok == 42

    failed = loop.create_future()
    settle_future(failed, error=KeyError("x"))
    assert isinstance(failed.exception(), KeyError)

    cancelled = loop.create_future()
    cancelled.cancel()
    settle_future(cancelled, 1)
    assert cancelled.cancelled()
