"""
Authentication poll loop.

Reads :attr:`AuthGateway.is_authenticated` on a fixed interval using plain
``asyncio.sleep`` and reports each reading. The loop is owned by
:class:`~relay_session.controller.SessionController`, which runs
:meth:`AuthPoller.start` as a task and cancels it on teardown.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from .protocols import AuthGateway

logger = logging.getLogger("relay_session")

__all__ = ["AuthPoller"]


class AuthPoller:
    """
    Polls an :class:`AuthGateway` and yields point-in-time readings.

    Usage::

        async with AuthPoller(gateway, poll_interval=2.0) as poller:
            async for authenticated in poller.watch():
                print(authenticated)
    """

    def __init__(self, gateway: AuthGateway, poll_interval: float = 2.0) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self._gateway = gateway
        self._poll_interval = poll_interval
        self._running = False

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AuthPoller:
        self._running = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def running(self) -> bool:
        return self._running

    def read(self) -> bool | None:
        """Return the gateway's current state, or ``None`` if it could not be read."""
        try:
            return bool(self._gateway.is_authenticated)
        except Exception as exc:
            logger.warning("[RelaySession Poll] Could not read authentication state: %s", exc)
            return None

    async def watch(self, *, immediate: bool = True) -> AsyncGenerator[bool, None]:
        """Yield a reading every ``poll_interval`` seconds until :meth:`stop`.

        With ``immediate=False`` the first reading is taken after one interval.
        """
        self._running = True
        if not immediate:
            await asyncio.sleep(self._poll_interval)
        while self._running:
            reading = self.read()
            if reading is not None:
                yield reading
            await asyncio.sleep(self._poll_interval)

    async def start(
        self,
        callback: Callable[[bool], Union[Awaitable[None], None]],
        *,
        immediate: bool = True,
    ) -> None:
        """Invoke *callback* with every reading until stopped or cancelled."""
        async for reading in self.watch(immediate=immediate):
            result = callback(reading)
            if inspect.isawaitable(result):
                await result

    def stop(self) -> None:
        """Signal the loop to stop after the current tick."""
        self._running = False
