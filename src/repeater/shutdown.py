"""Process-wide cooperative shutdown handle.

A single ``Shutdown`` is created at startup and injected into every
component. Dispatch loops race their next message against it, receivers
escalate fatal read errors through it, and the CLI returns its exit status.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class Shutdown:
    """One-shot shutdown signal carrying the process exit status.

    Parameters
    ----------
    logger : logging.Logger | None
        Logger instance. Defaults to ``repeater.shutdown``.

    Examples
    --------
    >>> shutdown = Shutdown()
    >>> shutdown.is_set
    False
    >>> shutdown.trigger(exit_code=1, reason="receiver failed")
    >>> shutdown.exit_code
    1
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._event = asyncio.Event()
        self._exit_code = 0
        self._reason: str | None = None
        self._logger = logger or logging.getLogger("repeater.shutdown")

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def exit_code(self) -> int:
        return self._exit_code

    @property
    def reason(self) -> str | None:
        return self._reason

    def trigger(self, *, exit_code: int = 0, reason: str = "requested") -> None:
        """Fire the signal. Only the first call sets the exit status and reason."""
        if self._event.is_set():
            return
        self._exit_code = exit_code
        self._reason = reason
        self._logger.info("Shutdown triggered (%s, exit_code=%d)", reason, exit_code)
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, aw: Awaitable[T]) -> T | None:
        """Await *aw* unless the shutdown fires first.

        Returns the awaited result, or ``None`` once shutdown has been
        signalled. When both complete together shutdown wins, so a
        message handed over at the same instant is discarded rather than
        processed after the signal.

        Parameters
        ----------
        aw : Awaitable[T]
            The operation to race against shutdown.

        Returns
        -------
        T | None
        """
        work = asyncio.ensure_future(aw)
        if self._event.is_set():
            work.cancel()
            return None
        stop = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (work, stop):
                if not fut.done():
                    fut.cancel()
        if self._event.is_set() or work.cancelled():
            return None
        return work.result()
