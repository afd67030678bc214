"""Fan-out hub between receivers and senders.

The ``Distributor`` decouples any number of receivers from any number of
senders through one bounded mailbox. A full mailbox drops the incoming
message so that a receiver's read loop is never held up by downstream
congestion.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

from repeater.address import Target
from repeater.errors import DialError
from repeater.mailbox import DEFAULT_CAPACITY, Mailbox
from repeater.sender import Sender
from repeater.shutdown import Shutdown


class MessageSink(Protocol):
    """Anything accepting messages without blocking."""

    def submit(self, message: bytes) -> None: ...


class Distributor:
    """Forwards every submitted message to each registered sink, in order.

    Sinks are fixed at construction and kept in registration order. Each
    dequeued message is handed to every sink before the next one is
    dequeued, so each sink observes the distributor's FIFO order.

    Parameters
    ----------
    senders : Sequence[MessageSink]
        Downstream sinks, usually ``Sender`` instances.
    shutdown : Shutdown
        Process-wide cancellation handle.
    capacity : int
        Mailbox capacity. Messages beyond it are dropped.
    logger : logging.Logger | None
        Logger instance. Defaults to ``repeater.distributor``.

    Examples
    --------
    >>> shutdown = Shutdown()
    >>> distributor = Distributor.from_targets(
    ...     [Target.parse("127.0.0.1:9000"), Target.parse("127.0.0.1:9001")],
    ...     shutdown=shutdown,
    ... )
    >>> distributor.start()
    >>> distributor.submit(b"ping")
    """

    def __init__(
        self,
        senders: Sequence[MessageSink],
        *,
        shutdown: Shutdown,
        capacity: int = DEFAULT_CAPACITY,
        logger: logging.Logger | None = None,
    ) -> None:
        self._senders: tuple[MessageSink, ...] = tuple(senders)
        self._shutdown = shutdown
        self._mailbox: Mailbox[bytes] = Mailbox(capacity)
        self._logger = logger or logging.getLogger("repeater.distributor")
        self._task: asyncio.Task[None] | None = None
        self._dispatched = 0

    @classmethod
    def from_targets(
        cls,
        targets: Iterable[Target],
        *,
        shutdown: Shutdown,
        capacity: int = DEFAULT_CAPACITY,
        sender_capacity: int = DEFAULT_CAPACITY,
        logger: logging.Logger | None = None,
        sender_logger: logging.Logger | None = None,
    ) -> Distributor:
        """Dial one ``Sender`` per target and build a distributor owning them.

        Senders are dialed in iteration order. If any dial fails, the
        senders dialed so far are closed before the error propagates.

        Raises
        ------
        DialError
            If a target cannot be dialed.
        """
        senders: list[Sender] = []
        try:
            for target in targets:
                senders.append(
                    Sender.dial(
                        target,
                        shutdown=shutdown,
                        capacity=sender_capacity,
                        logger=sender_logger,
                    )
                )
        except DialError:
            for sender in senders:
                sender.close()
            raise
        return cls(senders, shutdown=shutdown, capacity=capacity, logger=logger)

    @property
    def senders(self) -> tuple[MessageSink, ...]:
        return self._senders

    @property
    def pending(self) -> int:
        return self._mailbox.size()

    @property
    def dropped(self) -> int:
        return self._mailbox.dropped

    @property
    def dispatched(self) -> int:
        return self._dispatched

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, message: bytes) -> None:
        """Queue *message* for fan-out. Never blocks; drops when full or after shutdown."""
        if self._shutdown.is_set:
            return
        self._mailbox.offer(message)

    def start(self) -> None:
        """Launch the dispatch loop and every owned ``Sender``'s loop."""
        for sender in self._senders:
            if isinstance(sender, Sender):
                sender.start()
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name="distributor"
            )

    async def stop(self) -> None:
        """Stop the dispatch loop, then every owned ``Sender``."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._mailbox.clear()
        for sender in self._senders:
            if isinstance(sender, Sender):
                await sender.stop()

    async def _run(self) -> None:
        self._logger.info("Starting distributor for %d targets", len(self._senders))
        while True:
            message = await self._mailbox.receive(self._shutdown)
            if message is None:
                break
            self._logger.debug("Distributing %r", message)
            for sender in self._senders:
                sender.submit(message)
            self._dispatched += 1
        discarded = self._mailbox.clear()
        if discarded:
            self._logger.debug("Discarded %d queued messages on shutdown", discarded)
        self._logger.info("Distributor stopped")
