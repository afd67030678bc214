"""Bounded message queue with a drop-on-full overflow policy.

Every stage of the relay pipeline buffers through a ``Mailbox``. Offering
to a full mailbox drops the message and counts it; there is deliberately
no blocking put, so congestion never propagates upstream.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from repeater.shutdown import Shutdown


M = TypeVar("M")

DEFAULT_CAPACITY = 100


class Mailbox(Generic[M]):
    """Fixed-capacity FIFO for a single consumer task.

    Wraps an ``asyncio.Queue`` with a bounded size. ``offer`` never blocks
    and never raises: when the queue is full the message is discarded and
    ``dropped`` is incremented.

    Parameters
    ----------
    capacity : int
        Maximum number of queued messages. Must be positive.

    Examples
    --------
    >>> mb = Mailbox[bytes](capacity=2)
    >>> mb.offer(b"a"), mb.offer(b"b"), mb.offer(b"c")
    (True, True, False)
    >>> mb.size(), mb.dropped
    (2, 1)
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            msg = f"Mailbox capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._queue: asyncio.Queue[M] = asyncio.Queue(maxsize=capacity)
        self._dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped(self) -> int:
        """Number of messages discarded because the mailbox was full."""
        return self._dropped

    def offer(self, msg: M) -> bool:
        """Enqueue *msg* if there is room.

        Parameters
        ----------
        msg : M
            The message to enqueue.

        Returns
        -------
        bool
            ``True`` if the message was queued, ``False`` if it was dropped.
        """
        try:
            self._queue.put_nowait(msg)
        except asyncio.QueueFull:
            self._dropped += 1
            return False
        return True

    async def get(self) -> M:
        """Dequeue the next message, waiting if the mailbox is empty."""
        return await self._queue.get()

    async def receive(self, shutdown: Shutdown) -> M | None:
        """Dequeue the next message, or ``None`` once *shutdown* fires.

        Messages already queued are handed out without suspending, but the
        shutdown signal is checked first so nothing is processed after it.

        Parameters
        ----------
        shutdown : Shutdown
            Process-wide cancellation handle.

        Returns
        -------
        M | None
        """
        if shutdown.is_set:
            return None
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        return await shutdown.race(self._queue.get())

    def clear(self) -> int:
        """Discard every queued message and return how many were discarded."""
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return discarded
            discarded += 1

    def size(self) -> int:
        """Return the number of messages currently queued."""
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def full(self) -> bool:
        return self._queue.full()
