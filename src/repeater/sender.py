"""Per-target outbound side of the relay pipeline.

A ``Sender`` owns one connected UDP socket and a private bounded mailbox.
``submit`` never blocks: a congested or unreachable target only ever loses
its own messages, never delays delivery to the others.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Protocol

from repeater.address import Target
from repeater.errors import DialError, TransientWriteError
from repeater.mailbox import DEFAULT_CAPACITY, Mailbox
from repeater.shutdown import Shutdown


class DatagramSocket(Protocol):
    """The subset of ``socket.socket`` a ``Sender`` writes through."""

    def send(self, data: bytes, /) -> int: ...

    def fileno(self) -> int: ...

    def close(self) -> None: ...


def dial(target: Target) -> socket.socket:
    """Open a non-blocking UDP socket connected to *target*.

    Raises
    ------
    DialError
        If the socket cannot be created or connected.
    """
    try:
        sock = socket.socket(target.family, socket.SOCK_DGRAM)
    except OSError as exc:
        msg = f"Failed to create socket for target {target}: {exc}"
        raise DialError(msg) from exc
    try:
        sock.setblocking(False)
        sock.connect((target.host, target.port))
    except OSError as exc:
        sock.close()
        msg = f"Failed to dial target {target}: {exc}"
        raise DialError(msg) from exc
    return sock


class Sender:
    """Best-effort asynchronous writer for a single target.

    Parameters
    ----------
    target : Target
        The endpoint *sock* is connected to.
    sock : DatagramSocket
        An already connected socket. Ownership passes to the ``Sender``.
    shutdown : Shutdown
        Process-wide cancellation handle.
    capacity : int
        Mailbox capacity. Messages beyond it are dropped.
    logger : logging.Logger | None
        Logger instance. Defaults to ``repeater.sender``.

    Examples
    --------
    >>> sender = Sender.dial(Target.parse("127.0.0.1:9000"), shutdown=Shutdown())
    >>> sender.start()
    >>> sender.submit(b"ping")
    """

    def __init__(
        self,
        target: Target,
        sock: DatagramSocket,
        *,
        shutdown: Shutdown,
        capacity: int = DEFAULT_CAPACITY,
        logger: logging.Logger | None = None,
    ) -> None:
        self._target = target
        self._sock = sock
        self._shutdown = shutdown
        self._mailbox: Mailbox[bytes] = Mailbox(capacity)
        self._logger = logger or logging.getLogger("repeater.sender")
        self._task: asyncio.Task[None] | None = None
        self._sent = 0
        self._failed = 0
        self._closed = False

    @classmethod
    def dial(
        cls,
        target: Target,
        *,
        shutdown: Shutdown,
        capacity: int = DEFAULT_CAPACITY,
        logger: logging.Logger | None = None,
    ) -> Sender:
        """Connect a socket to *target* eagerly and wrap it in a ``Sender``.

        Raises
        ------
        DialError
            If the target cannot be dialed.
        """
        return cls(target, dial(target), shutdown=shutdown, capacity=capacity, logger=logger)

    @property
    def target(self) -> Target:
        return self._target

    @property
    def pending(self) -> int:
        return self._mailbox.size()

    @property
    def dropped(self) -> int:
        return self._mailbox.dropped

    @property
    def sent(self) -> int:
        return self._sent

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, message: bytes) -> None:
        """Queue *message* for delivery; drop it if the mailbox is full or shutdown fired."""
        if self._shutdown.is_set:
            return
        self._mailbox.offer(message)

    def start(self) -> None:
        """Launch the dispatch loop on the running event loop."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"sender-{self._target}"
        )

    async def stop(self) -> None:
        """Stop the dispatch loop and close the socket. Queued messages are discarded."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._discard()
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sock.close()

    async def write(self, message: bytes) -> None:
        """Write *message* to the target in a single datagram.

        A full send buffer is not a failure: the write waits until the
        socket is writable and then goes out.

        Raises
        ------
        TransientWriteError
            If the write fails or fewer bytes than ``len(message)`` are sent.
        """
        try:
            sent = self._sock.send(message)
        except BlockingIOError:
            sent = await self._send_when_writable(message)
        except OSError as exc:
            msg = f"Failed to write message to {self._target}: {exc}"
            raise TransientWriteError(msg, expected=len(message)) from exc
        if sent != len(message):
            msg = f"Unexpected write length to {self._target}"
            raise TransientWriteError(msg, expected=len(message), sent=sent)

    async def _send_when_writable(self, message: bytes) -> int:
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendall(self._sock, message)  # type: ignore[arg-type]
        except OSError as exc:
            msg = f"Failed to write message to {self._target}: {exc}"
            raise TransientWriteError(msg, expected=len(message)) from exc
        return len(message)

    async def _run(self) -> None:
        self._logger.info("Starting sender for %s", self._target)
        while True:
            message = await self._mailbox.receive(self._shutdown)
            if message is None:
                break
            self._logger.debug("Sending %r to %s", message, self._target)
            try:
                await self.write(message)
            except TransientWriteError as exc:
                self._failed += 1
                self._logger.error(
                    "%s (msg=%r, expected=%d, sent=%d)",
                    exc, message, exc.expected, exc.sent,
                )
                continue
            self._sent += 1
        self._discard()
        self._logger.info("Sender for %s stopped", self._target)

    def _discard(self) -> None:
        discarded = self._mailbox.clear()
        if discarded:
            self._logger.debug(
                "Discarded %d queued messages for %s on shutdown", discarded, self._target
            )
