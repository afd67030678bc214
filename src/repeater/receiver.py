"""Inbound side of the relay pipeline.

A ``Receiver`` binds one UDP socket and drains it continuously, handing
every non-empty datagram to the shared ``Distributor``. It never waits on
downstream state: a blocked read loop would let the kernel discard
datagrams for reasons unrelated to congestion.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable
from typing import TypeAlias

from repeater.address import BindAddress
from repeater.distributor import MessageSink
from repeater.errors import AddressError, BindError


DEFAULT_BUFFER_SIZE = 256

ReadErrorHandler: TypeAlias = Callable[["Receiver", OSError], None]


class Receiver:
    """Listens on one port and forwards every datagram to a sink.

    The socket is bound at construction so that address and bind failures
    surface before anything starts. ``start()`` launches the read loop.

    Parameters
    ----------
    address : BindAddress | str
        Local address to bind, e.g. ``":8000"`` or ``"127.0.0.1:8000"``.
    distributor : MessageSink
        Downstream sink. Not owned by the receiver.
    buffer_size : int
        Read size per datagram; longer datagrams are truncated by the
        transport.
    on_read_error : ReadErrorHandler | None
        Called once with the receiver and the error when a read fails and
        the loop terminates.
    logger : logging.Logger | None
        Logger instance. Defaults to ``repeater.receiver``.

    Raises
    ------
    AddressError
        If *address* is malformed.
    BindError
        If the socket cannot be bound.

    Examples
    --------
    >>> receiver = Receiver(":8000", distributor)
    >>> receiver.start()
    >>> receiver.port
    8000
    """

    def __init__(
        self,
        address: BindAddress | str,
        distributor: MessageSink,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        on_read_error: ReadErrorHandler | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if isinstance(address, str):
            address = BindAddress.parse(address)
        if buffer_size <= 0:
            msg = f"Receiver buffer size must be positive, got {buffer_size}"
            raise ValueError(msg)
        self._distributor = distributor
        self._buffer_size = buffer_size
        self._on_read_error = on_read_error
        self._logger = logger or logging.getLogger("repeater.receiver")
        self._task: asyncio.Task[None] | None = None
        self._received = 0
        self._closed = False
        self._sock = self._bind(address)
        self._address = address
        host, port = self._sock.getsockname()[:2]
        self._bound = BindAddress(host=host, port=port)

    @staticmethod
    def _bind(address: BindAddress) -> socket.socket:
        try:
            sock = socket.socket(address.family, socket.SOCK_DGRAM)
        except OSError as exc:
            msg = f"Failed to create socket for {address}: {exc}"
            raise BindError(msg) from exc
        try:
            sock.setblocking(False)
            sock.bind((address.host, address.port))
        except OverflowError as exc:
            sock.close()
            msg = f"Invalid listen address {address}: {exc}"
            raise AddressError(msg) from exc
        except OSError as exc:
            sock.close()
            msg = f"Failed to bind {address}: {exc}"
            raise BindError(msg) from exc
        return sock

    @property
    def address(self) -> BindAddress:
        """The bound address, with an ephemeral port resolved."""
        return self._bound

    @property
    def port(self) -> int:
        return self.address.port

    @property
    def received(self) -> int:
        return self._received

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Launch the read loop on the running event loop."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"receiver-{self._address}"
        )

    async def stop(self) -> None:
        """Cancel the read loop and close the listening socket."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        self._logger.info("Receiver on %s closed", self._address)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        self._logger.info("Starting receiver on %s", self.address)
        while True:
            try:
                data = await loop.sock_recv(self._sock, self._buffer_size)
            except OSError as exc:
                self._logger.critical(
                    "Failed to read from socket %s: %s", self._address, exc
                )
                if self._on_read_error is not None:
                    self._on_read_error(self, exc)
                self.close()
                return
            if not data:
                self._logger.debug("Ignoring empty datagram on %s", self._address)
                continue
            self._received += 1
            self._logger.debug("Received %r on %s", data, self._address)
            self._distributor.submit(data)
