"""Test utilities and doubles for repeater tests."""

from __future__ import annotations

import asyncio
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from repeater import Target


async def retry_until(
    condition: Callable[[], bool | Awaitable[bool]],
    *,
    timeout: float = 5.0,
    interval: float = 0.01,
    message: str = "Condition not met within timeout",
) -> None:
    """Wait until a condition is met, with timeout.

    Args:
        condition: A callable that returns True when the condition is met
        timeout: Maximum time to wait in seconds
        interval: Time between checks in seconds
        message: Error message if timeout is reached

    Raises:
        TimeoutError: If condition is not met within timeout

    Example:
        await retry_until(
            lambda: sender.sent == 3,
            message="Sender did not write",
        )
    """
    start = time.time()
    while time.time() - start < timeout:
        result = condition()

        if asyncio.iscoroutine(result):
            result = await result

        if result:
            return

        await asyncio.sleep(interval)
    raise TimeoutError(message)


@dataclass
class RecordingSink:
    """Stands in for a Sender or Distributor: records every submitted message."""

    messages: list[bytes] = field(default_factory=list)

    def submit(self, message: bytes) -> None:
        self.messages.append(message)


@dataclass
class FakeSocket:
    """Connected-socket stand-in whose writes can fail or come up short."""

    short_by: int = 0
    error: OSError | None = None
    written: list[bytes] = field(default_factory=list)
    closed: bool = False

    def send(self, data: bytes, /) -> int:
        if self.error is not None:
            raise self.error
        self.written.append(data)
        return len(data) - self.short_by

    def fileno(self) -> int:
        return -1

    def close(self) -> None:
        self.closed = True


class UdpSink:
    """A bound UDP socket playing the part of a relay target."""

    def __init__(self) -> None:
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.setblocking(False)

    @property
    def target(self) -> Target:
        host, port = self.sock.getsockname()
        return Target(host=host, port=port)

    async def recv(self, timeout: float = 2.0) -> bytes:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.sock_recv(self.sock, 65535), timeout)

    async def recv_nothing(self, wait: float = 0.2) -> bool:
        """Return ``True`` if no datagram arrives within *wait* seconds."""
        try:
            await self.recv(timeout=wait)
        except TimeoutError:
            return True
        return False

    def close(self) -> None:
        self.sock.close()


class BusyOnceSocket(socket.socket):
    """UDP socket whose first ``send`` reports a full send buffer."""

    def __init__(self) -> None:
        super().__init__(socket.AF_INET, socket.SOCK_DGRAM)
        self.setblocking(False)
        self.busy_reported = 0

    def send(self, data: bytes, flags: int = 0, /) -> int:  # type: ignore[override]
        if not self.busy_reported:
            self.busy_reported += 1
            raise BlockingIOError(11, "Resource temporarily unavailable")
        return super().send(data, flags)
