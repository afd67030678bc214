from __future__ import annotations

import asyncio
import logging
import socket

import pytest

from repeater.address import Target
from repeater.errors import DialError, TransientWriteError
from repeater.sender import Sender, dial
from repeater.shutdown import Shutdown
from tests.utils import BusyOnceSocket, FakeSocket, UdpSink, retry_until

TARGET = Target.parse("127.0.0.1:9000")


async def test_submit_beyond_capacity_drops(shutdown: Shutdown) -> None:
    # loop never started, so writes are stalled
    sender = Sender(TARGET, FakeSocket(), shutdown=shutdown, capacity=100)
    for i in range(150):
        sender.submit(f"msg-{i}".encode())
    assert sender.pending == 100
    assert sender.dropped == 50


async def test_writes_in_fifo_order(shutdown: Shutdown) -> None:
    sock = FakeSocket()
    sender = Sender(TARGET, sock, shutdown=shutdown)
    sender.start()
    for i in range(5):
        sender.submit(bytes([i]))
    await retry_until(lambda: sender.sent == 5)
    assert sock.written == [bytes([i]) for i in range(5)]
    await sender.stop()
    assert sock.closed


async def test_write_error_is_logged_and_loop_continues(
    shutdown: Shutdown, caplog: pytest.LogCaptureFixture
) -> None:
    sock = FakeSocket(error=ConnectionRefusedError("refused"))
    sender = Sender(TARGET, sock, shutdown=shutdown)
    sender.start()
    with caplog.at_level(logging.ERROR, logger="repeater.sender"):
        sender.submit(b"lost")
        await retry_until(lambda: sender.failed == 1)
    assert "Failed to write message" in caplog.text

    sock.error = None
    sender.submit(b"delivered")
    await retry_until(lambda: sender.sent == 1)
    assert sock.written == [b"delivered"]
    assert sender.running
    await sender.stop()


async def test_short_write_is_logged_not_retried(
    shutdown: Shutdown, caplog: pytest.LogCaptureFixture
) -> None:
    sock = FakeSocket(short_by=1)
    sender = Sender(TARGET, sock, shutdown=shutdown)
    sender.start()
    with caplog.at_level(logging.ERROR, logger="repeater.sender"):
        sender.submit(b"abcd")
        await retry_until(lambda: sender.failed == 1)
    await asyncio.sleep(0.02)
    assert sock.written == [b"abcd"]
    assert "Unexpected write length" in caplog.text
    assert "expected=4, sent=3" in caplog.text
    await sender.stop()


async def test_write_raises_transient_error(shutdown: Shutdown) -> None:
    sender = Sender(TARGET, FakeSocket(short_by=2), shutdown=shutdown)
    with pytest.raises(TransientWriteError) as info:
        await sender.write(b"abcd")
    assert info.value.expected == 4
    assert info.value.sent == 2


async def test_submit_after_shutdown_is_ignored(shutdown: Shutdown) -> None:
    sender = Sender(TARGET, FakeSocket(), shutdown=shutdown)
    shutdown.trigger()
    sender.submit(b"too late")
    assert sender.pending == 0


async def test_shutdown_discards_queued_messages(shutdown: Shutdown) -> None:
    sock = FakeSocket()
    sender = Sender(TARGET, sock, shutdown=shutdown)
    for i in range(10):
        sender.submit(bytes([i]))
    shutdown.trigger()
    sender.start()
    await retry_until(lambda: not sender.running)
    assert sock.written == []
    assert sender.pending == 0


async def test_loop_exits_promptly_on_shutdown(shutdown: Shutdown) -> None:
    sender = Sender(TARGET, FakeSocket(), shutdown=shutdown)
    sender.start()
    await asyncio.sleep(0.01)
    assert sender.running
    shutdown.trigger()
    await retry_until(lambda: not sender.running, timeout=1.0)


async def test_dial_and_deliver_over_udp(shutdown: Shutdown) -> None:
    target = UdpSink()
    try:
        sender = Sender.dial(target.target, shutdown=shutdown)
        sender.start()
        sender.submit(b"ping")
        assert await target.recv() == b"ping"
        await sender.stop()
    finally:
        target.close()


async def test_dial_returns_connected_nonblocking_socket() -> None:
    sock = dial(Target.parse("127.0.0.1:9"))
    try:
        assert sock.type == socket.SOCK_DGRAM
        assert sock.getblocking() is False
        assert sock.getpeername() == ("127.0.0.1", 9)
    finally:
        sock.close()


async def test_dial_failure_raises_dial_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args: object, **kwargs: object) -> socket.socket:
        raise OSError("no sockets left")

    monkeypatch.setattr(socket, "socket", refuse)
    with pytest.raises(DialError):
        Sender.dial(TARGET, shutdown=Shutdown())


async def test_full_send_buffer_waits_and_delivers(shutdown: Shutdown) -> None:
    target = UdpSink()
    sock = BusyOnceSocket()
    try:
        sock.connect((target.target.host, target.target.port))
        sender = Sender(target.target, sock, shutdown=shutdown)
        sender.start()
        sender.submit(b"ping")
        assert await target.recv() == b"ping"
        await retry_until(lambda: sender.sent == 1)
        assert sock.busy_reported == 1
        assert sender.failed == 0
        await sender.stop()
    finally:
        sock.close()
        target.close()
