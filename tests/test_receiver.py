from __future__ import annotations

import asyncio
import socket

import pytest

from repeater.address import BindAddress
from repeater.errors import AddressError, BindError
from repeater.receiver import DEFAULT_BUFFER_SIZE, Receiver
from tests.utils import RecordingSink, retry_until


def _send(client: socket.socket, receiver: Receiver, data: bytes) -> None:
    client.sendto(data, ("127.0.0.1", receiver.port))


async def test_forwards_datagrams_in_order(
    sink: RecordingSink, udp_client: socket.socket
) -> None:
    receiver = Receiver("127.0.0.1:0", sink)
    receiver.start()
    try:
        for m in (b"one", b"two", b"three"):
            _send(udp_client, receiver, m)
        await retry_until(lambda: len(sink.messages) == 3)
        assert sink.messages == [b"one", b"two", b"three"]
        assert receiver.received == 3
    finally:
        await receiver.stop()


async def test_each_message_is_a_fresh_bytes_object(
    sink: RecordingSink, udp_client: socket.socket
) -> None:
    receiver = Receiver("127.0.0.1:0", sink)
    receiver.start()
    try:
        _send(udp_client, receiver, b"aaaa")
        _send(udp_client, receiver, b"bb")
        await retry_until(lambda: len(sink.messages) == 2)
        assert sink.messages == [b"aaaa", b"bb"]
        assert all(type(m) is bytes for m in sink.messages)
    finally:
        await receiver.stop()


async def test_oversized_datagram_is_truncated(
    sink: RecordingSink, udp_client: socket.socket
) -> None:
    receiver = Receiver("127.0.0.1:0", sink)
    receiver.start()
    try:
        _send(udp_client, receiver, b"x" * 2048)
        await retry_until(lambda: len(sink.messages) == 1)
        assert sink.messages == [b"x" * DEFAULT_BUFFER_SIZE]
        assert DEFAULT_BUFFER_SIZE == 256
        assert receiver.running
    finally:
        await receiver.stop()


async def test_empty_datagram_is_ignored(
    sink: RecordingSink, udp_client: socket.socket
) -> None:
    receiver = Receiver("127.0.0.1:0", sink)
    receiver.start()
    try:
        _send(udp_client, receiver, b"")
        _send(udp_client, receiver, b"after")
        await retry_until(lambda: len(sink.messages) == 1)
        assert sink.messages == [b"after"]
        assert receiver.running
    finally:
        await receiver.stop()


async def test_custom_buffer_size(sink: RecordingSink, udp_client: socket.socket) -> None:
    receiver = Receiver(BindAddress(host="127.0.0.1", port=0), sink, buffer_size=4)
    receiver.start()
    try:
        _send(udp_client, receiver, b"abcdefgh")
        await retry_until(lambda: len(sink.messages) == 1)
        assert sink.messages == [b"abcd"]
    finally:
        await receiver.stop()


async def test_malformed_address(sink: RecordingSink) -> None:
    with pytest.raises(AddressError):
        Receiver("not-an-address", sink)


async def test_port_in_use_raises_bind_error(sink: RecordingSink) -> None:
    first = Receiver("127.0.0.1:0", sink)
    try:
        with pytest.raises(BindError):
            Receiver(f"127.0.0.1:{first.port}", sink)
    finally:
        first.close()


async def test_read_error_stops_loop_and_escalates(
    sink: RecordingSink, monkeypatch: pytest.MonkeyPatch
) -> None:
    failures: list[tuple[Receiver, OSError]] = []

    async def failing_recv(sock: socket.socket, n: int) -> bytes:
        raise OSError("boom")

    monkeypatch.setattr(asyncio.get_running_loop(), "sock_recv", failing_recv)
    receiver = Receiver(
        "127.0.0.1:0", sink, on_read_error=lambda r, exc: failures.append((r, exc))
    )
    receiver.start()
    try:
        await retry_until(lambda: not receiver.running)
        assert len(failures) == 1
        assert failures[0][0] is receiver
        assert str(failures[0][1]) == "boom"
    finally:
        await receiver.stop()


async def test_read_error_releases_port(
    sink: RecordingSink, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def failing_recv(sock: socket.socket, n: int) -> bytes:
        raise OSError("boom")

    monkeypatch.setattr(asyncio.get_running_loop(), "sock_recv", failing_recv)
    receiver = Receiver("127.0.0.1:0", sink)
    port = receiver.port
    receiver.start()
    await retry_until(lambda: not receiver.running)
    assert receiver.closed
    assert receiver.port == port
    again = Receiver(f"127.0.0.1:{port}", sink)
    again.close()


async def test_stop_closes_socket(sink: RecordingSink) -> None:
    receiver = Receiver("127.0.0.1:0", sink)
    port = receiver.port
    receiver.start()
    await asyncio.sleep(0.01)
    await receiver.stop()
    assert not receiver.running
    # the port can be bound again once the receiver has closed it
    again = Receiver(f"127.0.0.1:{port}", sink)
    again.close()
