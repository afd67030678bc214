"""Shared fixtures for repeater tests."""

from __future__ import annotations

import socket
from collections.abc import Iterator

import pytest

from repeater import Shutdown
from tests.utils import RecordingSink, UdpSink


@pytest.fixture
def shutdown() -> Shutdown:
    return Shutdown()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def udp_sinks() -> Iterator[list[UdpSink]]:
    """Three UDP targets bound on loopback."""
    sinks = [UdpSink() for _ in range(3)]
    yield sinks
    for s in sinks:
        s.close()


@pytest.fixture
def udp_client() -> Iterator[socket.socket]:
    client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    yield client
    client.close()
