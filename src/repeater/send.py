"""Manual test utility: fire sample datagrams at a repeater port.

Sends a short ``test`` datagram followed by one that is too large for the
default receive buffer, so truncation can be observed downstream.
"""

from __future__ import annotations

import argparse
import logging
import socket
import sys
from collections.abc import Sequence

from repeater.address import Target
from repeater.errors import AddressError, DialError
from repeater.sender import dial

logger = logging.getLogger("repeater.send")

SAMPLE_MESSAGE = b"test"
OVERSIZED_LENGTH = 2048


def sample_datagrams() -> list[bytes]:
    return [SAMPLE_MESSAGE, b"x" * OVERSIZED_LENGTH]


def send_samples(sock: socket.socket) -> int:
    """Write every sample datagram; return how many writes failed."""
    failures = 0
    for datagram in sample_datagrams():
        try:
            sock.send(datagram)
        except OSError as exc:
            failures += 1
            logger.error("Failed to send %d-byte message: %s", len(datagram), exc)
    return failures


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="repeater-send",
        description="Send sample datagrams to a local repeater port.",
    )
    parser.add_argument("-p", "--port", type=int, default=8080, help="target port")
    parser.add_argument("--host", default="127.0.0.1", help="target host")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s | %(message)s")

    try:
        sock = dial(Target(host=args.host, port=args.port))
    except (AddressError, DialError) as exc:
        logger.critical("Failed to dial target port %s: %s", args.port, exc)
        return 1
    with sock:
        send_samples(sock)
    return 0


def run() -> None:
    sys.exit(main())
