"""Endpoint parsing for relay targets and listening sockets.

Provides ``Target``, a frozen ``(host, port)`` pair identifying where a
``Sender`` writes, and ``BindAddress`` for the socket a ``Receiver`` listens
on. Hosts are IP literals; no name resolution takes place.
"""

from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Any

from repeater.errors import AddressError


__all__ = ["BindAddress", "Target", "parse_host_port"]


_HOST_PORT_PATTERN = re.compile(r"^(?:\[(?P<v6>[^\]]+)\]|(?P<host>[^:\[\]]*)):(?P<port>\d+)$")


def parse_host_port(raw: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts.

    The host part may be empty (``":8000"``). Port range is not checked here.

    Raises
    ------
    AddressError
        If *raw* is not of the form ``host:port``.

    Examples
    --------
    >>> parse_host_port("127.0.0.1:9000")
    ('127.0.0.1', 9000)
    >>> parse_host_port("[::1]:9000")
    ('::1', 9000)
    >>> parse_host_port(":8000")
    ('', 8000)
    """
    match = _HOST_PORT_PATTERN.match(raw.strip())
    if match is None:
        msg = f"Invalid address {raw!r}: expected 'host:port'"
        raise AddressError(msg)
    host = match.group("v6") if match.group("v6") is not None else match.group("host")
    return host, int(match.group("port"))


def _check_ip(host: str, raw: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        msg = f"Invalid address {raw!r}: {host!r} is not an IP address"
        raise AddressError(msg) from None


def _check_port(port: int, raw: str, *, allow_zero: bool) -> None:
    lowest = 0 if allow_zero else 1
    if isinstance(port, bool) or not isinstance(port, int) or not lowest <= port <= 65535:
        msg = f"Invalid address {raw!r}: port must be in {lowest}..65535"
        raise AddressError(msg)


def _format(host: str, port: int, family: socket.AddressFamily) -> str:
    if family == socket.AF_INET6:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class Target:
    """Immutable outbound endpoint a ``Sender`` writes to.

    Parameters
    ----------
    host : str
        IPv4 or IPv6 literal.
    port : int
        UDP port, 1..65535.

    Examples
    --------
    >>> Target.parse("10.0.0.1:9000")
    Target(host='10.0.0.1', port=9000)
    >>> str(Target(host="::1", port=9000))
    '[::1]:9000'
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        raw = f"{self.host}:{self.port}"
        ip = _check_ip(self.host, raw)
        _check_port(self.port, raw, allow_zero=False)
        # normalise so that equal endpoints compare equal
        object.__setattr__(self, "host", str(ip))

    @property
    def family(self) -> socket.AddressFamily:
        if ipaddress.ip_address(self.host).version == 6:
            return socket.AF_INET6
        return socket.AF_INET

    @staticmethod
    def parse(raw: str) -> Target:
        """Parse ``"host:port"`` or ``"[v6]:port"`` into a ``Target``.

        Raises
        ------
        AddressError
            If the string is malformed, the host is not an IP literal, or the
            port is out of range.
        """
        host, port = parse_host_port(raw)
        if not host:
            msg = f"Invalid target {raw!r}: host is required"
            raise AddressError(msg)
        return Target(host=host, port=port)

    @staticmethod
    def from_value(value: Any) -> Target:
        """Build a ``Target`` from a config value: a string or a ``{host, port}`` table."""
        match value:
            case str():
                return Target.parse(value)
            case {"host": str(host), "port": int(port), **rest} if not rest:
                return Target(host=host, port=port)
            case _:
                msg = f"Invalid target {value!r}: expected 'host:port' or {{host, port}}"
                raise AddressError(msg)

    def __str__(self) -> str:
        return _format(self.host, self.port, self.family)


@dataclass(frozen=True)
class BindAddress:
    """Local address a ``Receiver`` binds to.

    An empty host means every IPv4 interface. Port ``0`` asks the operating
    system for an ephemeral port.

    Examples
    --------
    >>> BindAddress.parse(":8000")
    BindAddress(host='0.0.0.0', port=8000)
    >>> str(BindAddress.parse("[::]:8000"))
    '[::]:8000'
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        raw = f"{self.host}:{self.port}"
        host = self.host or "0.0.0.0"
        ip = _check_ip(host, raw)
        _check_port(self.port, raw, allow_zero=True)
        object.__setattr__(self, "host", str(ip))

    @property
    def family(self) -> socket.AddressFamily:
        if ipaddress.ip_address(self.host).version == 6:
            return socket.AF_INET6
        return socket.AF_INET

    @staticmethod
    def parse(raw: str) -> BindAddress:
        host, port = parse_host_port(raw)
        return BindAddress(host=host, port=port)

    def __str__(self) -> str:
        return _format(self.host, self.port, self.family)
