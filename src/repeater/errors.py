"""Error taxonomy for the repeater.

Setup-time errors (``ConfigurationError``, ``AddressError``, ``BindError``,
``DialError``) are fatal and abort startup. ``TransientWriteError`` is raised
and handled inside a ``Sender`` dispatch loop; it only costs one message.
A full mailbox is never an error: the message is dropped silently.
"""

from __future__ import annotations


__all__ = [
    "AddressError",
    "BindError",
    "ConfigurationError",
    "DialError",
    "RepeaterError",
    "TransientWriteError",
]


class RepeaterError(Exception):
    """Base class for every error raised by the repeater."""


class ConfigurationError(RepeaterError, ValueError):
    """The configuration is malformed (bad listen ports, bad capacities, ...)."""


class AddressError(RepeaterError, ValueError):
    """A bind or target address could not be parsed."""


class BindError(RepeaterError, OSError):
    """A listening socket could not be bound."""


class DialError(RepeaterError, OSError):
    """An outbound socket could not be connected to its target."""


class TransientWriteError(RepeaterError, OSError):
    """A single datagram write failed or was truncated.

    Parameters
    ----------
    message : str
        Human readable description.
    expected : int
        Number of bytes that should have been written.
    sent : int
        Number of bytes actually written (0 when the write raised).
    """

    def __init__(self, message: str, *, expected: int, sent: int = 0) -> None:
        super().__init__(message)
        self.expected = expected
        self.sent = sent
