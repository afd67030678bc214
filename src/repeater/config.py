"""TOML-based configuration for the repeater.

Provides ``load_config`` / ``discover_config`` for loading ``repeater.toml``
into a hierarchy of frozen dataclasses describing listen ports, targets,
queue capacities, receiver settings and logging.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, TypeAlias, TypeVar

from repeater.address import Target
from repeater.errors import ConfigurationError
from repeater.mailbox import DEFAULT_CAPACITY
from repeater.receiver import DEFAULT_BUFFER_SIZE


__all__ = [
    "CONFIG_FILENAME",
    "LogLevel",
    "LoggingConfig",
    "QueueConfig",
    "ReceiverConfig",
    "RepeaterConfig",
    "discover_config",
    "load_config",
    "parse_config",
]


C = TypeVar("C")

CONFIG_FILENAME = "repeater.toml"

LogLevel: TypeAlias = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class QueueConfig:
    """Bounded mailbox settings for one pipeline stage.

    Parameters
    ----------
    capacity : int
        Maximum number of queued messages before new ones are dropped.

    Examples
    --------
    >>> QueueConfig(capacity=500)
    QueueConfig(capacity=500)
    """

    capacity: int = DEFAULT_CAPACITY


@dataclass(frozen=True)
class ReceiverConfig:
    """Settings shared by every receiver.

    Parameters
    ----------
    bind_host : str
        Local IP to bind each listen port on.
    buffer_size : int
        Read size per datagram; longer datagrams are truncated.
    fatal_read_errors : bool
        Whether a read error on any receiver shuts the whole process down
        with a non-zero exit status. When ``False`` only the failing
        receiver stops.

    Examples
    --------
    >>> ReceiverConfig(buffer_size=1500)
    ReceiverConfig(bind_host='0.0.0.0', buffer_size=1500, fatal_read_errors=True)
    """

    bind_host: str = "0.0.0.0"
    buffer_size: int = DEFAULT_BUFFER_SIZE
    fatal_read_errors: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: LogLevel = "INFO"


@dataclass(frozen=True)
class RepeaterConfig:
    """Top-level configuration for a repeater process.

    Typically created via ``load_config()`` but can be constructed manually.

    Parameters
    ----------
    listen_ports : tuple[int, ...]
        One receiver is started per port.
    targets : tuple[Target, ...]
        One sender is dialed per target, in this order.
    receiver : ReceiverConfig
        Receiver settings.
    distributor : QueueConfig
        Distributor mailbox settings.
    sender : QueueConfig
        Per-sender mailbox settings.
    logging : LoggingConfig
        Default log level for the CLI.

    Examples
    --------
    >>> config = RepeaterConfig(
    ...     listen_ports=(8000,),
    ...     targets=(Target.parse("127.0.0.1:9000"),),
    ... )
    >>> config.sender.capacity
    100
    """

    listen_ports: tuple[int, ...] = ()
    targets: tuple[Target, ...] = ()
    receiver: ReceiverConfig = field(default_factory=ReceiverConfig)
    distributor: QueueConfig = field(default_factory=QueueConfig)
    sender: QueueConfig = field(default_factory=QueueConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``repeater.toml``.

    Returns
    -------
    Path | None
        Path to the discovered config file, or ``None`` if not found.
    """
    current = start or Path.cwd()
    current = current.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(path: Path | None = None) -> RepeaterConfig:
    """Load a ``RepeaterConfig`` from a TOML file.

    If *path* is ``None``, auto-discovers ``repeater.toml`` by walking up
    from the current working directory.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist, or nothing was discovered.
    ConfigurationError
        If the file cannot be read, is not valid UTF-8 TOML, or its values
        are malformed.
    AddressError
        If a target address is malformed.

    Examples
    --------
    >>> config = load_config(Path("repeater.toml"))
    >>> config.listen_ports
    (8000,)
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            msg = f"No {CONFIG_FILENAME} found in {Path.cwd()} or its parents"
            raise FileNotFoundError(msg)
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    try:
        with path.open("rb") as f:
            raw = tomllib.load(f)
    except OSError as exc:
        msg = f"Failed to read config file {path}: {exc}"
        raise ConfigurationError(msg) from exc
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        msg = f"Failed to parse config file {path}: {exc}"
        raise ConfigurationError(msg) from exc

    return parse_config(raw)


def parse_config(raw: dict[str, Any]) -> RepeaterConfig:
    """Validate an already-decoded TOML document into a ``RepeaterConfig``."""
    known = {"listen_ports", "targets", "receiver", "distributor", "sender", "logging"}
    unknown = sorted(set(raw) - known)
    if unknown:
        msg = f"Unknown config keys: {', '.join(unknown)}"
        raise ConfigurationError(msg)

    listen_ports = _parse_listen_ports(raw.get("listen_ports"))
    targets = _parse_targets(raw.get("targets"))

    receiver = _table(ReceiverConfig, raw, "receiver")
    _check_type("receiver.bind_host", receiver.bind_host, str)
    _check_positive("receiver.buffer_size", receiver.buffer_size)
    _check_type("receiver.fatal_read_errors", receiver.fatal_read_errors, bool)

    distributor = _table(QueueConfig, raw, "distributor")
    _check_positive("distributor.capacity", distributor.capacity)
    sender = _table(QueueConfig, raw, "sender")
    _check_positive("sender.capacity", sender.capacity)

    logging_config = _table(LoggingConfig, raw, "logging")
    level = logging_config.level.upper() if isinstance(logging_config.level, str) else None
    if level not in _LOG_LEVELS:
        msg = f"logging.level must be one of {', '.join(_LOG_LEVELS)}, got {logging_config.level!r}"
        raise ConfigurationError(msg)

    return RepeaterConfig(
        listen_ports=listen_ports,
        targets=targets,
        receiver=receiver,
        distributor=distributor,
        sender=sender,
        logging=LoggingConfig(level=level),
    )


def _parse_listen_ports(value: Any) -> tuple[int, ...]:
    if not isinstance(value, list) or not value:
        msg = "listen_ports must be a non-empty list of port numbers"
        raise ConfigurationError(msg)
    ports: list[int] = []
    for port in value:
        if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
            msg = f"Invalid listen port {port!r}: must be an integer in 0..65535"
            raise ConfigurationError(msg)
        if port != 0 and port in ports:
            msg = f"Duplicate listen port {port}"
            raise ConfigurationError(msg)
        ports.append(port)
    return tuple(ports)


def _parse_targets(value: Any) -> tuple[Target, ...]:
    if not isinstance(value, list) or not value:
        msg = "targets must be a non-empty list of 'host:port' entries"
        raise ConfigurationError(msg)
    return tuple(Target.from_value(item) for item in value)


def _table(cls: type[C], raw: dict[str, Any], key: str) -> C:
    table = raw.get(key, {})
    if not isinstance(table, dict):
        msg = f"[{key}] must be a table"
        raise ConfigurationError(msg)
    allowed = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(table) - allowed)
    if unknown:
        msg = f"Unknown keys in [{key}]: {', '.join(unknown)}"
        raise ConfigurationError(msg)
    return cls(**table)


def _check_type(name: str, value: Any, expected: type) -> None:
    if not isinstance(value, expected):
        msg = f"{name} must be of type {expected.__name__}, got {value!r}"
        raise ConfigurationError(msg)


def _check_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{name} must be a positive integer, got {value!r}"
        raise ConfigurationError(msg)
