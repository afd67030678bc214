from repeater.address import BindAddress, Target
from repeater.app import Repeater
from repeater.config import (
    LoggingConfig,
    QueueConfig,
    ReceiverConfig,
    RepeaterConfig,
    discover_config,
    load_config,
)
from repeater.distributor import Distributor, MessageSink
from repeater.errors import (
    AddressError,
    BindError,
    ConfigurationError,
    DialError,
    RepeaterError,
    TransientWriteError,
)
from repeater.mailbox import Mailbox
from repeater.receiver import Receiver
from repeater.sender import Sender
from repeater.shutdown import Shutdown

__all__ = [
    "AddressError",
    "BindAddress",
    "BindError",
    "ConfigurationError",
    "DialError",
    "Distributor",
    "LoggingConfig",
    "Mailbox",
    "MessageSink",
    "QueueConfig",
    "Receiver",
    "ReceiverConfig",
    "Repeater",
    "RepeaterConfig",
    "RepeaterError",
    "Sender",
    "Shutdown",
    "Target",
    "TransientWriteError",
    "discover_config",
    "load_config",
]
