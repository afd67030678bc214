"""Startup wiring and lifecycle of a repeater process.

Provides ``Repeater``, which dials every target, builds the shared
distributor, binds one receiver per listen port and runs them until the
process-wide ``Shutdown`` fires.
"""

from __future__ import annotations

import logging

from repeater.address import BindAddress
from repeater.config import RepeaterConfig
from repeater.distributor import Distributor
from repeater.errors import RepeaterError
from repeater.receiver import Receiver
from repeater.sender import Sender
from repeater.shutdown import Shutdown


class Repeater:
    """Owns the relay pipeline for one configuration.

    Startup is all-or-nothing: if any sender fails to dial or any receiver
    fails to bind, everything opened so far is closed and the error is
    re-raised. Use as an async context manager for automatic shutdown.

    Parameters
    ----------
    config : RepeaterConfig
        Listen ports, targets and queue settings.
    shutdown : Shutdown | None
        Process-wide cancellation handle. A fresh one is created if omitted.
    logger : logging.Logger | None
        Logger instance. Defaults to ``repeater.app``.

    Examples
    --------
    >>> async with Repeater(config) as repeater:
    ...     await repeater.shutdown.wait()
    """

    def __init__(
        self,
        config: RepeaterConfig,
        *,
        shutdown: Shutdown | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._shutdown = shutdown or Shutdown()
        self._logger = logger or logging.getLogger("repeater.app")
        self._distributor: Distributor | None = None
        self._receivers: list[Receiver] = []
        self._stopped = False

    @property
    def config(self) -> RepeaterConfig:
        return self._config

    @property
    def shutdown(self) -> Shutdown:
        return self._shutdown

    @property
    def distributor(self) -> Distributor:
        if self._distributor is None:
            msg = "Repeater has not been started"
            raise RuntimeError(msg)
        return self._distributor

    @property
    def senders(self) -> tuple[Sender, ...]:
        return tuple(s for s in self.distributor.senders if isinstance(s, Sender))

    @property
    def receivers(self) -> tuple[Receiver, ...]:
        return tuple(self._receivers)

    async def __aenter__(self) -> Repeater:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    async def start(self) -> None:
        """Open every socket, then launch every loop.

        Raises
        ------
        DialError
            If a target cannot be dialed.
        AddressError
            If a listen address is malformed.
        BindError
            If a listen port cannot be bound.
        """
        if self._distributor is not None:
            msg = "Repeater already started"
            raise RuntimeError(msg)
        config = self._config
        distributor = Distributor.from_targets(
            config.targets,
            shutdown=self._shutdown,
            capacity=config.distributor.capacity,
            sender_capacity=config.sender.capacity,
        )
        receivers: list[Receiver] = []
        try:
            for port in config.listen_ports:
                receivers.append(
                    Receiver(
                        BindAddress(host=config.receiver.bind_host, port=port),
                        distributor,
                        buffer_size=config.receiver.buffer_size,
                        on_read_error=self._on_read_error,
                    )
                )
        except (RepeaterError, ValueError):
            for receiver in receivers:
                receiver.close()
            for sender in distributor.senders:
                if isinstance(sender, Sender):
                    sender.close()
            raise

        self._distributor = distributor
        self._receivers = receivers
        distributor.start()
        for receiver in receivers:
            receiver.start()
        self._logger.info(
            "Repeating %s -> %s",
            ", ".join(str(r.address) for r in receivers),
            ", ".join(str(t) for t in config.targets),
        )

    async def stop(self) -> None:
        """Signal shutdown, stop every loop and close every socket.

        Messages still queued are discarded, not flushed.
        """
        if self._stopped:
            return
        self._stopped = True
        self._shutdown.trigger(reason="repeater stopped")
        for receiver in self._receivers:
            await receiver.stop()
        if self._distributor is not None:
            await self._distributor.stop()
        self._logger.info("Repeater stopped")

    async def run(self) -> int:
        """Start, wait for the shutdown signal, stop, and return the exit status."""
        async with self:
            await self._shutdown.wait()
        return self._shutdown.exit_code

    def _on_read_error(self, receiver: Receiver, exc: OSError) -> None:
        if self._config.receiver.fatal_read_errors:
            self._shutdown.trigger(
                exit_code=1, reason=f"read error on {receiver.address}: {exc}"
            )
        else:
            self._logger.error(
                "Receiver on %s stopped after read error; other ports keep running",
                receiver.address,
            )
