"""Command-line entry point: ``repeater [-c CONFIG] [--debug]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

from repeater.app import Repeater
from repeater.config import CONFIG_FILENAME, RepeaterConfig, load_config
from repeater.errors import RepeaterError
from repeater.shutdown import Shutdown

logger = logging.getLogger("repeater.cli")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s | %(message)s"
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repeater",
        description="Relay UDP datagrams from one or more ports to a fixed set of targets.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=f"configuration file (default: discover {CONFIG_FILENAME})",
    )
    parser.add_argument("--debug", action="store_true", help="debug logging")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="log level (overrides the config file)",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)


def install_signal_handlers(shutdown: Shutdown) -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(
            sig, lambda s=sig: shutdown.trigger(reason=signal.Signals(s).name)
        )


def remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.remove_signal_handler(sig)


async def serve(config: RepeaterConfig, *, shutdown: Shutdown | None = None) -> int:
    """Run a repeater for *config* until interrupted; return the exit status."""
    shutdown = shutdown or Shutdown()
    install_signal_handlers(shutdown)
    try:
        return await Repeater(config, shutdown=shutdown).run()
    except (RepeaterError, ValueError) as exc:
        logger.critical("Failed to start repeater: %s", exc)
        return 1
    finally:
        remove_signal_handlers()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging("DEBUG" if args.debug else args.log_level or "INFO")
    logger.debug("Debug mode enabled")

    try:
        config = load_config(args.config)
    except (FileNotFoundError, RepeaterError) as exc:
        logger.critical("Failed to load config: %s", exc)
        return 1

    if not args.debug and args.log_level is None:
        logging.getLogger().setLevel(config.logging.level)

    return asyncio.run(serve(config))


def run() -> None:
    sys.exit(main())
