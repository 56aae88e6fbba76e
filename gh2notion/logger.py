"""Logging setup for the CLI. Library modules only ever call logging.getLogger."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler")


def setup_logging(debug: bool = False) -> None:
    """Send log records to stderr through rich.

    Level comes from ``debug`` first, then the LOG_LEVEL env var, then INFO.
    """
    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug, rich_tracebacks=debug)],
        force=True,
    )

    if level != logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
