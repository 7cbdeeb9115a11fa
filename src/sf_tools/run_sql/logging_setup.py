"""Process-wide logging setup for the run-sql command."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

from .config import ENV_LOG_LEVEL

DEFAULT_LEVEL = "WARNING"


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr so stdout only carries the result.

    Called once at startup. ``--verbose`` wins over RUN_SQL_LOG_LEVEL.
    """
    level_name = "DEBUG" if verbose else os.environ.get(ENV_LOG_LEVEL, DEFAULT_LEVEL)
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
