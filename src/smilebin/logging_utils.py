"""Logging setup for smilebin."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbosity: int = 0, level: str | None = None) -> None:
    """
    Configure the root logger.

    verbosity == 0 -> WARNING
    verbosity == 1 -> INFO
    verbosity >= 2 -> DEBUG

    An explicit level name (e.g. from SMILEBIN_LOG_LEVEL) wins over verbosity.
    """
    if level:
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
    elif verbosity <= 0:
        resolved = logging.WARNING
    elif verbosity == 1:
        resolved = logging.INFO
    else:
        resolved = logging.DEBUG

    logging.basicConfig(
        level=resolved,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
