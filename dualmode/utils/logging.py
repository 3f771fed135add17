"""Logging utilities for dualmode."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger under the ``dualmode`` namespace with rich formatting.

    Args:
        name: Logger name, relative to ``dualmode``
        level: Log level name (default: INFO)

    Returns:
        Configured logger
    """
    qualified = name if name.startswith("dualmode") else f"dualmode.{name}"
    logger = logging.getLogger(qualified)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Handlers are attached once per logger name
    if logger.handlers:
        return logger

    if not level:
        logger.setLevel(logging.INFO)

    rich_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
    logger.addHandler(rich_handler)

    # Propagate so pytest's caplog and host applications can collect records
    logger.propagate = True

    return logger
