"""
Logging setup for the CLI and API entry points.

Library modules only create loggers with logging.getLogger(__name__);
handlers are installed here, once, by whichever entry point runs.
"""

import logging
from typing import Optional

from rich.logging import RichHandler


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route ragcore logs through a rich console handler.

    Args:
        level: Logging level name (defaults to settings.log_level)
    """
    if level is None:
        from ragcore.config import settings

        level = settings.log_level

    logger = logging.getLogger("ragcore")
    logger.setLevel(level.upper())

    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
