"""Logging setup shared by the API, the engine and the maintenance scripts.

Records go to stdout as ``time | level | module | message`` so reservation,
conflict and cancellation lines from every layer read the same way.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from reservations.utils.config import get_settings


_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once, at ``LOG_LEVEL`` unless ``level`` is given."""

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Module logger; the first call anywhere in the process sets up output."""
    configure_logging()
    return logging.getLogger(name)
