"""Logging setup and structured-record helpers.

Modules log through ``logging.getLogger(__name__)``; this module only owns the
root configuration and the small helpers used to attach structured fields to
DEBUG records without paying for them when DEBUG is off.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from ..constants import Constants

_configured = False


def configure_logging(level: Optional[str] = None, force: bool = False) -> None:
    """Initialise the root logger once.

    Args:
        level: Level name; falls back to ``PKGRESTORE_LOG_LEVEL`` then INFO.
        force: Reconfigure even if logging was already configured here.
    """
    global _configured  # pylint: disable=global-statement
    if _configured and not force:
        return

    level_name = (level or os.environ.get(Constants.LOG_LEVEL_ENV) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    if not isinstance(level_value, int):
        level_value = logging.INFO

    logging.basicConfig(level=level_value, format=Constants.LOG_FORMAT, force=force)
    logging.getLogger().setLevel(level_value)
    _configured = True


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping for structured records, dropping ``None`` values."""
    return {key: value for key, value in fields.items() if value is not None}


class Timer:
    """Measure wall-clock duration of a block."""

    def __init__(self) -> None:
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds; measures up to now while the block is running."""
        if self._start is None:
            return 0
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
