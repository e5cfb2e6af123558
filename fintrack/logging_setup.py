"""Centralized logging configuration for the ``fintrack`` package.

Entry points (the dashboard, scripts) call ``configure_logging()`` once at
startup. Library modules only do ``logging.getLogger(__name__)`` and never
attach handlers of their own; until an entry point configures logging, the
package logger carries a ``NullHandler`` so nothing is printed.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "fintrack"
_CONFIGURED = False

logging.getLogger(_PKG_LOGGER_NAME).addHandler(logging.NullHandler())


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("FINTRACK_LOG_LEVEL") or logging.INFO
    if isinstance(level, int):
        return level
    # Accept numeric strings or standard level names (INFO/DEBUG/etc.).
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = getattr(logging, name, None)
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach a single ``StreamHandler`` to the package logger, once.

    ``level`` may be an int or a level name; when ``None`` the
    ``FINTRACK_LOG_LEVEL`` environment variable is used, then ``INFO``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(_parse_level(level))
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s"))

    logger.setLevel(_parse_level(level))
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True
