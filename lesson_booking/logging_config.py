"""Centralized logging configuration."""
from __future__ import annotations

import sys

from loguru import logger

log_format = " | ".join(
    (
        "<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>",
        "<lvl>{level:<8}</>",
        "<c>{name}:{function}:{line}</>",
        "{message}",
    )
)

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Replaces loguru's default handler with a single stderr sink (once per process)."""
    global _configured
    if _configured:
        return

    logger.remove()  # default handler would duplicate output
    logger.add(sys.stderr, format=log_format, level=level, backtrace=False, diagnose=False)
    _configured = True
