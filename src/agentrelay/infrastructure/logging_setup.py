"""structlog configuration for relay processes."""

from __future__ import annotations

import logging

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(level: str = "INFO") -> int:
    """Configure structlog to drop events below ``level``.

    Unknown level names fall back to INFO.

    Returns:
        The numeric level in effect.
    """
    log_level = _LEVELS.get(level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )
    return log_level
