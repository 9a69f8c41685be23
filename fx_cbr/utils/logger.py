"""Logging utilities for the fx_cbr package."""

from __future__ import annotations

import logging
import os

PACKAGE_LOGGER = "fx_cbr"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL_ENV = "FX_CBR_LOG_LEVEL"

_configured = False


def resolve_level(level: int | str) -> int:
    """Turn ``"debug"``/``"INFO"``/``10`` into a numeric logging level."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def default_log_level() -> str:
    """Level name for the command line tools, taken from ``FX_CBR_LOG_LEVEL``."""

    return os.getenv(LOG_LEVEL_ENV, "").strip() or "INFO"


def _configure() -> None:
    global _configured
    if _configured:
        return
    _configured = True
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if os.getenv(LOG_LEVEL_ENV, "").strip():
        set_log_level(default_log_level())


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Return a logger, configuring the root handler on first use."""
    _configure()
    return logging.getLogger(name)


def set_log_level(level: int | str) -> None:
    """Adjust the level of every ``fx_cbr`` logger at once."""

    logging.getLogger(PACKAGE_LOGGER).setLevel(resolve_level(level))


__all__ = [
    "LOG_LEVEL_ENV",
    "default_log_level",
    "get_logger",
    "resolve_level",
    "set_log_level",
]
