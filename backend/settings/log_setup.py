from __future__ import annotations

import logging
import os

_LOGGER_NAMES = ("mapclient", "api", "listings", "telemetry", "settings")


def log_level() -> int:
    raw = (os.getenv("MLD_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: int | str | None = None) -> None:
    """
    Console logging for the client and the reference endpoint.

    Idempotent: handlers installed by a previous call are replaced.
    """
    lvl = log_level() if level is None else level
    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for name in _LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(lvl)
        logger.handlers.clear()
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
