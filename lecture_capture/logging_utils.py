"""Logging setup shared by the server and the command-line entry point."""

from __future__ import annotations

import logging
from typing import Iterable

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
    level: int | str = logging.INFO,
    *,
    handlers: Iterable[logging.Handler] | None = None,
) -> logging.Logger:
    """Configure the root logger once; later calls only adjust the level."""

    logger = logging.getLogger()
    logger.setLevel(level)

    if getattr(logger, "_lecture_capture_configured", False):
        return logger

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(stream_handler)
    else:
        for handler in handlers:
            logger.addHandler(handler)

    logger._lecture_capture_configured = True  # type: ignore[attr-defined]
    return logger


__all__ = ["configure_logging", "DEFAULT_LOG_FORMAT"]
