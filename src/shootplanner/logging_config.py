"""Centralized logging configuration for the application."""

from __future__ import annotations

import logging
import sys

_CONFIGURED = False


def setup_logging(log_level: str | None = None) -> logging.Logger:
    """Attach a console handler to the root logger.

    Safe to call more than once; the handler is only added on the first call,
    later calls just adjust the level.
    """
    global _CONFIGURED

    if log_level is None:
        from .config import settings

        log_level = settings.log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if not _CONFIGURED:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)
        _CONFIGURED = True

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger
