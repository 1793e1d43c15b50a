"""Centralized logging configuration for SAM Picker.

Provides a pre-configured logger with console output and optional file logging.
All modules should log through the ``sampicker`` logger hierarchy instead of
using print().
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from sampicker.core.scan_log import RedactingFilter

__all__ = ["logger", "setup_logging"]

logger = logging.getLogger("sampicker")


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
) -> None:
    """Configure the root application logger.

    Every handler carries a RedactingFilter so API keys embedded in request
    URLs never reach the console or the log file.

    Args:
        level: The logging level (default: INFO).
        log_file: Optional path to a log file. If provided, logs will
            also be written to this file.
    """
    logger.setLevel(level)

    if logger.handlers:
        return

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    redactor = RedactingFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redactor)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        logger.addHandler(file_handler)
