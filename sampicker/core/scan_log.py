"""Append-only scan log with credential redaction.

Every HTTP request, adapter failure and progress result is written to a
plain UTF-8 text file, one line per event::

    [2026-10-17 12:00:00] App 440: Web API progress 12/50.

Query parameters that carry credentials (API keys, access tokens) are
replaced by ``***`` before anything reaches disk.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime
from pathlib import Path

__all__ = [
    "REDACTED_PARAMETERS",
    "RedactingFilter",
    "ScanLog",
    "append_scan_log",
    "configure_scan_log",
    "redact_query_parameter",
    "redact_sensitive",
]

logger = logging.getLogger("sampicker.scan_log")

REDACTED_PARAMETERS: tuple[str, ...] = ("key", "access_token")

_MASK = "***"


def redact_query_parameter(text: str, parameter: str) -> str:
    """Masks every ``parameter=<value>`` fragment in a string.

    The value runs up to the next ``&`` or the end of the string. Matching
    is case-insensitive; every occurrence is masked.

    Args:
        text: Text that may contain URLs or query strings.
        parameter: Query parameter name to mask (e.g. "key").

    Returns:
        The text with all values of the parameter replaced by ``***``.
    """
    if not text or not parameter or not parameter.strip():
        return text

    pattern = re.compile("(" + re.escape(parameter) + "=)[^&]*", re.IGNORECASE)
    return pattern.sub(lambda m: m.group(1) + _MASK, text)


def redact_sensitive(text: str) -> str:
    """Masks all known credential-bearing query parameters.

    Args:
        text: Text to sanitize.

    Returns:
        Sanitized text.
    """
    for parameter in REDACTED_PARAMETERS:
        text = redact_query_parameter(text, parameter)
    return text


class RedactingFilter(logging.Filter):
    """Logging filter that scrubs credentials from formatted log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        sanitized = redact_sensitive(message)
        if sanitized != message:
            record.msg = sanitized
            record.args = None
        return True


class ScanLog:
    """Thread-safe, append-only writer for the scan log file.

    All instances share one module-level lock so concurrent writers from
    the scan pool never interleave partial lines.

    Attributes:
        path: Target log file.
    """

    _lock = threading.Lock()

    def __init__(self, path: Path) -> None:
        self.path = path

    def append(self, app_id: int, message: str) -> None:
        """Writes one redacted line for an app.

        I/O errors are logged and otherwise ignored; the scan log must never
        break a scan.

        Args:
            app_id: App the event belongs to (0 for list-level events).
            message: Free-form event message.
        """
        sanitized = redact_sensitive(message)
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{stamp}] App {app_id}: {sanitized}\n"
        with ScanLog._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                logger.debug("Could not append to scan log %s: %s", self.path, exc)


_scan_log: ScanLog | None = None


def configure_scan_log(path: Path | None) -> ScanLog | None:
    """Sets (or clears) the global scan log target.

    Args:
        path: Log file path, or None to disable file output.

    Returns:
        The configured ScanLog, or None when disabled.
    """
    global _scan_log
    _scan_log = ScanLog(path) if path is not None else None
    return _scan_log


def append_scan_log(app_id: int, message: str) -> None:
    """Records a scan event in the global scan log and the debug logger.

    Args:
        app_id: App the event belongs to (0 for list-level events).
        message: Free-form event message.
    """
    logger.debug("App %d: %s", app_id, redact_sensitive(message))
    if _scan_log is not None:
        _scan_log.append(app_id, message)
