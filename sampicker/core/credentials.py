"""Steam credentials used by the web API and community adapters."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path

__all__ = ["COMMUNITY_COOKIE_ENV", "Credentials", "read_api_key_file", "read_cookie_file"]

logger = logging.getLogger("sampicker.credentials")

# Cookie name -> environment variable
COMMUNITY_COOKIE_ENV: dict[str, str] = {
    "sessionid": "SAM_STEAM_SESSIONID",
    "steamLoginSecure": "SAM_STEAM_LOGIN_SECURE",
    "steamParental": "SAM_STEAM_PARENTAL",
    "steamMachineAuth": "SAM_STEAM_MACHINE_AUTH",
}


@dataclass(frozen=True)
class Credentials:
    """API key plus Steam Community session cookies.

    Cookie names are matched case-insensitively; the original spelling of the
    first occurrence is kept because Steam expects it on the wire.

    Attributes:
        api_key: Steam Web API key, empty if not configured.
        cookies: Cookie name to value.
    """

    api_key: str = ""
    cookies: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned: dict[str, str] = {}
        seen: dict[str, str] = {}
        for name, value in (self.cookies or {}).items():
            if not name or not name.strip() or not value or not value.strip():
                continue
            key = seen.setdefault(name.strip().lower(), name.strip())
            cleaned[key] = value.strip()
        object.__setattr__(self, "cookies", cleaned)
        object.__setattr__(self, "api_key", (self.api_key or "").strip())

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def has_cookies(self) -> bool:
        return bool(self.cookies)

    def snapshot(self) -> Credentials:
        """Deep copy for handing to a worker thread."""
        return Credentials(api_key=self.api_key, cookies=copy.deepcopy(self.cookies))


def read_api_key_file(path: Path) -> str:
    """Reads a single API key from a text file.

    Args:
        path: Key file path.

    Returns:
        The trimmed key, or an empty string if missing or unreadable.
    """
    if not path.exists():
        return ""
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning("Could not read API key file %s: %s", path, e)
        return ""


def read_cookie_file(path: Path) -> dict[str, str]:
    """Parses a ``name=value`` cookie file.

    Blank lines and lines starting with ``#`` or ``//`` are ignored, as are
    lines without a name or a value.

    Args:
        path: Cookie file path.

    Returns:
        Cookie name to value, empty if the file is missing or unreadable.
    """
    cookies: dict[str, str] = {}
    if not path.exists():
        return cookies

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.warning("Could not read cookie file %s: %s", path, e)
        return cookies

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        name, sep, value = line.partition("=")
        name = name.strip()
        value = value.strip()
        if not sep or not name or not value:
            continue
        cookies[name] = value

    return cookies
