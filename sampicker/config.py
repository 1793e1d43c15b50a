"""
Configuration - data paths, credentials and scan tuning.
Credentials come from the environment (optionally via a .env file) with
text-file fallbacks inside the data directory.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from sampicker.core.credentials import COMMUNITY_COOKIE_ENV, Credentials, read_api_key_file, read_cookie_file

logger = logging.getLogger("sampicker.config")


__all__ = ["Config", "config"]


def _default_data_dir() -> Path:
    env_dir = os.getenv("SAM_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "data"


@dataclass
class Config:
    """
    Central configuration handling for the data engine.
    Manages paths, credentials and scan settings.
    """

    DATA_DIR: Path = field(default_factory=_default_data_dir)

    # Credentials
    STEAM_WEB_API_KEY: str = ""
    COMMUNITY_COOKIES: dict[str, str] = None

    # Active account (SteamID64); 0 when unknown
    STEAM_ID: int = 0

    # Companion executable for --achievement-progress / --unlock-all
    COMPANION_EXE: Path | None = None
    PREFER_COMPANION: bool = False

    HTTP_TIMEOUT: float = 10.0
    SCAN_CONCURRENCY: int = 8
    FLUSH_DEBOUNCE_SECONDS: float = 0.45
    PROGRESS_TIMEOUT: float = 25.0
    UNLOCK_ALL_TIMEOUT: float = 45.0

    load_environment: bool = True

    def __post_init__(self):
        """Resolve derived paths and load credentials and settings."""
        if self.COMMUNITY_COOKIES is None:
            self.COMMUNITY_COOKIES = {}

        if self.load_environment:
            load_dotenv()
            self._load_credentials()
            self._load_settings()

    @property
    def STATUS_DB_FILE(self) -> Path:
        return self.DATA_DIR / "games" / "achievements" / "status.json"

    @property
    def SCAN_LOG_FILE(self) -> Path:
        return self.DATA_DIR / "sam-picker-scan.log"

    @property
    def SETTINGS_FILE(self) -> Path:
        return self.DATA_DIR / "settings.json"

    @property
    def API_KEY_FILE(self) -> Path:
        return self.DATA_DIR / "steam-webapi-key.txt"

    @property
    def COOKIE_FILE(self) -> Path:
        return self.DATA_DIR / "steam-community-cookies.txt"

    def _load_credentials(self) -> None:
        """Environment first, key/cookie files second."""
        env_key = os.getenv("SAM_STEAM_WEB_API_KEY", "").strip()
        if env_key:
            self.STEAM_WEB_API_KEY = env_key
        elif not self.STEAM_WEB_API_KEY:
            self.STEAM_WEB_API_KEY = read_api_key_file(self.API_KEY_FILE)

        cookies: dict[str, str] = {}
        for cookie_name, variable in COMMUNITY_COOKIE_ENV.items():
            value = os.getenv(variable, "").strip()
            if value:
                cookies[cookie_name] = value
        cookies.update(read_cookie_file(self.COOKIE_FILE))
        cookies.update(self.COMMUNITY_COOKIES)
        self.COMMUNITY_COOKIES = cookies

        env_steam_id = os.getenv("SAM_STEAM_ID", "").strip()
        if env_steam_id.isdigit():
            self.STEAM_ID = int(env_steam_id)

        env_companion = os.getenv("SAM_COMPANION_EXE", "").strip()
        if env_companion:
            self.COMPANION_EXE = Path(env_companion)

    def _load_settings(self) -> None:
        """Load overrides from the JSON settings file."""
        if not self.SETTINGS_FILE.exists():
            return

        try:
            with open(self.SETTINGS_FILE, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not load settings from %s: %s", self.SETTINGS_FILE, e)
            return

        if not isinstance(data, dict):
            logger.error("Ignoring settings file %s: not a JSON object", self.SETTINGS_FILE)
            return

        steam_id = str(data.get("steam_id", "") or "")
        if steam_id.isdigit() and not self.STEAM_ID:
            self.STEAM_ID = int(steam_id)

        companion = data.get("companion_exe")
        if companion and self.COMPANION_EXE is None:
            self.COMPANION_EXE = Path(companion)

        self.PREFER_COMPANION = bool(data.get("prefer_companion", self.PREFER_COMPANION))

    def credentials(self) -> Credentials:
        """Current credentials as an immutable value."""
        return Credentials(api_key=self.STEAM_WEB_API_KEY, cookies=dict(self.COMMUNITY_COOKIES))


# Global instance
config = Config()
