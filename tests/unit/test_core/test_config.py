"""Tests for the Config dataclass."""

from __future__ import annotations

import json

import pytest

from sampicker.config import Config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every SAM_* variable and stop .env files from leaking in."""
    for name in (
        "SAM_DATA_DIR",
        "SAM_STEAM_WEB_API_KEY",
        "SAM_STEAM_SESSIONID",
        "SAM_STEAM_LOGIN_SECURE",
        "SAM_STEAM_PARENTAL",
        "SAM_STEAM_MACHINE_AUTH",
        "SAM_STEAM_ID",
        "SAM_COMPANION_EXE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("sampicker.config.load_dotenv", lambda *a, **k: False)
    return monkeypatch


class TestConfigPaths:
    """Tests for derived paths."""

    def test_paths_live_in_data_dir(self, tmp_path, clean_env) -> None:
        cfg = Config(DATA_DIR=tmp_path)
        assert cfg.STATUS_DB_FILE == tmp_path / "games" / "achievements" / "status.json"
        assert cfg.SCAN_LOG_FILE == tmp_path / "sam-picker-scan.log"
        assert cfg.API_KEY_FILE == tmp_path / "steam-webapi-key.txt"
        assert cfg.COOKIE_FILE == tmp_path / "steam-community-cookies.txt"

    def test_data_dir_from_environment(self, tmp_path, clean_env) -> None:
        clean_env.setenv("SAM_DATA_DIR", str(tmp_path / "custom"))
        assert Config().DATA_DIR == tmp_path / "custom"

    def test_defaults(self, tmp_path, clean_env) -> None:
        cfg = Config(DATA_DIR=tmp_path)
        assert cfg.HTTP_TIMEOUT == 10.0
        assert cfg.SCAN_CONCURRENCY == 8
        assert cfg.FLUSH_DEBOUNCE_SECONDS == 0.45


class TestConfigCredentials:
    """Tests for credential loading."""

    def test_environment_wins_over_key_file(self, tmp_path, clean_env) -> None:
        (tmp_path / "steam-webapi-key.txt").write_text("FROMFILE", encoding="utf-8")
        clean_env.setenv("SAM_STEAM_WEB_API_KEY", "FROMENV")
        assert Config(DATA_DIR=tmp_path).STEAM_WEB_API_KEY == "FROMENV"

    def test_key_file_fallback(self, tmp_path, clean_env) -> None:
        (tmp_path / "steam-webapi-key.txt").write_text("FROMFILE\n", encoding="utf-8")
        assert Config(DATA_DIR=tmp_path).STEAM_WEB_API_KEY == "FROMFILE"

    def test_cookies_from_env_and_file(self, tmp_path, clean_env) -> None:
        clean_env.setenv("SAM_STEAM_SESSIONID", "envsession")
        (tmp_path / "steam-community-cookies.txt").write_text("steamLoginSecure=secure\n", encoding="utf-8")

        creds = Config(DATA_DIR=tmp_path).credentials()
        assert creds.cookies["sessionid"] == "envsession"
        assert creds.cookies["steamLoginSecure"] == "secure"

    def test_load_environment_disabled(self, tmp_path, clean_env) -> None:
        clean_env.setenv("SAM_STEAM_WEB_API_KEY", "FROMENV")
        cfg = Config(DATA_DIR=tmp_path, load_environment=False)
        assert cfg.STEAM_WEB_API_KEY == ""
        assert cfg.COMMUNITY_COOKIES == {}


class TestConfigSettings:
    """Tests for settings.json overrides."""

    def test_settings_file(self, tmp_path, clean_env) -> None:
        (tmp_path / "settings.json").write_text(
            json.dumps({"steam_id": "76561198000000001", "companion_exe": "/opt/sam/SAM.Game", "prefer_companion": True}),
            encoding="utf-8",
        )
        cfg = Config(DATA_DIR=tmp_path)
        assert cfg.STEAM_ID == 76561198000000001
        assert str(cfg.COMPANION_EXE) == "/opt/sam/SAM.Game"
        assert cfg.PREFER_COMPANION is True

    def test_environment_steam_id_wins(self, tmp_path, clean_env) -> None:
        clean_env.setenv("SAM_STEAM_ID", "42")
        (tmp_path / "settings.json").write_text(json.dumps({"steam_id": "7"}), encoding="utf-8")
        assert Config(DATA_DIR=tmp_path).STEAM_ID == 42

    def test_broken_settings_file_is_logged(self, tmp_path, clean_env, caplog) -> None:
        (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")
        cfg = Config(DATA_DIR=tmp_path)
        assert cfg.STEAM_ID == 0
        assert "Could not load settings" in caplog.text
