# sampicker/services/status_cache.py

"""Per-account achievement status database on disk.

The file is shared with the companion process, which writes its own
entries after unlocking. Saving therefore never truncates: it re-reads the
file, overlays the in-memory records and atomically replaces the file.

Format::

    {
      "generated_utc": "2026-10-17T12:00:00.000000+00:00",
      "steam_id": 76561198000000000,
      "scan_mode": "web-api",
      "games": [{"app_id": 440, "name": "...", "type": "normal",
                 "achievement_unlocked": 12, "achievement_total": 50,
                 "has_progress": true, "has_incomplete_achievements": true,
                 "achievement_unlock_blocked": false}]
    }
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from sampicker.core.game import GameRecord, has_valid_progress, normalize_category, normalize_progress

logger = logging.getLogger("sampicker.status_cache")

__all__ = ["DEFAULT_SCAN_MODE", "FLUSH_DEBOUNCE_SECONDS", "StatusCache", "StatusEntry"]

FLUSH_DEBOUNCE_SECONDS = 0.45
DEFAULT_SCAN_MODE = "manager-update"

# Faults that never escape the cache; the in-memory records stay authoritative
_PERSISTENCE_ERRORS = (OSError, json.JSONDecodeError, ValueError, TypeError)


@dataclass(frozen=True)
class StatusEntry:
    """One normalized game entry of the status database."""

    app_id: int
    name: str = ""
    category: str = "normal"
    achievement_unlocked: int = -1
    achievement_total: int = -1
    unlock_blocked: bool = False

    @property
    def has_progress(self) -> bool:
        return has_valid_progress(self.achievement_unlocked, self.achievement_total)

    @property
    def has_incomplete_achievements(self) -> bool:
        return self.has_progress and self.achievement_total > 0 and self.achievement_unlocked < self.achievement_total

    @classmethod
    def from_json(cls, data: Any) -> StatusEntry | None:
        """Builds a normalized entry, or None for unusable data."""
        if not isinstance(data, dict):
            return None
        try:
            app_id = int(data.get("app_id", 0))
            unlocked = int(data.get("achievement_unlocked", -1))
            total = int(data.get("achievement_total", -1))
        except (TypeError, ValueError):
            return None
        if app_id <= 0 or app_id > 0xFFFFFFFF:
            return None

        unlocked, total = normalize_progress(unlocked, total)
        return cls(
            app_id=app_id,
            name=str(data.get("name") or ""),
            category=normalize_category(data.get("type")),
            achievement_unlocked=unlocked,
            achievement_total=total,
            unlock_blocked=bool(data.get("achievement_unlock_blocked", False)),
        )

    @classmethod
    def from_record(cls, record: GameRecord) -> StatusEntry:
        unlocked, total = normalize_progress(record.achievement_unlocked, record.achievement_total)
        return cls(
            app_id=record.app_id,
            name=record.name,
            category=record.category,
            achievement_unlocked=unlocked,
            achievement_total=total,
            unlock_blocked=record.unlock_blocked,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "app_id": self.app_id,
            "name": self.name,
            "type": self.category,
            "achievement_unlocked": self.achievement_unlocked,
            "achievement_total": self.achievement_total,
            "has_progress": self.has_progress,
            "has_incomplete_achievements": self.has_incomplete_achievements,
            "achievement_unlock_blocked": self.unlock_blocked,
        }


class StatusCache:
    """Loads, applies and persists the status database for one account.

    Progress updates call mark_dirty() and maybe_flush(); the file is then
    written at most once per debounce interval. flush(force=True) bypasses
    the interval for scan completion, unlock completion and shutdown.

    Attributes:
        path: Database file.
        steam_id: Active account, 0 when unknown.
        scan_mode: Label written into ``scan_mode`` on save.
    """

    def __init__(
        self,
        path: Path,
        steam_id: int = 0,
        debounce_seconds: float = FLUSH_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = path
        self.steam_id = steam_id
        self.scan_mode = DEFAULT_SCAN_MODE
        self.debounce_seconds = debounce_seconds
        self._clock = clock

        self._dirty = False
        self._last_flush: float | None = None
        self._known_mtime: float | None = None
        self.write_count = 0

    # ---- loading ------------------------------------------------------

    def _read_document(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except _PERSISTENCE_ERRORS as e:
            logger.warning("Could not read status database %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring status database %s: not a JSON object", self.path)
            return None
        return data

    def _stored_steam_id(self, data: dict[str, Any]) -> int:
        try:
            return int(data.get("steam_id") or 0)
        except (TypeError, ValueError):
            return 0

    def load(self) -> dict[int, StatusEntry]:
        """Reads and normalizes the database for the active account.

        Returns:
            App id to entry. Empty when the file is missing, unreadable or
            belongs to another account.
        """
        data = self._read_document()
        self._known_mtime = self._current_mtime()
        if data is None:
            return {}

        stored_id = self._stored_steam_id(data)
        if stored_id and stored_id != self.steam_id:
            logger.info("Discarding status database of account %d (active: %d)", stored_id, self.steam_id)
            return {}

        games = data.get("games")
        if not isinstance(games, list):
            return {}

        entries: dict[int, StatusEntry] = {}
        for raw in games:
            entry = StatusEntry.from_json(raw)
            if entry is not None:
                entries[entry.app_id] = entry
        return entries

    def apply(self, games: dict[int, GameRecord], force_overwrite: bool = False) -> int:
        """Copies cached progress into in-memory records.

        Without force_overwrite, records whose progress was reported during
        this session keep it. Unknown progress and progress adopted from an
        earlier load are replaced.

        Args:
            games: In-memory records keyed by app id. Mutated.
            force_overwrite: Let the cached values win unconditionally.

        Returns:
            Number of records that changed.
        """
        entries = self.load()
        changed = 0
        for app_id, record in games.items():
            entry = entries.get(app_id)
            if entry is None:
                continue

            before = (record.name, record.achievement_unlocked, record.achievement_total, record.unlock_blocked)
            if not record.name and entry.name:
                record.name = entry.name
            if entry.has_progress and (force_overwrite or not record.live_progress):
                record.adopt_cached_progress(entry.achievement_unlocked, entry.achievement_total, entry.unlock_blocked)
            elif force_overwrite:
                record.unlock_blocked = entry.unlock_blocked

            after = (record.name, record.achievement_unlocked, record.achievement_total, record.unlock_blocked)
            if after != before:
                changed += 1

        if changed:
            logger.info("Applied cached status to %d games", changed)
        return changed

    def check_for_external_update(self, games: dict[int, GameRecord], force_overwrite: bool = False) -> bool:
        """Hot-reloads the database if another writer touched it.

        Called on every foreground activation.

        Args:
            games: In-memory records keyed by app id. Mutated on reload.
            force_overwrite: Passed on to apply().

        Returns:
            True if the file was newer and has been reapplied.
        """
        mtime = self._current_mtime()
        if mtime is None:
            return False
        if self._known_mtime is not None and mtime <= self._known_mtime:
            return False

        logger.info("Status database changed on disk, reloading")
        self.apply(games, force_overwrite=force_overwrite)
        return True

    # ---- saving -------------------------------------------------------

    def _current_mtime(self) -> float | None:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def _overlay(self, records: Iterable[GameRecord]) -> dict[int, StatusEntry]:
        merged = self.load()
        for record in records:
            merged[record.app_id] = StatusEntry.from_record(record)
        return merged

    def save(self, records: Iterable[GameRecord]) -> bool:
        """Writes the database: re-read, overlay, sort, atomic replace.

        Args:
            records: In-memory records; they win over on-disk entries.

        Returns:
            True on success. Failures are logged and reported as False.
        """
        records = list(records)
        try:
            merged = self._overlay(records)
            read_mtime = self._known_mtime
            document = self._build_document(merged)

            # Another writer slipped in after the read; take its entries once more
            if self._current_mtime() != read_mtime:
                merged = self._overlay(records)
                document = self._build_document(merged)

            self._write_atomic(document)
        except _PERSISTENCE_ERRORS as e:
            logger.error("Failed to save status database %s: %s", self.path, e)
            return False

        self._known_mtime = self._current_mtime()
        self._dirty = False
        self._last_flush = self._clock()
        self.write_count += 1
        logger.debug("Saved %d status entries to %s", len(merged), self.path)
        return True

    def _build_document(self, entries: dict[int, StatusEntry]) -> dict[str, Any]:
        ordered = sorted(entries.values(), key=lambda e: (e.name.casefold(), e.app_id))
        return {
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "steam_id": self.steam_id,
            "scan_mode": self.scan_mode,
            "games": [entry.to_json() for entry in ordered],
        }

    def _write_atomic(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=self.path.parent,
            delete=False,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        ) as tmp:
            json.dump(document, tmp, indent=2, ensure_ascii=False)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = tmp.name

        try:
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    # ---- debounce -----------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def maybe_flush(self, records: Iterable[GameRecord]) -> bool:
        """Saves if dirty and the debounce interval has elapsed.

        Returns:
            True if a write happened.
        """
        return self.flush(records, force=False)

    def flush(self, records: Iterable[GameRecord], force: bool = False) -> bool:
        """Writes pending changes.

        Args:
            records: In-memory records.
            force: Write now, even if not dirty or inside the interval.

        Returns:
            True if a write happened.
        """
        if not force:
            if not self._dirty:
                return False
            if self._last_flush is not None and self._clock() - self._last_flush < self.debounce_seconds:
                return False
        return self.save(records)
