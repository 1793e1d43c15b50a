# sampicker/core/game.py

"""Game records, ownership candidates and achievement progress helpers.

This module defines the GameRecord dataclass shared by the cache, the scan
orchestrator and the coordinator, the ephemeral OwnedGameCandidate produced
by ownership adapters, and the normalization rules for (unlocked, total)
progress pairs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable

__all__ = [
    "DEFAULT_GAMES",
    "GAME_CATEGORIES",
    "GameRecord",
    "OwnedGameCandidate",
    "UNKNOWN_PROGRESS",
    "has_valid_progress",
    "normalize_category",
    "normalize_progress",
    "resolve_image_url",
]

GAME_CATEGORIES: frozenset[str] = frozenset({"normal", "demo", "mod", "junk", "unknown"})

UNKNOWN_PROGRESS: tuple[int, int] = (-1, -1)

# Spacewar: the list shown when no ownership source is reachable
DEFAULT_GAMES: tuple[tuple[int, str], ...] = ((480, "normal"),)

_CAPSULE_URL = "https://shared.cloudflare.steamstatic.com/store_item_assets/steam/apps/{app_id}/{file}"
_LOGO_URL = "https://cdn.steamstatic.com/steamcommunity/public/images/apps/{app_id}/{file}.jpg"


def normalize_progress(unlocked: int, total: int) -> tuple[int, int]:
    """Brings an (unlocked, total) pair into canonical form.

    Any negative component makes the whole pair unknown. Otherwise
    unlocked is clamped to total.

    Args:
        unlocked: Number of unlocked achievements.
        total: Number of achievements.

    Returns:
        Either (-1, -1) or a pair satisfying 0 <= unlocked <= total.
    """
    if unlocked < 0 or total < 0:
        return UNKNOWN_PROGRESS
    return min(unlocked, total), total


def has_valid_progress(unlocked: int, total: int) -> bool:
    """Whether a pair describes known progress."""
    return unlocked >= 0 and total >= 0


def normalize_category(category: str | None) -> str:
    """Maps an upstream type string onto a known category.

    Args:
        category: Raw category or type attribute, may be empty.

    Returns:
        One of GAME_CATEGORIES; empty input becomes "normal".
    """
    if not category:
        return "normal"
    lowered = category.strip().lower()
    if not lowered:
        return "normal"
    return lowered if lowered in GAME_CATEGORIES else "unknown"


@dataclass
class GameRecord:
    """An owned game as shown to the user.

    Progress fields use -1 for "unknown". The pair is always either jointly
    unknown or a valid 0 <= unlocked <= total pair; use set_progress() to
    keep that invariant.

    ``live_progress`` marks progress reported during this session (scan,
    unlock, ownership source). Values adopted from the status database leave
    it False, so a later reload may replace them.
    """

    app_id: int
    name: str = ""
    category: str = "normal"
    achievement_unlocked: int = -1
    achievement_total: int = -1
    unlock_blocked: bool = False
    image_url: str = ""
    live_progress: bool = field(default=False, compare=False, repr=False)

    def __post_init__(self):
        if self.app_id <= 0 or self.app_id > 0xFFFFFFFF:
            raise ValueError(f"Invalid app id: {self.app_id}")
        self.category = normalize_category(self.category)
        self.achievement_unlocked, self.achievement_total = normalize_progress(
            self.achievement_unlocked, self.achievement_total
        )

    @property
    def has_progress(self) -> bool:
        return has_valid_progress(self.achievement_unlocked, self.achievement_total)

    @property
    def has_incomplete_achievements(self) -> bool:
        return self.has_progress and self.achievement_total > 0 and self.achievement_unlocked < self.achievement_total

    @property
    def display_name(self) -> str:
        """Name with the progress suffix used in list views."""
        name = self.name or f"App {self.app_id}"
        if self.has_progress and self.achievement_total > 0:
            return f"{name} ({self.achievement_unlocked}/{self.achievement_total})"
        return name

    def set_progress(self, unlocked: int, total: int) -> None:
        """Replaces the progress pair, normalizing it first."""
        self.achievement_unlocked, self.achievement_total = normalize_progress(unlocked, total)
        self.live_progress = self.has_progress

    def adopt_cached_progress(self, unlocked: int, total: int, unlock_blocked: bool) -> None:
        """Takes progress from the status database without marking it live."""
        self.achievement_unlocked, self.achievement_total = normalize_progress(unlocked, total)
        self.unlock_blocked = unlock_blocked
        self.live_progress = False


@dataclass
class OwnedGameCandidate:
    """One ownership source's view of an app. Consumed by the merge engine.

    Attributes:
        app_id: Steam application ID.
        name: Display name if the source knows it.
        has_stats_link: Whether the source says the app exposes achievement data.
        achievement_unlocked: Unlocked count, -1 if the source does not report it.
        achievement_total: Achievement count, -1 if the source does not report it.
        category: Catalog category (normal, demo, mod, junk, unknown).
    """

    app_id: int
    name: str = ""
    has_stats_link: bool = False
    achievement_unlocked: int = -1
    achievement_total: int = -1
    category: str = "normal"

    @property
    def has_progress(self) -> bool:
        return has_valid_progress(self.achievement_unlocked, self.achievement_total)

    def copy(self) -> OwnedGameCandidate:
        return replace(self)

    def to_record(self) -> GameRecord:
        """Builds a GameRecord from the merged candidate."""
        return GameRecord(
            app_id=self.app_id,
            name=self.name,
            category=self.category,
            achievement_unlocked=self.achievement_unlocked,
            achievement_total=self.achievement_total,
            live_progress=self.has_progress,
        )


def resolve_image_url(
    app_id: int,
    get_app_data: Callable[[int, str], str] | None,
    language: str = "english",
) -> str:
    """Looks up the capsule or logo image for an app.

    Tries the localized small capsule, then the English capsule, then the
    community logo.

    Args:
        app_id: Steam application ID.
        get_app_data: Native metadata lookup ``(app_id, key) -> str``.
        language: Current client language.

    Returns:
        Image URL, or an empty string when nothing is known.
    """
    if get_app_data is None:
        return ""

    candidate = get_app_data(app_id, f"small_capsule/{language}")
    if candidate:
        return _CAPSULE_URL.format(app_id=app_id, file=candidate)

    if language != "english":
        candidate = get_app_data(app_id, "small_capsule/english")
        if candidate:
            return _CAPSULE_URL.format(app_id=app_id, file=candidate)

    candidate = get_app_data(app_id, "logo")
    if candidate:
        return _LOGO_URL.format(app_id=app_id, file=candidate)

    return ""
