"""Merge engine for owned-game candidates from several sources.

Cheaper sources tend to under-report: a profile XML may know an app
exists but not its achievements, while the web API knows both. Merging is
therefore monotonic: a candidate's achievement counts are only replaced by
counts that are at least as informative.
"""

from __future__ import annotations

from typing import Iterable

from sampicker.core.game import OwnedGameCandidate, normalize_progress

__all__ = ["finalize_candidates", "merge_candidates", "should_adopt_progress"]


def should_adopt_progress(dest: OwnedGameCandidate, src: OwnedGameCandidate) -> bool:
    """Whether ``src``'s achievement counts should replace ``dest``'s.

    Adopt when the destination has no valid progress, when the source
    knows strictly more achievements, or when totals match and the source
    reports more unlocks. A source without valid progress never wins.

    Args:
        dest: Candidate already in the merged map.
        src: Incoming candidate for the same app.

    Returns:
        True if the source's counts are adopted.
    """
    if not src.has_progress:
        return False
    if not dest.has_progress:
        return True
    if src.achievement_total > dest.achievement_total:
        return True
    return src.achievement_total == dest.achievement_total and src.achievement_unlocked > dest.achievement_unlocked


def merge_candidates(dest: dict[int, OwnedGameCandidate], src: Iterable[OwnedGameCandidate]) -> dict[int, OwnedGameCandidate]:
    """Folds candidates into a map keyed by app id, in place.

    New app ids are inserted as copies. For known ids the empty name is
    filled from the source, the stats-link flags are OR-ed and progress is
    adopted per should_adopt_progress().

    Args:
        dest: Merged candidates so far. Mutated.
        src: Candidates from the next source.

    Returns:
        ``dest``, for chaining.
    """
    for candidate in src:
        if candidate.app_id <= 0:
            continue

        existing = dest.get(candidate.app_id)
        if existing is None:
            dest[candidate.app_id] = candidate.copy()
            continue

        if not existing.name and candidate.name:
            existing.name = candidate.name
        existing.has_stats_link = existing.has_stats_link or candidate.has_stats_link
        if should_adopt_progress(existing, candidate):
            existing.achievement_unlocked = candidate.achievement_unlocked
            existing.achievement_total = candidate.achievement_total

    return dest


def finalize_candidates(merged: dict[int, OwnedGameCandidate]) -> list[OwnedGameCandidate]:
    """Normalizes merged candidates for conversion into game records.

    An app without a stats link has, by definition, no achievements, so
    unknown progress becomes 0/0. Apps that do link to stats keep unknown
    progress until a scan fills it in.

    Args:
        merged: Output of merge_candidates().

    Returns:
        Candidates sorted by app id.
    """
    result: list[OwnedGameCandidate] = []
    for app_id in sorted(merged):
        candidate = merged[app_id].copy()
        unlocked, total = normalize_progress(candidate.achievement_unlocked, candidate.achievement_total)
        if (unlocked, total) == (-1, -1) and not candidate.has_stats_link:
            unlocked, total = 0, 0
        candidate.achievement_unlocked = unlocked
        candidate.achievement_total = total
        result.append(candidate)
    return result
