# sampicker/services/scan_orchestrator.py

"""Achievement progress scan over a set of app ids.

Flow:
    1. select_scan_targets() picks the app ids for the requested mode
    2. select_achievement_source() picks one adapter for the whole cycle
    3. ScanOrchestrator.run() fans out over a bounded thread pool (HTTP)
       or walks the ids one by one (companion process)
    4. Every app produces exactly one ProgressEvent; failures carry -1/-1
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FetchResult
from sampicker.core.game import UNKNOWN_PROGRESS, GameRecord, normalize_progress
from sampicker.core.scan_log import append_scan_log
from sampicker.integrations.achievement_sources import CommunityStatsAchievementSource, WebApiAchievementSource
from sampicker.integrations.companion import CompanionProcess, CompanionProgressSource

logger = logging.getLogger("sampicker.scan_orchestrator")

__all__ = [
    "AchievementSource",
    "MAX_SCAN_WORKERS",
    "ProgressEvent",
    "SCAN_MODE_AUTO",
    "SCAN_MODE_FULL",
    "ScanOrchestrator",
    "ScanRequest",
    "ScanSummary",
    "select_achievement_source",
    "select_scan_targets",
]

MAX_SCAN_WORKERS = 8

SCAN_MODE_AUTO = "auto"
SCAN_MODE_FULL = "full-rescan"


class AchievementSource(Protocol):
    name: str
    mode: str

    def fetch(self, steam_id: int, app_id: int, credentials: Credentials | None = None) -> FetchResult: ...


@dataclass(frozen=True)
class ScanRequest:
    """Immutable description of one scan run.

    Attributes:
        app_ids: Apps to scan, in scheduling order.
        steam_id: SteamID64 of the account being scanned.
        credentials: Snapshot taken when the request was built.
        mode: SCAN_MODE_AUTO or SCAN_MODE_FULL.
    """

    app_ids: tuple[int, ...]
    steam_id: int
    credentials: Credentials = field(default_factory=Credentials)
    mode: str = SCAN_MODE_AUTO

    def __post_init__(self):
        if self.mode not in (SCAN_MODE_AUTO, SCAN_MODE_FULL):
            raise ValueError(f"Unknown scan mode: {self.mode}")
        object.__setattr__(self, "app_ids", tuple(self.app_ids))
        object.__setattr__(self, "credentials", self.credentials.snapshot())


@dataclass(frozen=True)
class ProgressEvent:
    """Result for one scanned app.

    Attributes:
        app_id: Scanned app.
        unlocked: Unlocked count, -1 if the adapter failed.
        total: Achievement count, -1 if the adapter failed.
        completed: Apps finished so far in this run, 1-based.
    """

    app_id: int
    unlocked: int
    total: int
    completed: int

    @property
    def failed(self) -> bool:
        return (self.unlocked, self.total) == UNKNOWN_PROGRESS


@dataclass
class ScanSummary:
    mode_label: str
    requested: int = 0
    scanned: int = 0
    failed: int = 0
    cancelled: bool = False


ProgressCallback = Callable[[ProgressEvent], None]


def select_scan_targets(games: Iterable[GameRecord], mode: str) -> tuple[int, ...]:
    """App ids a scan should visit.

    Args:
        games: Current in-memory records.
        mode: SCAN_MODE_AUTO (only apps without progress) or SCAN_MODE_FULL.

    Returns:
        App ids sorted ascending.
    """
    if mode == SCAN_MODE_FULL:
        return tuple(sorted(g.app_id for g in games))
    return tuple(sorted(g.app_id for g in games if not g.has_progress))


def select_achievement_source(
    credentials: Credentials,
    companion: CompanionProcess | None = None,
    prefer_companion: bool = False,
    timeout: float = 10.0,
) -> tuple[AchievementSource, str]:
    """Chooses the progress adapter for one refresh cycle.

    Order: the companion process when configured and preferred, then the
    Web API when a key is present, then the community stats endpoint.

    Args:
        credentials: Credential snapshot of the cycle.
        companion: Companion process, if one is configured.
        prefer_companion: Whether the companion wins over HTTP sources.
        timeout: HTTP timeout for the HTTP adapters.

    Returns:
        (source, mode_label). The label is one of "companion", "web-api",
        "community-auth" and "community".
    """
    if companion is not None and prefer_companion:
        return CompanionProgressSource(companion), "companion"
    if credentials.has_api_key:
        return WebApiAchievementSource(timeout), "web-api"
    label = "community-auth" if credentials.has_cookies else "community"
    return CommunityStatsAchievementSource(timeout), label


class ScanOrchestrator:
    """Runs one adapter over a ScanRequest.

    Cancellation is cooperative and sticky: cancel() stops scheduling, calls already
    in flight finish and still report. Requests arriving during a run are
    latched by the caller, not here.

    Attributes:
        source: Progress adapter used for every app.
        mode_label: Label recorded in the status database.
        sequential: Scan one app at a time instead of using the pool.
    """

    def __init__(
        self,
        source: AchievementSource,
        mode_label: str | None = None,
        max_workers: int = MAX_SCAN_WORKERS,
        sequential: bool | None = None,
    ) -> None:
        self.source = source
        self.mode_label = mode_label or source.mode
        self.max_workers = max(1, min(max_workers, MAX_SCAN_WORKERS))
        self.sequential = isinstance(source, CompanionProgressSource) if sequential is None else sequential

        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._completed = 0
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stops scheduling new apps."""
        self._cancel_event.set()

    def run(self, request: ScanRequest, on_progress: ProgressCallback) -> ScanSummary:
        """Scans every app of the request.

        Args:
            request: What to scan.
            on_progress: Called once per finished app, on the thread calling run().

        Returns:
            ScanSummary of the run.
        """
        with self._lock:
            self._running = True

        summary = ScanSummary(mode_label=self.mode_label)
        try:
            self._scan_all(request, on_progress, summary)
        finally:
            with self._lock:
                self._running = False

        summary.cancelled = self.cancelled
        return summary

    def _scan_all(self, request: ScanRequest, on_progress: ProgressCallback, summary: ScanSummary) -> None:
        with self._lock:
            self._completed = 0
        summary.requested = len(request.app_ids)

        append_scan_log(
            0,
            f"Scan started: {len(request.app_ids)} apps, {request.mode}, via {self.source.name} ({self.mode_label}).",
        )

        if self.sequential or len(request.app_ids) <= 1:
            for app_id in request.app_ids:
                if self.cancelled:
                    break
                self._report(self._scan_app(request, app_id), on_progress, summary)
        else:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(self._scan_if_active, request, app_id) for app_id in request.app_ids]
                for future in concurrent.futures.as_completed(futures):
                    outcome = future.result()
                    if outcome is not None:
                        self._report(outcome, on_progress, summary)

        append_scan_log(0, f"Scan finished: {summary.scanned} done, {summary.failed} failed.")

    def _scan_if_active(self, request: ScanRequest, app_id: int) -> tuple[int, int, int] | None:
        if self.cancelled:
            return None
        return self._scan_app(request, app_id)

    def _scan_app(self, request: ScanRequest, app_id: int) -> tuple[int, int, int]:
        try:
            result = self.source.fetch(request.steam_id, app_id, request.credentials)
        except Exception as exc:
            logger.warning("Progress lookup for %d raised: %s", app_id, exc)
            append_scan_log(app_id, f"{self.source.name} raised: {exc}")
            return (app_id, *UNKNOWN_PROGRESS)

        if not result.succeeded:
            return (app_id, *UNKNOWN_PROGRESS)
        unlocked, total = normalize_progress(*result.value)
        return app_id, unlocked, total

    def _report(self, outcome: tuple[int, int, int], on_progress: ProgressCallback, summary: ScanSummary) -> None:
        app_id, unlocked, total = outcome
        with self._lock:
            self._completed += 1
            completed = self._completed
        summary.scanned += 1
        if (unlocked, total) == UNKNOWN_PROGRESS:
            summary.failed += 1
        on_progress(ProgressEvent(app_id, unlocked, total, completed))
