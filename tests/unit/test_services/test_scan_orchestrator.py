"""Tests for the achievement scan orchestrator."""

from __future__ import annotations

import threading
import time
from typing import Callable
from unittest.mock import MagicMock

import pytest

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FailureKind, FetchResult
from sampicker.core.game import GameRecord
from sampicker.integrations.achievement_sources import CommunityStatsAchievementSource, WebApiAchievementSource
from sampicker.integrations.companion import CompanionProcess, CompanionProgressSource
from sampicker.services.scan_orchestrator import (
    SCAN_MODE_AUTO,
    SCAN_MODE_FULL,
    ProgressEvent,
    ScanOrchestrator,
    ScanRequest,
    select_achievement_source,
    select_scan_targets,
)

STEAM_ID = 76561198000000000


class FakeSource:
    """Progress source answering from a dict; listed ids fail."""

    name = "Fake"
    mode = "fake"

    def __init__(self, failing: set[int] | None = None, delay: float = 0.0) -> None:
        self.failing = failing or set()
        self.delay = delay
        self.calls: list[int] = []
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def fetch(self, steam_id: int, app_id: int, credentials: Credentials | None = None) -> FetchResult:
        with self._lock:
            self.calls.append(app_id)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if app_id in self.failing:
                return FetchResult.fail(FailureKind.TRANSPORT, "forced failure")
            return FetchResult.ok((app_id % 3, 5))
        finally:
            with self._lock:
                self.active -= 1


def _collect() -> tuple[list[ProgressEvent], Callable[[ProgressEvent], None]]:
    events: list[ProgressEvent] = []
    return events, events.append


# ---------------------------------------------------------------------------
# Scenario: ten apps, three forced failures
# ---------------------------------------------------------------------------


class TestTenAppsThreeFailuresScenario:
    """Ten ids with three failing adapters calls."""

    def test_every_app_reported_once(self) -> None:
        source = FakeSource(failing={3, 6, 9}, delay=0.01)
        events, on_progress = _collect()

        summary = ScanOrchestrator(source).run(ScanRequest(tuple(range(1, 11)), STEAM_ID), on_progress)

        assert len(events) == 10
        assert [e.completed for e in events] == list(range(1, 11))
        assert sorted(e.app_id for e in events) == list(range(1, 11))
        failed = [e for e in events if (e.unlocked, e.total) == (-1, -1)]
        assert sorted(e.app_id for e in failed) == [3, 6, 9]
        assert summary.scanned == 10
        assert summary.failed == 3


class TestScanOrchestrator:
    """Tests for ScanOrchestrator.run()."""

    def test_concurrency_ceiling(self) -> None:
        source = FakeSource(delay=0.02)
        ScanOrchestrator(source, max_workers=32).run(ScanRequest(tuple(range(1, 41)), STEAM_ID), lambda e: None)
        assert 1 < source.max_active <= 8

    def test_sequential_path(self) -> None:
        source = FakeSource(delay=0.005)
        orchestrator = ScanOrchestrator(source, sequential=True)
        orchestrator.run(ScanRequest((5, 1, 3), STEAM_ID), lambda e: None)
        assert source.calls == [5, 1, 3]
        assert source.max_active == 1

    def test_companion_source_is_sequential(self) -> None:
        orchestrator = ScanOrchestrator(CompanionProgressSource(MagicMock(spec=CompanionProcess)))
        assert orchestrator.sequential is True
        assert orchestrator.mode_label == "companion"

    def test_cancel_stops_scheduling(self) -> None:
        source = FakeSource(delay=0.01)
        orchestrator = ScanOrchestrator(source, sequential=True)
        events: list[ProgressEvent] = []

        def on_progress(event: ProgressEvent) -> None:
            events.append(event)
            if event.completed == 2:
                orchestrator.cancel()

        summary = orchestrator.run(ScanRequest(tuple(range(1, 11)), STEAM_ID), on_progress)

        assert len(events) == 2
        assert summary.cancelled is True

    def test_cancel_in_parallel_lets_in_flight_finish(self) -> None:
        source = FakeSource(delay=0.02)
        orchestrator = ScanOrchestrator(source)
        events: list[ProgressEvent] = []

        def on_progress(event: ProgressEvent) -> None:
            events.append(event)
            orchestrator.cancel()

        orchestrator.run(ScanRequest(tuple(range(1, 101)), STEAM_ID), on_progress)

        assert len(events) == len(source.calls)
        assert len(events) < 100

    def test_exception_in_source_degrades_to_unknown(self) -> None:
        source = MagicMock()
        source.name = "Broken"
        source.mode = "broken"
        source.fetch.side_effect = RuntimeError("unexpected")
        events, on_progress = _collect()

        ScanOrchestrator(source).run(ScanRequest((1, 2), STEAM_ID), on_progress)

        assert [(e.unlocked, e.total) for e in events] == [(-1, -1), (-1, -1)]

    def test_request_credentials_are_copied(self) -> None:
        cookies = {"sessionid": "abc"}
        creds = Credentials(cookies=cookies)
        request = ScanRequest((1,), STEAM_ID, creds)
        assert request.credentials == creds
        assert request.credentials.cookies is not creds.cookies

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ValueError):
            ScanRequest((1,), STEAM_ID, mode="everything")


class TestSelection:
    """Tests for target and adapter selection."""

    def test_auto_targets_only_unknown(self) -> None:
        games = [
            GameRecord(30),
            GameRecord(10, achievement_unlocked=1, achievement_total=2),
            GameRecord(20, achievement_unlocked=0, achievement_total=0),
            GameRecord(5),
        ]
        assert select_scan_targets(games, SCAN_MODE_AUTO) == (5, 30)
        assert select_scan_targets(games, SCAN_MODE_FULL) == (5, 10, 20, 30)

    def test_web_api_when_key_present(self) -> None:
        source, label = select_achievement_source(Credentials(api_key="k"))
        assert isinstance(source, WebApiAchievementSource)
        assert label == "web-api"

    def test_community_modes(self) -> None:
        source, label = select_achievement_source(Credentials())
        assert isinstance(source, CommunityStatsAchievementSource)
        assert label == "community"
        assert select_achievement_source(Credentials(cookies={"sessionid": "x"}))[1] == "community-auth"

    def test_companion_only_when_preferred(self) -> None:
        process = MagicMock(spec=CompanionProcess)
        assert select_achievement_source(Credentials(api_key="k"), process, prefer_companion=False)[1] == "web-api"
        source, label = select_achievement_source(Credentials(api_key="k"), process, prefer_companion=True)
        assert isinstance(source, CompanionProgressSource)
        assert label == "companion"
