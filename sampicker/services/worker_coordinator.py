# sampicker/services/worker_coordinator.py

"""Coordinator for list reloads, achievement scans and unlock-all runs.

At most one of the three runs at a time. The state is an immutable value
moved forward by pure transition functions; the coordinator only acts on
the decisions they return.

Workers never touch the game map. They post immutable events to a bounded
queue and process_events(), called from the owning thread, applies them.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from sampicker.core.credentials import Credentials
from sampicker.core.errors import CompanionProcessError, OwnershipUnavailableError
from sampicker.core.game import DEFAULT_GAMES, GameRecord
from sampicker.core.scan_log import append_scan_log
from sampicker.integrations.companion import CompanionProcess, UnlockResult
from sampicker.services.ownership_service import OwnershipService
from sampicker.services.scan_orchestrator import (
    MAX_SCAN_WORKERS,
    SCAN_MODE_AUTO,
    SCAN_MODE_FULL,
    ProgressEvent,
    ScanOrchestrator,
    ScanRequest,
    ScanSummary,
    select_achievement_source,
    select_scan_targets,
)
from sampicker.services.status_cache import StatusCache

logger = logging.getLogger("sampicker.worker_coordinator")

__all__ = [
    "CoordinatorListener",
    "CoordinatorState",
    "Decision",
    "RunKind",
    "WorkerCoordinator",
    "finish_run",
    "request_reload",
    "request_scan",
    "request_unlock_all",
]

EVENT_QUEUE_SIZE = 256


# ---- state -------------------------------------------------------------


class RunKind(Enum):
    LIST_LOADING = "list_loading"
    ACHIEVEMENT_SCANNING = "achievement_scanning"
    UNLOCKING_ALL = "unlocking_all"


class Decision(Enum):
    START = "start"
    LATCHED = "latched"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CoordinatorState:
    """Idle (running is None) or Running(kind), plus the two latches."""

    running: RunKind | None = None
    reload_pending: bool = False
    scan_pending: bool = False

    @property
    def is_idle(self) -> bool:
        return self.running is None


def request_reload(state: CoordinatorState) -> tuple[CoordinatorState, Decision]:
    """Reload: start when idle, latch while loading, reject otherwise."""
    if state.running is None:
        return replace(state, running=RunKind.LIST_LOADING), Decision.START
    if state.running is RunKind.LIST_LOADING:
        return replace(state, reload_pending=True), Decision.LATCHED
    return state, Decision.REJECTED


def request_scan(state: CoordinatorState) -> tuple[CoordinatorState, Decision]:
    """Scan: start when idle, otherwise latch until the current run ends."""
    if state.running is None:
        return replace(state, running=RunKind.ACHIEVEMENT_SCANNING), Decision.START
    return replace(state, scan_pending=True), Decision.LATCHED


def request_unlock_all(state: CoordinatorState) -> tuple[CoordinatorState, Decision]:
    """Unlock-all: only from idle."""
    if state.running is None:
        return replace(state, running=RunKind.UNLOCKING_ALL), Decision.START
    return state, Decision.REJECTED


def finish_run(state: CoordinatorState, kind: RunKind) -> tuple[CoordinatorState, RunKind | None]:
    """Ends the current run and consumes at most one latch.

    A finished list load always continues with a scan, unless a reload was
    latched, which takes precedence.

    Args:
        state: Current state; must be running ``kind``.
        kind: The run that ended.

    Returns:
        (new state, kind of the run that starts now or None).

    Raises:
        ValueError: If ``kind`` is not the running kind.
    """
    if state.running is not kind:
        raise ValueError(f"finish_run({kind}) while running {state.running}")

    if state.reload_pending:
        return CoordinatorState(RunKind.LIST_LOADING, False, state.scan_pending), RunKind.LIST_LOADING
    if kind is RunKind.LIST_LOADING or state.scan_pending:
        return CoordinatorState(RunKind.ACHIEVEMENT_SCANNING, False, False), RunKind.ACHIEVEMENT_SCANNING
    return CoordinatorState(), None


# ---- worker events -----------------------------------------------------


@dataclass(frozen=True)
class ListLoaded:
    games: tuple[GameRecord, ...]
    sources: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class ScanProgressed:
    event: ProgressEvent


@dataclass(frozen=True)
class ScanFinished:
    summary: ScanSummary


@dataclass(frozen=True)
class UnlockFinished:
    app_id: int
    result: UnlockResult | None = None
    error: str | None = None


class CoordinatorListener:
    """Receives coordinator notifications on the thread pumping events.

    Every hook is a no-op; override the ones you need.
    """

    def on_games_loaded(self, games: list[GameRecord]) -> None:
        pass

    def on_progress(self, event: ProgressEvent, record: GameRecord | None) -> None:
        pass

    def on_scan_finished(self, summary: ScanSummary) -> None:
        pass

    def on_unlock_finished(self, app_id: int, result: UnlockResult | None, error: str | None) -> None:
        pass

    def on_status(self, text: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass

    def on_busy(self, message: str) -> None:
        pass


# ---- coordinator -------------------------------------------------------


class WorkerCoordinator:
    """Owns the game map and serializes the three background runs.

    All public methods must be called from the same thread, the one that
    also calls process_events().

    Attributes:
        games: App id to record; mutated only by process_events().
        steam_id: Active account.
    """

    def __init__(
        self,
        ownership: OwnershipService,
        status_cache: StatusCache,
        credentials: Callable[[], Credentials],
        steam_id: int = 0,
        companion: CompanionProcess | None = None,
        prefer_companion: bool = False,
        listener: CoordinatorListener | None = None,
        http_timeout: float = 10.0,
        max_workers: int = MAX_SCAN_WORKERS,
        queue_size: int = EVENT_QUEUE_SIZE,
        source_selector=select_achievement_source,
    ) -> None:
        self.ownership = ownership
        self.status_cache = status_cache
        self.credentials = credentials
        self.steam_id = steam_id
        self.companion = companion
        self.prefer_companion = prefer_companion
        self.listener = listener or CoordinatorListener()
        self.http_timeout = http_timeout
        self.max_workers = max_workers
        self.source_selector = source_selector

        self.games: dict[int, GameRecord] = {}
        self.mode_label = ""
        self._state = CoordinatorState()
        self._events: queue.Queue = queue.Queue(maxsize=queue_size)
        self._orchestrator: ScanOrchestrator | None = None
        self._pending_scan_mode = SCAN_MODE_AUTO
        self._workers: list[threading.Thread] = []

        self.status_cache.steam_id = steam_id

    @property
    def state(self) -> CoordinatorState:
        return self._state

    # ---- requests -------------------------------------------------------

    def request_reload(self) -> bool:
        """Reloads the owned-games list, then scans.

        Returns:
            False if the request was rejected because a scan or unlock runs.
        """
        self._state, decision = request_reload(self._state)
        if decision is Decision.REJECTED:
            self.listener.on_busy("Achievement scan or unlock already in progress.")
            return False
        if decision is Decision.START:
            self._start_list_load()
        return True

    def request_scan(self, mode: str = SCAN_MODE_AUTO) -> bool:
        """Scans achievement progress now, or after the current run.

        Args:
            mode: SCAN_MODE_AUTO or SCAN_MODE_FULL.

        Returns:
            True; scan requests are never rejected.
        """
        self._state, decision = request_scan(self._state)
        if decision is Decision.LATCHED:
            if mode == SCAN_MODE_FULL:
                self._pending_scan_mode = SCAN_MODE_FULL
            logger.info("Scan request latched while %s", self._state.running.value)
            return True
        self._start_scan(mode)
        return True

    def request_unlock_all(self, app_id: int) -> bool:
        """Runs ``--unlock-all`` for one app through the companion.

        Returns:
            False if no companion is configured or another run is active.
        """
        if self.companion is None:
            self.listener.on_error("No companion executable configured.")
            return False
        self._state, decision = request_unlock_all(self._state)
        if decision is Decision.REJECTED:
            self.listener.on_busy("Another operation is already in progress.")
            return False

        self.listener.on_status(f"Unlocking all achievements for app {app_id}...")
        self._spawn(self._unlock_worker, app_id)
        return True

    def cancel_scan(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.cancel()

    # ---- starting runs --------------------------------------------------

    def _spawn(self, target, *args) -> None:
        worker = threading.Thread(target=target, args=args, daemon=True)
        self._workers = [w for w in self._workers if w.is_alive()]
        self._workers.append(worker)
        worker.start()

    def _start_list_load(self) -> None:
        self.listener.on_status("Loading owned games...")
        self._spawn(self._list_worker, self.steam_id, self.credentials().snapshot())

    def _start_scan(self, mode: str) -> None:
        self._pending_scan_mode = SCAN_MODE_AUTO
        credentials = self.credentials().snapshot()
        source, label = self.source_selector(
            credentials, self.companion, self.prefer_companion, self.http_timeout
        )
        self.mode_label = label

        targets = select_scan_targets(self.games.values(), mode)
        if not targets or (not self.steam_id and label != "companion"):
            if targets:
                append_scan_log(0, "Scan skipped: no account id for web sources.")
            self._end_run(RunKind.ACHIEVEMENT_SCANNING)
            self.listener.on_status(self.status_text())
            return

        request = ScanRequest(app_ids=targets, steam_id=self.steam_id, credentials=credentials, mode=mode)
        self._orchestrator = ScanOrchestrator(source, label, max_workers=self.max_workers)
        self.listener.on_status(f"Scanning achievements for {len(targets)} games ({label})...")
        self._spawn(self._scan_worker, self._orchestrator, request)

    def _end_run(self, kind: RunKind) -> None:
        self._state, next_kind = finish_run(self._state, kind)
        if next_kind is RunKind.LIST_LOADING:
            self._start_list_load()
        elif next_kind is RunKind.ACHIEVEMENT_SCANNING:
            self._start_scan(self._pending_scan_mode)

    # ---- workers (background threads) -----------------------------------

    def _list_worker(self, steam_id: int, credentials: Credentials) -> None:
        try:
            result = self.ownership.load_owned_games(steam_id, credentials)
            event = ListLoaded(tuple(result.games), tuple(result.sources))
        except OwnershipUnavailableError as e:
            append_scan_log(0, f"Ownership unavailable: {e}")
            event = ListLoaded(tuple(self.ownership.default_games(DEFAULT_GAMES)), error=str(e))
        except Exception as e:
            logger.exception("Owned games list failed")
            event = ListLoaded(tuple(self.ownership.default_games(DEFAULT_GAMES)), error=str(e))
        self._events.put(event)

    def _scan_worker(self, orchestrator: ScanOrchestrator, request: ScanRequest) -> None:
        try:
            summary = orchestrator.run(request, lambda e: self._events.put(ScanProgressed(e)))
        except Exception as e:
            logger.exception("Achievement scan failed")
            summary = ScanSummary(mode_label=orchestrator.mode_label, failed=len(request.app_ids))
            append_scan_log(0, f"Scan aborted: {e}")
        self._events.put(ScanFinished(summary))

    def _unlock_worker(self, app_id: int) -> None:
        try:
            result = self.companion.unlock_all(app_id)
            event = UnlockFinished(app_id, result=result)
        except CompanionProcessError as e:
            append_scan_log(app_id, f"Unlock-all failed: {e}")
            event = UnlockFinished(app_id, error=str(e))
        self._events.put(event)

    # ---- event loop (owning thread) -------------------------------------

    def process_events(self, timeout: float = 0.0) -> int:
        """Applies queued worker events.

        Args:
            timeout: Seconds to wait for the first event; 0 does not block.

        Returns:
            Number of events handled.
        """
        handled = 0
        block = timeout > 0
        while True:
            try:
                event = self._events.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                break
            block = False
            self._handle(event)
            handled += 1

        if self.status_cache.dirty:
            self.status_cache.maybe_flush(self.games.values())
        return handled

    def wait_until_idle(self, timeout: float | None = None, poll: float = 0.05) -> bool:
        """Pumps events until no run is active.

        Returns:
            True when idle, False if the timeout expired first.
        """
        waited = 0.0
        while not (self._state.is_idle and self._events.empty()):
            self.process_events(timeout=poll)
            waited += poll
            if timeout is not None and waited >= timeout:
                return False
        return True

    def _handle(self, event) -> None:
        if isinstance(event, ScanProgressed):
            self._on_scan_progress(event.event)
        elif isinstance(event, ListLoaded):
            self._on_list_loaded(event)
        elif isinstance(event, ScanFinished):
            self._on_scan_finished(event.summary)
        elif isinstance(event, UnlockFinished):
            self._on_unlock_finished(event)
        else:
            logger.warning("Ignoring unknown event %r", event)

    def _on_list_loaded(self, event: ListLoaded) -> None:
        self.games = {game.app_id: game for game in event.games}
        self.status_cache.steam_id = self.steam_id
        self.status_cache.apply(self.games)

        if event.error:
            self.listener.on_error(f"Could not load owned games: {event.error}")
        self.listener.on_games_loaded(self.sorted_games())
        self.listener.on_status(self.status_text())
        self._end_run(RunKind.LIST_LOADING)

    def _on_scan_progress(self, event: ProgressEvent) -> None:
        record = self.games.get(event.app_id)
        if record is not None:
            record.set_progress(event.unlocked, event.total)
            self.status_cache.mark_dirty()
        self.listener.on_progress(event, record)

    def _on_scan_finished(self, summary: ScanSummary) -> None:
        self._orchestrator = None
        self.status_cache.scan_mode = summary.mode_label
        self.status_cache.flush(self.games.values(), force=True)
        self.listener.on_scan_finished(summary)
        self.listener.on_status(self.status_text())
        self._end_run(RunKind.ACHIEVEMENT_SCANNING)

    def _on_unlock_finished(self, event: UnlockFinished) -> None:
        record = self.games.get(event.app_id)
        if event.result is not None and record is not None:
            record.set_progress(event.result.unlocked, event.result.total)
            record.unlock_blocked = event.result.unlock_blocked
        self.status_cache.flush(self.games.values(), force=True)

        if event.error:
            self.listener.on_error(f"Unlock-all failed for app {event.app_id}: {event.error}")
        self.listener.on_unlock_finished(event.app_id, event.result, event.error)
        self.listener.on_status(self.status_text())
        self._end_run(RunKind.UNLOCKING_ALL)

    # ---- lifecycle ------------------------------------------------------

    def on_activated(self) -> bool:
        """Foreground activation: pick up external writes to the cache.

        Returns:
            True if the cache was reloaded.
        """
        if not self.status_cache.check_for_external_update(self.games):
            return False
        self.listener.on_games_loaded(self.sorted_games())
        self.listener.on_status(self.status_text())
        return True

    def close(self) -> None:
        """Stops scheduling scan work and forces a final cache write."""
        self.cancel_scan()
        self.status_cache.flush(self.games.values(), force=True)

    # ---- views ----------------------------------------------------------

    def sorted_games(self) -> list[GameRecord]:
        return sorted(self.games.values(), key=lambda g: (g.name.casefold(), g.app_id))

    def status_text(self) -> str:
        """Summary line such as ``12 games, 10 with progress (web-api)``."""
        known = sum(1 for g in self.games.values() if g.has_progress)
        text = f"{len(self.games)} games, {known} with progress"
        if self.mode_label:
            text += f" ({self.mode_label})"
        return text
