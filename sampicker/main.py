#!/usr/bin/env python3
"""SAM Picker - headless entry point.

Loads the owned-games list, applies the status cache, scans achievement
progress and prints a summary. Without a native Steam client the account
sources are trusted as-is.
"""

from __future__ import annotations

import argparse
import logging
import sys

from sampicker.config import config
from sampicker.core.game import GameRecord
from sampicker.core.logging import logger, setup_logging
from sampicker.core.scan_log import configure_scan_log
from sampicker.integrations.companion import CompanionProcess, UnlockResult
from sampicker.services.ownership_service import OwnershipService
from sampicker.services.scan_orchestrator import SCAN_MODE_FULL, ProgressEvent, ScanSummary
from sampicker.services.status_cache import StatusCache
from sampicker.services.worker_coordinator import CoordinatorListener, WorkerCoordinator
from sampicker.version import __app_name__, __version__

__all__ = ["build_coordinator", "main", "parse_args"]


class ConsoleListener(CoordinatorListener):
    """Reports coordinator notifications through the application logger."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose
        self.errors: list[str] = []

    def on_progress(self, event: ProgressEvent, record: GameRecord | None) -> None:
        if self.verbose:
            name = record.name if record is not None else f"App {event.app_id}"
            logger.info("[%d] %s: %d/%d", event.completed, name, event.unlocked, event.total)

    def on_scan_finished(self, summary: ScanSummary) -> None:
        logger.info("Scan finished: %d scanned, %d failed (%s)", summary.scanned, summary.failed, summary.mode_label)

    def on_unlock_finished(self, app_id: int, result: UnlockResult | None, error: str | None) -> None:
        if result is not None:
            logger.info(
                "Unlock-all for %d: %d changed, %d protected, now %d/%d",
                app_id,
                result.changed,
                result.skipped_protected,
                result.unlocked,
                result.total,
            )

    def on_status(self, text: str) -> None:
        logger.info(text)

    def on_error(self, message: str) -> None:
        self.errors.append(message)
        logger.error(message)

    def on_busy(self, message: str) -> None:
        logger.warning(message)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sam-picker", description=f"{__app_name__} data engine")
    parser.add_argument("--steam-id", type=int, default=None, help="SteamID64 of the account to scan")
    parser.add_argument("--rescan", action="store_true", help="rescan every game, not only unknown ones")
    parser.add_argument("--unlock-all", type=int, metavar="APPID", help="unlock all achievements of one app")
    parser.add_argument("--verbose", "-v", action="store_true", help="log every scanned app")
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    return parser.parse_args(argv)


def build_coordinator(steam_id: int, listener: CoordinatorListener | None = None) -> WorkerCoordinator:
    """Wires the services from the global configuration.

    Args:
        steam_id: Active account, 0 if unknown.
        listener: Receives coordinator notifications.

    Returns:
        A coordinator ready for request_reload().
    """
    companion = None
    if config.COMPANION_EXE is not None:
        companion = CompanionProcess(config.COMPANION_EXE, config.PROGRESS_TIMEOUT, config.UNLOCK_ALL_TIMEOUT)

    cache = StatusCache(config.STATUS_DB_FILE, steam_id, config.FLUSH_DEBOUNCE_SECONDS)
    return WorkerCoordinator(
        ownership=OwnershipService(timeout=config.HTTP_TIMEOUT),
        status_cache=cache,
        credentials=config.credentials,
        steam_id=steam_id,
        companion=companion,
        prefer_companion=config.PREFER_COMPANION,
        listener=listener,
        http_timeout=config.HTTP_TIMEOUT,
        max_workers=config.SCAN_CONCURRENCY,
    )


def main(argv: list[str] | None = None) -> int:
    """Main application execution flow."""
    args = parse_args(argv)

    # 1. Logging and scan log
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    configure_scan_log(config.SCAN_LOG_FILE)

    steam_id = args.steam_id if args.steam_id is not None else config.STEAM_ID
    logger.info("%s %s (account %s)", __app_name__, __version__, steam_id or "unknown")

    listener = ConsoleListener(verbose=args.verbose)
    coordinator = build_coordinator(steam_id, listener)

    try:
        # 2. Owned games, cached status and the automatic scan
        coordinator.request_reload()
        coordinator.wait_until_idle()

        # 3. Optional full rescan
        if args.rescan:
            coordinator.request_scan(SCAN_MODE_FULL)
            coordinator.wait_until_idle()

        # 4. Optional unlock-all
        if args.unlock_all is not None:
            if coordinator.request_unlock_all(args.unlock_all):
                coordinator.wait_until_idle()
    except KeyboardInterrupt:
        logger.info("Interrupted, saving status")
    finally:
        coordinator.close()

    for game in coordinator.sorted_games():
        print(f"{game.app_id:>10}  {game.display_name}")
    print(coordinator.status_text())

    return 1 if listener.errors else 0


if __name__ == "__main__":
    sys.exit(main())
