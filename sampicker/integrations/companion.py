"""Client for the companion executable's line-based command protocol.

The companion talks to the native Steam client on our behalf. Two modes
are used, and only the last non-empty stdout line matters:

``<exe> --achievement-progress <id>``
    ``<unlocked> <total>`` or ``ERR <reason>``.

``<exe> --unlock-all <id>``
    ``OK <changed> <skippedProtected> <unlocked> <total>`` or ``ERR <reason>``.

Children that outlive their timeout are killed and reported as failures.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from sampicker.core.credentials import Credentials
from sampicker.core.errors import CompanionProcessError, FailureKind, FetchResult
from sampicker.core.game import normalize_progress
from sampicker.core.scan_log import append_scan_log

logger = logging.getLogger("sampicker.companion")

__all__ = ["CompanionProcess", "CompanionProgressSource", "UnlockResult", "parse_progress_line", "parse_unlock_line"]

PROGRESS_TIMEOUT = 25.0
UNLOCK_ALL_TIMEOUT = 45.0


@dataclass(frozen=True)
class UnlockResult:
    """Outcome of ``--unlock-all``.

    Attributes:
        app_id: App that was processed.
        changed: Achievements newly unlocked.
        skipped_protected: Protected achievements left untouched.
        unlocked: Unlocked count after the run.
        total: Achievement count.
    """

    app_id: int
    changed: int
    skipped_protected: int
    unlocked: int
    total: int

    @property
    def unlock_blocked(self) -> bool:
        """Protected achievements kept the game from reaching 100%."""
        return self.skipped_protected > 0 and self.unlocked < self.total


def _last_line(output: str) -> str:
    lines = [line.strip() for line in (output or "").splitlines() if line.strip()]
    return lines[-1] if lines else ""


def parse_progress_line(line: str) -> tuple[int, int]:
    """Parses the ``--achievement-progress`` reply.

    Args:
        line: Last stdout line.

    Returns:
        Normalized (unlocked, total).

    Raises:
        CompanionProcessError: On ``ERR`` or unparsable output.
    """
    if line.upper().startswith("ERR"):
        raise CompanionProcessError(line)
    parts = line.split()
    if len(parts) != 2:
        raise CompanionProcessError(f"unexpected progress output: {line!r}")
    try:
        unlocked, total = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise CompanionProcessError(f"unexpected progress output: {line!r}") from exc
    return normalize_progress(unlocked, total)


def parse_unlock_line(app_id: int, line: str) -> UnlockResult:
    """Parses the ``--unlock-all`` reply.

    Args:
        app_id: App that was processed.
        line: Last stdout line.

    Returns:
        The parsed UnlockResult.

    Raises:
        CompanionProcessError: On ``ERR`` or unparsable output.
    """
    parts = line.split()
    if not parts or parts[0].upper() != "OK":
        raise CompanionProcessError(line or "no output")
    if len(parts) != 5:
        raise CompanionProcessError(f"unexpected unlock output: {line!r}")
    try:
        changed, skipped, unlocked, total = (int(p) for p in parts[1:])
    except ValueError as exc:
        raise CompanionProcessError(f"unexpected unlock output: {line!r}") from exc
    unlocked, total = normalize_progress(unlocked, total)
    return UnlockResult(app_id, changed, skipped, unlocked, total)


class CompanionProcess:
    """Runs the companion executable one command at a time.

    Attributes:
        executable: Path to the companion binary.
    """

    def __init__(
        self,
        executable: Path,
        progress_timeout: float = PROGRESS_TIMEOUT,
        unlock_timeout: float = UNLOCK_ALL_TIMEOUT,
    ) -> None:
        self.executable = executable
        self.progress_timeout = progress_timeout
        self.unlock_timeout = unlock_timeout

    def _run(self, app_id: int, flag: str, timeout: float) -> str:
        """Starts the child and returns its last stdout line.

        Raises:
            CompanionProcessError: If the child cannot start or times out.
        """
        args = [str(self.executable), flag, str(app_id)]
        append_scan_log(app_id, f"Run {self.executable.name} {flag}")
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=str(self.executable.parent) if self.executable.is_absolute() else None,
            )
        except subprocess.TimeoutExpired as exc:
            raise CompanionProcessError(f"{flag} timed out after {timeout:.0f}s") from exc
        except OSError as exc:
            raise CompanionProcessError(f"could not start {self.executable}: {exc}") from exc

        return _last_line(result.stdout)

    def achievement_progress(self, app_id: int) -> tuple[int, int]:
        """Queries progress for one app.

        Args:
            app_id: Steam application ID.

        Returns:
            Normalized (unlocked, total).

        Raises:
            CompanionProcessError: On start failure, timeout or ERR.
        """
        line = self._run(app_id, "--achievement-progress", self.progress_timeout)
        return parse_progress_line(line)

    def unlock_all(self, app_id: int) -> UnlockResult:
        """Unlocks every unprotected achievement of one app.

        Args:
            app_id: Steam application ID.

        Returns:
            The parsed UnlockResult.

        Raises:
            CompanionProcessError: On start failure, timeout or ERR.
        """
        line = self._run(app_id, "--unlock-all", self.unlock_timeout)
        result = parse_unlock_line(app_id, line)
        append_scan_log(
            app_id,
            f"Unlock-all changed {result.changed}, skipped {result.skipped_protected}, "
            f"now {result.unlocked}/{result.total}.",
        )
        return result


class CompanionProgressSource:
    """Adapter view of CompanionProcess for the scan orchestrator."""

    name = "Companion"
    mode = "companion"

    def __init__(self, process: CompanionProcess) -> None:
        self.process = process

    def fetch(self, steam_id: int, app_id: int, credentials: Credentials | None = None) -> FetchResult:
        try:
            progress = self.process.achievement_progress(app_id)
        except CompanionProcessError as exc:
            detail = f"{self.name} failed: {exc}"
            append_scan_log(app_id, detail)
            return FetchResult.fail(FailureKind.PROCESS_FAULT, detail)
        append_scan_log(app_id, f"{self.name} progress {progress[0]}/{progress[1]}.")
        return FetchResult.ok(progress)
