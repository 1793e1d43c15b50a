"""Per-app achievement progress adapters.

Both adapters answer one question for one app: how many achievements
does the account have unlocked out of how many. "No stats" answers from
upstream are normalized to a valid 0/0 result; everything else that goes
wrong is a failure the scan orchestrator turns into unknown (-1/-1).
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FailureKind, FetchResult
from sampicker.core.scan_log import append_scan_log
from sampicker.integrations.http_source import HttpSource, is_no_achievements_message

logger = logging.getLogger("sampicker.achievement_sources")

__all__ = ["CommunityStatsAchievementSource", "WebApiAchievementSource"]

_PLAYER_ACHIEVEMENTS_URL = "https://api.steampowered.com/ISteamUserStats/GetPlayerAchievements/v1/"
_COMMUNITY_STATS_URL = "https://steamcommunity.com/profiles/{steamid}/stats/{appid}/?xml=1"


class WebApiAchievementSource(HttpSource):
    """Progress via ``ISteamUserStats/GetPlayerAchievements``."""

    name = "Web API"
    mode = "web-api"

    def fetch(self, steam_id: int, app_id: int, credentials: Credentials | None = None) -> FetchResult:
        """Fetches the achievement list for one app and counts unlocks.

        Args:
            steam_id: SteamID64 of the account.
            app_id: Steam application ID.
            credentials: Must carry an API key.

        Returns:
            FetchResult holding an (unlocked, total) tuple.
        """
        if credentials is None or not credentials.has_api_key:
            return FetchResult.fail(FailureKind.NOT_CONFIGURED, "no Steam Web API key configured")

        params = {"key": credentials.api_key, "steamid": steam_id, "appid": app_id}
        response, failure = self._get(_PLAYER_ACHIEVEMENTS_URL, app_id=app_id, params=params)
        if failure is not None:
            return failure

        if not response.text.strip():
            return self._malformed("no content", app_id)

        try:
            payload = json.loads(response.text)
        except ValueError:
            if is_no_achievements_message(response.text):
                return FetchResult.ok((0, 0))
            html_failure = self._html_instead_of_data(response, app_id)
            if html_failure is not None:
                return html_failure
            return self._malformed("JSON parse failed", app_id)

        stats = payload.get("playerstats") if isinstance(payload, dict) else None
        if not isinstance(stats, dict):
            return self._malformed("missing 'playerstats'", app_id)

        if not stats.get("success", False):
            error = str(stats.get("error") or "")
            if is_no_achievements_message(error):
                return FetchResult.ok((0, 0))
            detail = f"{self.name} returned failure: {error or 'unknown error'}"
            append_scan_log(app_id, detail)
            return FetchResult.fail(FailureKind.UPSTREAM_ERROR, detail)

        achievements = stats.get("achievements") or []
        if not isinstance(achievements, list):
            return self._malformed("'achievements' is not a list", app_id)

        total = len(achievements)
        unlocked = sum(1 for a in achievements if isinstance(a, dict) and a.get("achieved", 0) != 0)
        append_scan_log(app_id, f"{self.name} progress {unlocked}/{total}.")
        return FetchResult.ok((unlocked, total))


class CommunityStatsAchievementSource(HttpSource):
    """Progress via the community per-app stats XML document.

    Works without an API key for public profiles, and with session cookies
    for private ones.
    """

    name = "Steam Community"
    mode = "community"

    def fetch(self, steam_id: int, app_id: int, credentials: Credentials | None = None) -> FetchResult:
        """Fetches the stats XML for one app and counts closed achievements.

        Args:
            steam_id: SteamID64 of the account.
            app_id: Steam application ID.
            credentials: Optional; community cookies are sent when present.

        Returns:
            FetchResult holding an (unlocked, total) tuple.
        """
        url = _COMMUNITY_STATS_URL.format(steamid=steam_id, appid=app_id)
        response, failure = self._get(url, app_id=app_id, credentials=credentials)
        if failure is not None:
            return failure

        if not response.content.strip():
            return self._malformed("no content", app_id)

        html_failure = self._html_instead_of_data(response, app_id)
        if html_failure is not None:
            return html_failure

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as exc:
            return self._malformed(f"XML parse failed: {exc}", app_id)

        error = root.findtext(".//error") if root.tag != "error" else root.text
        if error and error.strip():
            if is_no_achievements_message(error):
                return FetchResult.ok((0, 0))
            detail = f"{self.name} returned error: {error.strip()}"
            append_scan_log(app_id, detail)
            return FetchResult.fail(FailureKind.UPSTREAM_ERROR, detail)

        found = 0
        achieved = 0
        for node in root.iter("achievement"):
            found += 1
            closed = node.get("closed")
            if not closed:
                closed = node.findtext("closed")
            if (closed or "").strip() == "1":
                achieved += 1

        if found > 0:
            append_scan_log(app_id, f"{self.name} progress {achieved}/{found}.")
            return FetchResult.ok((achieved, found))

        # Valid stats document without an achievements list
        if root.tag == "playerstats" or root.find(".//playerstats") is not None:
            return FetchResult.ok((0, 0))

        return self._malformed("did not contain expected stats nodes", app_id)
