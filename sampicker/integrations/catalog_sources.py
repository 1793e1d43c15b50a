"""Catalog adapters used when no account-scoped ownership source works.

Both return every app id that might be owned; the ownership pipeline
filters them through the native "is app owned" capability.
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FetchResult
from sampicker.core.game import OwnedGameCandidate, normalize_category
from sampicker.core.scan_log import append_scan_log
from sampicker.integrations.http_source import HttpSource

logger = logging.getLogger("sampicker.catalog_sources")

__all__ = ["AppListCatalogSource", "StaticCatalogSource"]

_GAMES_XML_URL = "https://gib.me/sam/games.xml"
_APP_LIST_URL = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"


class StaticCatalogSource(HttpSource):
    """The curated ``games.xml`` list with per-app categories."""

    name = "games.xml"

    def fetch(self, steam_id: int = 0, credentials: Credentials | None = None) -> FetchResult:
        """Downloads and parses the static catalog.

        Args:
            steam_id: Unused; catalogs are not account-scoped.
            credentials: Unused.

        Returns:
            FetchResult with a list of OwnedGameCandidate (unverified).
        """
        response, failure = self._get(_GAMES_XML_URL)
        if failure is not None:
            return failure

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as exc:
            return self._malformed(f"XML parse failed: {exc}")

        if root.tag != "games":
            return self._malformed("expected <games> root")

        candidates: list[OwnedGameCandidate] = []
        for node in root.findall("game"):
            try:
                app_id = int((node.text or "").strip())
            except ValueError:
                continue
            if app_id <= 0 or app_id > 0xFFFFFFFF:
                continue
            # Catalogs cannot tell whether stats exist; keep progress unknown so a scan asks
            candidates.append(
                OwnedGameCandidate(app_id=app_id, has_stats_link=True, category=normalize_category(node.get("type")))
            )

        if not candidates:
            return self._malformed("catalog is empty")

        append_scan_log(0, f"{self.name} returned {len(candidates)} ids.")
        return FetchResult.ok(candidates)


class AppListCatalogSource(HttpSource):
    """Steam's full app list, the last catalog fallback."""

    name = "GetAppList"

    def fetch(self, steam_id: int = 0, credentials: Credentials | None = None) -> FetchResult:
        """Downloads the complete app list.

        Args:
            steam_id: Unused; catalogs are not account-scoped.
            credentials: Unused.

        Returns:
            FetchResult with a list of OwnedGameCandidate (unverified).
        """
        response, failure = self._get(_APP_LIST_URL)
        if failure is not None:
            return failure

        try:
            data = json.loads(response.text)
            apps = data["applist"]["apps"]
        except (ValueError, KeyError, TypeError) as exc:
            return self._malformed(f"JSON parse failed: {exc}")

        if not isinstance(apps, list):
            return self._malformed("'apps' is not a list")

        candidates: list[OwnedGameCandidate] = []
        for app in apps:
            if not isinstance(app, dict):
                continue
            try:
                app_id = int(app.get("appid", 0))
            except (TypeError, ValueError):
                continue
            if 0 < app_id <= 0xFFFFFFFF:
                candidates.append(OwnedGameCandidate(app_id=app_id, name=str(app.get("name") or ""), has_stats_link=True))

        if not candidates:
            return self._malformed("app list is empty")

        append_scan_log(0, f"{self.name} returned {len(candidates)} ids.")
        return FetchResult.ok(candidates)
