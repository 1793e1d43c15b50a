"""Owned-games adapters for the Steam Web API and Steam Community profile.

Three sources, in fixed priority:

1. ``IPlayerService/GetOwnedGames`` (needs an API key),
2. the community profile games list as XML (optionally cookie-authenticated),
3. the community profile games page, scraping the script-injected
   ``rgGames`` array (last resort, only when 1 and 2 both failed).

Each adapter performs one request and returns a FetchResult holding a list
of OwnedGameCandidate objects.
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from typing import Any

from bs4 import BeautifulSoup

from sampicker.core.credentials import Credentials
from sampicker.core.errors import EmbeddedArrayFormatError, FailureKind, FetchResult
from sampicker.core.game import OwnedGameCandidate
from sampicker.core.scan_log import append_scan_log
from sampicker.integrations.embedded_json import extract_embedded_array
from sampicker.integrations.http_source import HttpSource

logger = logging.getLogger("sampicker.ownership_sources")

__all__ = [
    "CommunityHtmlOwnershipSource",
    "CommunityXmlOwnershipSource",
    "WebApiOwnershipSource",
]

_OWNED_GAMES_URL = "https://api.steampowered.com/IPlayerService/GetOwnedGames/v1/"
_PROFILE_GAMES_XML_URL = "https://steamcommunity.com/profiles/{steamid}/games?tab=all&xml=1"
_PROFILE_GAMES_HTML_URL = "https://steamcommunity.com/profiles/{steamid}/games/?tab=all"

_RG_GAMES_MARKER = "var rgGames ="

_SIGN_IN_MARKERS: tuple[str, ...] = ("newlogindialog", "login_btn_signin", 'id="loginform"')
_PRIVATE_MARKERS: tuple[str, ...] = ("profile_private_info",)


def _parse_app_id(value: Any) -> int:
    try:
        app_id = int(str(value).strip())
    except (TypeError, ValueError):
        return 0
    return app_id if 0 < app_id <= 0xFFFFFFFF else 0


class WebApiOwnershipSource(HttpSource):
    """Owned games via the key-authenticated Steam Web API."""

    name = "GetOwnedGames"

    def fetch(self, steam_id: int, credentials: Credentials | None = None) -> FetchResult:
        """Fetches the owned-games list.

        Args:
            steam_id: SteamID64 of the account.
            credentials: Must carry an API key.

        Returns:
            FetchResult with a list of OwnedGameCandidate.
        """
        if credentials is None or not credentials.has_api_key:
            return FetchResult.fail(FailureKind.NOT_CONFIGURED, "no Steam Web API key configured")

        params = {
            "key": credentials.api_key,
            "steamid": steam_id,
            "include_appinfo": 1,
            "include_played_free_games": 1,
            "format": "json",
        }
        response, failure = self._get(_OWNED_GAMES_URL, params=params)
        if failure is not None:
            return failure

        html_failure = self._html_instead_of_data(response)
        if html_failure is not None:
            return html_failure

        try:
            data = json.loads(response.text)
        except ValueError as exc:
            return self._malformed(f"JSON parse failed: {exc}")

        payload = data.get("response") if isinstance(data, dict) else None
        if not isinstance(payload, dict):
            return self._malformed("missing 'response' object")

        games = payload.get("games")
        if not isinstance(games, list):
            # Private profiles answer with an empty response object
            detail = f"{self.name} returned no games (profile private or key rejected)"
            append_scan_log(0, detail)
            return FetchResult.fail(FailureKind.UPSTREAM_ERROR, detail)

        candidates: list[OwnedGameCandidate] = []
        for item in games:
            if not isinstance(item, dict):
                continue
            app_id = _parse_app_id(item.get("appid"))
            if not app_id:
                continue
            candidates.append(
                OwnedGameCandidate(
                    app_id=app_id,
                    name=str(item.get("name") or ""),
                    has_stats_link=bool(item.get("has_community_visible_stats", False)),
                )
            )

        append_scan_log(0, f"{self.name} returned {len(candidates)} games.")
        return FetchResult.ok(candidates)


class CommunityXmlOwnershipSource(HttpSource):
    """Owned games via the community profile ``games?xml=1`` document."""

    name = "Community games XML"

    def fetch(self, steam_id: int, credentials: Credentials | None = None) -> FetchResult:
        """Fetches and parses the profile games XML.

        Args:
            steam_id: SteamID64 of the account.
            credentials: Optional; community cookies are sent when present.

        Returns:
            FetchResult with a list of OwnedGameCandidate.
        """
        url = _PROFILE_GAMES_XML_URL.format(steamid=steam_id)
        response, failure = self._get(url, credentials=credentials)
        if failure is not None:
            return failure

        html_failure = self._html_instead_of_data(response)
        if html_failure is not None:
            return html_failure

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as exc:
            return self._malformed(f"XML parse failed: {exc}")

        error = root.text if root.tag == "error" else root.findtext(".//error")
        if error and error.strip():
            detail = f"{self.name} returned error: {error.strip()}"
            append_scan_log(0, detail)
            return FetchResult.fail(FailureKind.UPSTREAM_ERROR, detail)

        games_node = root.find("games")
        if root.tag != "gamesList" or games_node is None:
            return self._malformed("expected <gamesList><games> nodes")

        candidates: list[OwnedGameCandidate] = []
        for game in games_node.findall("game"):
            app_id = _parse_app_id(game.findtext("appID"))
            if not app_id:
                continue
            stats_link = (game.findtext("statsLink") or "").strip()
            candidates.append(
                OwnedGameCandidate(
                    app_id=app_id,
                    name=(game.findtext("name") or "").strip(),
                    has_stats_link=bool(stats_link),
                )
            )

        append_scan_log(0, f"{self.name} returned {len(candidates)} games.")
        return FetchResult.ok(candidates)


class CommunityHtmlOwnershipSource(HttpSource):
    """Owned games scraped from the community profile games page.

    The page embeds every owned game as ``var rgGames = [...]`` inside a
    script block. Layout changes are reported as FORMAT_CHANGED instead of
    degrading to an empty list.
    """

    name = "Community games page"

    def fetch(self, steam_id: int, credentials: Credentials | None = None) -> FetchResult:
        """Fetches the games page and extracts the embedded array.

        Args:
            steam_id: SteamID64 of the account.
            credentials: Optional; community cookies are sent when present.

        Returns:
            FetchResult with a list of OwnedGameCandidate.
        """
        url = _PROFILE_GAMES_HTML_URL.format(steamid=steam_id)
        response, failure = self._get(url, credentials=credentials)
        if failure is not None:
            return failure

        return self.parse_page(response.url, response.text)

    def parse_page(self, final_url: str, html: str) -> FetchResult:
        """Turns a fetched games page into candidates.

        Args:
            final_url: URL after redirects.
            html: Page markup.

        Returns:
            FetchResult with a list of OwnedGameCandidate.
        """
        if "/login" in final_url.lower():
            return self._sign_in_required(f"redirected to {final_url}")

        script_text = self._find_games_script(html)
        if script_text is None:
            lowered = html.lower()
            if any(marker in lowered for marker in _SIGN_IN_MARKERS):
                return self._sign_in_required("sign-in page served")
            if any(marker in lowered for marker in _PRIVATE_MARKERS):
                detail = f"{self.name}: profile is private"
                append_scan_log(0, detail)
                return FetchResult.fail(FailureKind.UPSTREAM_ERROR, detail)
            return self._format_changed(f"no script contains {_RG_GAMES_MARKER!r}")

        try:
            items = extract_embedded_array(script_text, _RG_GAMES_MARKER)
        except EmbeddedArrayFormatError as exc:
            return self._format_changed(str(exc))

        candidates: list[OwnedGameCandidate] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            app_id = _parse_app_id(item.get("appid"))
            if not app_id:
                continue
            candidates.append(
                OwnedGameCandidate(
                    app_id=app_id,
                    name=str(item.get("name") or ""),
                    has_stats_link=self._has_stats_link(item),
                )
            )

        append_scan_log(0, f"{self.name} returned {len(candidates)} games.")
        return FetchResult.ok(candidates)

    @staticmethod
    def _find_games_script(html: str) -> str | None:
        """Returns the text of the script block that defines rgGames."""
        soup = BeautifulSoup(html, "html.parser")
        for script in soup.find_all("script"):
            text = script.string or script.get_text() or ""
            if _RG_GAMES_MARKER in text:
                return text
        return None

    @staticmethod
    def _has_stats_link(item: dict[str, Any]) -> bool:
        links = item.get("availStatLinks")
        if isinstance(links, dict):
            return bool(links.get("achievements", False))
        return bool(item.get("has_community_visible_stats", False))

    def _sign_in_required(self, detail: str) -> FetchResult:
        message = f"{self.name} requires sign-in: {detail}"
        append_scan_log(0, message)
        return FetchResult.fail(FailureKind.SIGN_IN_REQUIRED, message)

    def _format_changed(self, detail: str) -> FetchResult:
        message = f"{self.name} format changed: {detail}"
        append_scan_log(0, message)
        return FetchResult.fail(FailureKind.FORMAT_CHANGED, message)
