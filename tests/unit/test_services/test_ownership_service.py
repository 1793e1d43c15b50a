"""Tests for the ownership fallback chain."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from sampicker.core.errors import FailureKind, FetchResult, OwnershipUnavailableError
from sampicker.core.game import DEFAULT_GAMES, OwnedGameCandidate
from sampicker.integrations.ownership_sources import CommunityXmlOwnershipSource, WebApiOwnershipSource
from sampicker.services.ownership_service import OwnershipService

STEAM_ID = 76561198000000000

TWO_GAMES_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<gamesList>
  <games>
    <game><appID>220</appID><name>Half-Life 2</name>
      <statsLink>https://steamcommunity.com/profiles/1/stats/HL2</statsLink></game>
    <game><appID>70</appID><name>Half-Life</name></game>
  </games>
</gamesList>
"""


def _source(name: str, result: FetchResult) -> MagicMock:
    source = MagicMock()
    source.name = name
    source.fetch.return_value = result
    return source


def _ok(*candidates: OwnedGameCandidate) -> FetchResult:
    return FetchResult.ok(list(candidates))


def _fail(kind: FailureKind = FailureKind.TRANSPORT) -> FetchResult:
    return FetchResult.fail(kind, "failed")


# ---------------------------------------------------------------------------
# Scenario: Web API forbidden, community XML answers, scrape never runs
# ---------------------------------------------------------------------------


class TestWebApiForbiddenScenario:
    """GetOwnedGames 403 -> XML with two apps -> no HTML scrape."""

    def test_two_records_and_no_scrape(self, make_session, make_response, api_credentials) -> None:
        web_api = WebApiOwnershipSource(
            session=make_session(make_response("Forbidden", status_code=403, content_type="text/html"))
        )
        xml = CommunityXmlOwnershipSource(session=make_session(make_response(TWO_GAMES_XML, content_type="text/xml")))
        scrape = _source("scrape", _ok())

        service = OwnershipService(primary_sources=[web_api, xml], scrape_source=scrape, catalog_sources=[])
        result = service.load_owned_games(STEAM_ID, api_credentials)

        scrape.fetch.assert_not_called()
        assert len(result.games) == 2
        by_id = {g.app_id: g for g in result.games}
        # Stats link present: unknown until scanned
        assert (by_id[220].achievement_unlocked, by_id[220].achievement_total) == (-1, -1)
        # No stats link: definitionally 0/0
        assert (by_id[70].achievement_unlocked, by_id[70].achievement_total) == (0, 0)
        assert result.sources == ["Community games XML"]
        assert "GetOwnedGames" in result.failures


class TestOwnershipService:
    """Tests for OwnershipService.load_owned_games()."""

    def test_primaries_are_merged(self) -> None:
        web = _source("web", _ok(OwnedGameCandidate(440, "", True), OwnedGameCandidate(10, "CS")))
        xml = _source("xml", _ok(OwnedGameCandidate(440, "TF2"), OwnedGameCandidate(20, "TFC", True)))
        scrape = _source("scrape", _ok())

        result = OwnershipService([web, xml], scrape, []).load_owned_games(STEAM_ID)

        assert [g.app_id for g in result.games] == [10, 20, 440]
        assert {g.app_id: g.name for g in result.games}[440] == "TF2"
        assert result.sources == ["web", "xml"]
        scrape.fetch.assert_not_called()

    def test_scrape_when_primaries_fail(self) -> None:
        scrape = _source("scrape", _ok(OwnedGameCandidate(620, "Portal 2", True)))
        service = OwnershipService([_source("web", _fail()), _source("xml", _fail())], scrape, [])

        result = service.load_owned_games(STEAM_ID)

        assert [g.app_id for g in result.games] == [620]
        assert result.sources == ["scrape"]

    def test_catalog_requires_ownership_check(self) -> None:
        catalog = _source("catalog", _ok(OwnedGameCandidate(220, has_stats_link=True)))
        service = OwnershipService([_source("web", _fail())], _source("scrape", _fail()), [catalog])

        with pytest.raises(OwnershipUnavailableError):
            service.load_owned_games(STEAM_ID)
        catalog.fetch.assert_not_called()

    def test_catalog_filtered_by_ownership(self) -> None:
        first = _source("games.xml", _fail(FailureKind.MALFORMED))
        second = _source(
            "GetAppList",
            _ok(OwnedGameCandidate(10, "CS", True), OwnedGameCandidate(20, "TFC", True), OwnedGameCandidate(30, "DoD", True)),
        )
        names = {10: "Counter-Strike", 30: ""}
        service = OwnershipService(
            [_source("web", _fail())],
            _source("scrape", _fail()),
            [first, second],
            is_app_owned=lambda app_id: app_id in (10, 30),
            get_app_data=lambda app_id, key: names.get(app_id, "") if key == "name" else "",
        )

        result = service.load_owned_games(STEAM_ID)

        assert [(g.app_id, g.name) for g in result.games] == [(10, "Counter-Strike"), (30, "DoD")]
        assert all(g.achievement_total == -1 for g in result.games)
        assert result.sources == ["GetAppList"]

    def test_no_steam_id_skips_account_sources(self) -> None:
        web = _source("web", _ok())
        catalog = _source("catalog", _ok(OwnedGameCandidate(480, has_stats_link=True)))
        service = OwnershipService([web], _source("scrape", _ok()), [catalog], is_app_owned=lambda app_id: True)

        result = service.load_owned_games(0)

        web.fetch.assert_not_called()
        assert [g.app_id for g in result.games] == [480]

    def test_everything_failed(self) -> None:
        service = OwnershipService([_source("web", _fail())], _source("scrape", _fail()), [])
        with pytest.raises(OwnershipUnavailableError, match="web: failed"):
            service.load_owned_games(STEAM_ID)

    def test_default_games(self) -> None:
        service = OwnershipService([], _source("scrape", _fail()), [])
        games = service.default_games(DEFAULT_GAMES)
        assert [g.app_id for g in games] == [480]
        assert games[0].has_progress is False
