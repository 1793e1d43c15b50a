"""Tests for the per-app achievement progress adapters."""

from __future__ import annotations

import json

import requests

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FailureKind
from sampicker.integrations.achievement_sources import CommunityStatsAchievementSource, WebApiAchievementSource

STEAM_ID = 76561198000000000


def _player_achievements(*achieved: int) -> str:
    return json.dumps(
        {
            "playerstats": {
                "steamID": str(STEAM_ID),
                "gameName": "Portal",
                "success": True,
                "achievements": [{"apiname": f"ACH_{i}", "achieved": a} for i, a in enumerate(achieved)],
            }
        }
    )


class TestWebApiAchievementSource:
    """Tests for WebApiAchievementSource."""

    def test_counts_achieved(self, make_session, make_response, api_credentials) -> None:
        session = make_session(make_response(_player_achievements(1, 0, 1, 1)))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)

        assert result.value == (3, 4)
        params = session.get.call_args.kwargs["params"]
        assert params == {"key": "SECRETKEY123", "steamid": STEAM_ID, "appid": 400}

    def test_requires_api_key(self, make_session) -> None:
        result = WebApiAchievementSource(session=make_session()).fetch(STEAM_ID, 400, Credentials())
        assert result.failure is FailureKind.NOT_CONFIGURED

    def test_no_stats_error_is_zero_of_zero(self, make_session, make_response, api_credentials) -> None:
        """The 400 'Requested app has no stats' answer is absence, not failure."""
        body = json.dumps({"playerstats": {"error": "Requested app has no stats", "success": False}})
        session = make_session(make_response(body, status_code=400))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)
        assert result.value == (0, 0)

    def test_success_without_achievements(self, make_session, make_response, api_credentials) -> None:
        body = json.dumps({"playerstats": {"success": True, "gameName": "Some Tool"}})
        session = make_session(make_response(body))
        assert WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials).value == (0, 0)

    def test_other_upstream_error(self, make_session, make_response, api_credentials) -> None:
        body = json.dumps({"playerstats": {"error": "Profile is not public", "success": False}})
        session = make_session(make_response(body))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)
        assert result.failure is FailureKind.UPSTREAM_ERROR

    def test_forbidden(self, make_session, make_response, api_credentials) -> None:
        session = make_session(make_response("Forbidden", status_code=403, content_type="text/html"))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)
        assert result.failure is FailureKind.TRANSPORT

    def test_timeout(self, make_session, api_credentials) -> None:
        session = make_session(requests.Timeout("read timed out"))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)
        assert result.failure is FailureKind.TRANSPORT

    def test_html_page(self, make_session, make_response, api_credentials) -> None:
        session = make_session(make_response("<!DOCTYPE html><html>Sign In</html>", content_type="text/html"))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)
        assert result.failure is FailureKind.SIGN_IN_REQUIRED

    def test_plain_text_absence(self, make_session, make_response, api_credentials) -> None:
        session = make_session(make_response("This game has no achievements.", content_type="text/plain"))
        assert WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials).value == (0, 0)

    def test_empty_body(self, make_session, make_response, api_credentials) -> None:
        session = make_session(make_response("   "))
        result = WebApiAchievementSource(session=session).fetch(STEAM_ID, 400, api_credentials)
        assert result.failure is FailureKind.MALFORMED


STATS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<playerstats>
  <game><gameName>Portal</gameName></game>
  <achievements>
    <achievement closed="1"><apiname>a</apiname></achievement>
    <achievement closed="0"><apiname>b</apiname></achievement>
    <achievement><closed>1</closed><apiname>c</apiname></achievement>
  </achievements>
</playerstats>
"""


class TestCommunityStatsAchievementSource:
    """Tests for CommunityStatsAchievementSource."""

    def test_counts_closed_achievements(self, make_session, make_response) -> None:
        session = make_session(make_response(STATS_XML, content_type="text/xml"))
        result = CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400)

        assert result.value == (2, 3)
        assert session.get.call_args.args[0] == (
            "https://steamcommunity.com/profiles/76561198000000000/stats/400/?xml=1"
        )

    def test_playerstats_without_achievements(self, make_session, make_response) -> None:
        body = b"<playerstats><game><gameName>Tool</gameName></game></playerstats>"
        session = make_session(make_response(body, content_type="text/xml"))
        assert CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400).value == (0, 0)

    def test_no_stats_error(self, make_session, make_response) -> None:
        body = b"<response><error><![CDATA[This game has no stats.]]></error></response>"
        session = make_session(make_response(body, content_type="text/xml"))
        assert CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400).value == (0, 0)

    def test_other_error(self, make_session, make_response) -> None:
        body = b"<response><error><![CDATA[The specified profile could not be found.]]></error></response>"
        session = make_session(make_response(body, content_type="text/xml"))
        result = CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400)
        assert result.failure is FailureKind.UPSTREAM_ERROR

    def test_sign_in_interstitial(self, make_session, make_response) -> None:
        session = make_session(make_response("<html><body>Sign In</body></html>", content_type="text/html"))
        result = CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400)
        assert result.failure is FailureKind.SIGN_IN_REQUIRED

    def test_unexpected_document(self, make_session, make_response) -> None:
        session = make_session(make_response(b"<profile/>", content_type="text/xml"))
        result = CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400)
        assert result.failure is FailureKind.MALFORMED

    def test_forbidden(self, make_session, make_response, cookie_credentials) -> None:
        session = make_session(make_response("Forbidden", status_code=403, content_type="text/plain"))
        result = CommunityStatsAchievementSource(session=session).fetch(STEAM_ID, 400, cookie_credentials)
        assert result.failure is FailureKind.TRANSPORT
        assert session.get.call_args.kwargs["cookies"] is not None
