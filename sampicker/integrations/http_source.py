"""Shared HTTP plumbing for all upstream source adapters.

Provides a base class with the request helper every adapter uses: fixed
user agent, compressed transfer, a bounded timeout, optional Steam
Community cookies, and classification of the common failure modes
(transport errors, sign-in pages served instead of data, upstream
"no stats" messages).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests
from requests.cookies import RequestsCookieJar

from sampicker.core.credentials import Credentials
from sampicker.core.errors import FailureKind, FetchResult
from sampicker.core.scan_log import append_scan_log, redact_sensitive

logger = logging.getLogger("sampicker.http_source")

__all__ = ["HttpResponse", "HttpSource", "USER_AGENT", "is_html_payload", "is_no_achievements_message"]

USER_AGENT = "SteamAchievementManager"
DEFAULT_TIMEOUT = 10.0

_COMMUNITY_DOMAIN = ".steamcommunity.com"

_ABSENCE_MARKERS: tuple[str, ...] = ("no stats", "no achievements", "has no stats")


def is_no_achievements_message(message: str | None) -> bool:
    """Whether an upstream error text means "this app has no achievements".

    Args:
        message: Error string from a JSON field, XML node or response body.

    Returns:
        True for the known absence messages, compared case-insensitively.
    """
    if not message or not message.strip():
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in _ABSENCE_MARKERS)


def is_html_payload(content_type: str, body: str) -> bool:
    """Heuristic for sign-in or interstitial pages served instead of data.

    Args:
        content_type: Response Content-Type header.
        body: Decoded response body.

    Returns:
        True if the response looks like an HTML document.
    """
    if "text/html" in (content_type or "").lower():
        return True
    head = body.lstrip()[:64].lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


@dataclass(frozen=True)
class HttpResponse:
    """Successful HTTP response reduced to what adapters need."""

    url: str
    status_code: int
    content_type: str
    text: str
    content: bytes


class HttpSource:
    """Base class for adapters that perform one HTTP GET per fetch.

    Attributes:
        name: Short adapter label used in log lines.
        timeout: Connect/read timeout in seconds.
    """

    name: str = "http"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Accept-Encoding": "gzip, deflate",
            }
        )

    @staticmethod
    def _cookie_jar(credentials: Credentials | None) -> RequestsCookieJar | None:
        """Builds a secure cookie jar scoped to steamcommunity.com."""
        if credentials is None or not credentials.has_cookies:
            return None
        jar = RequestsCookieJar()
        for name, value in credentials.cookies.items():
            jar.set(name, value, domain=_COMMUNITY_DOMAIN, path="/", secure=True)
        return jar

    def _get(
        self,
        url: str,
        app_id: int = 0,
        params: dict[str, str | int] | None = None,
        credentials: Credentials | None = None,
    ) -> tuple[HttpResponse | None, FetchResult | None]:
        """Performs a GET and classifies transport-level failures.

        HTTP error statuses are failures too, except that an error body
        carrying an absence message is passed back to the caller so it can
        normalize it to 0/0.

        Args:
            url: Endpoint URL.
            app_id: App the request belongs to (0 for list requests).
            params: Query parameters.
            credentials: Optional credentials whose cookies are attached.

        Returns:
            (response, None) on success, or (None, failure result).
        """
        display_url = requests.Request("GET", url, params=params).prepare().url or url
        append_scan_log(app_id, f"HTTP GET {display_url}")

        try:
            response = self._session.get(
                url,
                params=params,
                timeout=self.timeout,
                cookies=self._cookie_jar(credentials),
            )
        except requests.RequestException as exc:
            detail = redact_sensitive(f"{self.name} request failed: {type(exc).__name__}: {exc}")
            append_scan_log(app_id, detail)
            return None, FetchResult.fail(FailureKind.TRANSPORT, detail)

        body = response.text or ""
        if response.status_code >= 400:
            if is_no_achievements_message(body):
                return self._wrap(response, body), None
            snippet = " ".join(body.split())[:200] or response.reason or ""
            detail = redact_sensitive(f"{self.name} request failed: HTTP {response.status_code} {snippet}".rstrip())
            append_scan_log(app_id, detail)
            return None, FetchResult.fail(FailureKind.TRANSPORT, detail)

        return self._wrap(response, body), None

    @staticmethod
    def _wrap(response: requests.Response, body: str) -> HttpResponse:
        return HttpResponse(
            url=str(response.url or ""),
            status_code=response.status_code,
            content_type=response.headers.get("Content-Type", ""),
            text=body,
            content=response.content or b"",
        )

    def _html_instead_of_data(self, response: HttpResponse, app_id: int = 0) -> FetchResult | None:
        """Returns a SIGN_IN_REQUIRED failure when an HTML page came back."""
        if not is_html_payload(response.content_type, response.text):
            return None
        detail = f"{self.name} returned an HTML page instead of data (sign-in or interstitial)"
        append_scan_log(app_id, detail)
        return FetchResult.fail(FailureKind.SIGN_IN_REQUIRED, detail)

    def _malformed(self, detail: str, app_id: int = 0) -> FetchResult:
        message = redact_sensitive(f"{self.name} response was invalid: {detail}")
        append_scan_log(app_id, message)
        return FetchResult.fail(FailureKind.MALFORMED, message)
