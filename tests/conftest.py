# tests/conftest.py
from pathlib import Path
from typing import Callable, Generator
from unittest.mock import MagicMock

import pytest
import requests

from sampicker.core.credentials import Credentials
from sampicker.core.scan_log import configure_scan_log


@pytest.fixture(autouse=True)
def reset_scan_log() -> Generator[None, None, None]:
    """Keep the global scan log disabled between tests."""
    configure_scan_log(None)
    yield
    configure_scan_log(None)


@pytest.fixture
def scan_log_path(tmp_path) -> Path:
    """Scan log routed into the test's temp directory."""
    path = tmp_path / "sam-picker-scan.log"
    configure_scan_log(path)
    return path


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    """Factory for real requests.Response objects with a fixed body."""

    def _make(
        body: str | bytes = "",
        status_code: int = 200,
        content_type: str = "application/json",
        url: str = "https://api.steampowered.com/",
    ) -> requests.Response:
        response = requests.Response()
        response.status_code = status_code
        response._content = body.encode("utf-8") if isinstance(body, str) else body
        response.encoding = "utf-8"
        response.headers["Content-Type"] = content_type
        response.url = url
        response.reason = "OK" if status_code < 400 else "Error"
        return response

    return _make


@pytest.fixture
def make_session() -> Callable[..., MagicMock]:
    """Factory for a mocked requests.Session whose get() returns the given responses in order.

    Exceptions in the list are raised instead of returned.
    """

    def _make(*responses) -> MagicMock:
        session = MagicMock(spec=requests.Session)
        session.headers = {}
        session.get.side_effect = list(responses)
        return session

    return _make


@pytest.fixture
def api_credentials() -> Credentials:
    return Credentials(api_key="SECRETKEY123")


@pytest.fixture
def cookie_credentials() -> Credentials:
    return Credentials(cookies={"sessionid": "abc", "steamLoginSecure": "76561198000000000%7C%7Ctoken"})


@pytest.fixture
def no_credentials() -> Credentials:
    return Credentials()
