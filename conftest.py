"""
Pytest configuration and shared fixtures.
"""
from typing import List, Optional

import httpx
import pytest

from src.adapters.wellsky import WellSkyAdapter
from src.config.settings import Settings
from src.models.cdm import Credentials, RetryConfig
from src.transport.http_client import HTTPClient
from src.transport.retry_handler import RetryHandler

BASE_URL = "https://wellsky.test"

LOGIN_PAGE = """
<html><body>
<form method="post" action="/login/">
  <input type="hidden" name="csrfmiddlewaretoken" value="login-token-123">
  <input type="text" name="username">
</form>
</body></html>
"""

SCHEDULING_PAGE = """
<html><body>
<form><input type='hidden' name='csrfmiddlewaretoken' value='fresh-token-456'></form>
</body></html>
"""


class FakeWellSky:
    """
    In-memory stand-in for the WellSky web app.

    Tweak the attributes to simulate failures; every request is recorded.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.login_page = LOGIN_PAGE
        self.multilogin_json = {"success": True, "errors": []}
        self.login_status = 302
        self.login_location: Optional[str] = "/dashboard/live/"
        self.dashboard_status = 200
        self.scheduling_status = 200
        self.scheduling_page = SCHEDULING_PAGE
        self.note_statuses: List[int] = [200]
        self.note_body = "<html>Note saved</html>"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path

        if method == "GET" and path == "/login/":
            return httpx.Response(
                200,
                text=self.login_page,
                headers=[("set-cookie", "csrftoken=c1; Path=/; SameSite=Lax")],
            )
        if method == "POST" and path == "/multilogin/":
            return httpx.Response(
                200,
                json=self.multilogin_json,
                headers=[("set-cookie", "multilogin=ok; Path=/")],
            )
        if method == "POST" and path == "/login/":
            headers = [("set-cookie", "sessionid=s1; HttpOnly; Path=/")]
            if self.login_location:
                headers.append(("location", self.login_location))
            return httpx.Response(self.login_status, headers=headers)
        if method == "GET" and path == "/dashboard/live/":
            headers = [("set-cookie", "dash=d1; Path=/")]
            if self.dashboard_status in (301, 302):
                headers.append(("location", "/login/"))
            return httpx.Response(self.dashboard_status, text="<html>dashboard</html>", headers=headers)
        if method == "GET" and path == "/scheduling/":
            headers = [("set-cookie", "csrftoken=c2; Path=/")]
            if self.scheduling_status in (301, 302):
                headers.append(("location", "/login/?next=/scheduling/"))
            return httpx.Response(self.scheduling_status, text=self.scheduling_page, headers=headers)
        if method == "POST" and path == "/scheduling/note/add/":
            status = self.note_statuses.pop(0) if len(self.note_statuses) > 1 else self.note_statuses[0]
            return httpx.Response(status, text=self.note_body)

        return httpx.Response(404, text="not found")

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


class SleepRecorder:
    """Replaces asyncio.sleep in RetryHandler so tests never wait."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_vendor():
    return FakeWellSky()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def test_settings(tmp_path):
    settings = Settings()
    settings.wellsky_base_url = BASE_URL
    settings.http_timeout_ms = 2000
    settings.session_dir = str(tmp_path)
    settings.session_ttl_minutes = None
    return settings


@pytest.fixture
def make_adapter(fake_vendor, sleeper, test_settings):
    def _make(**overrides) -> WellSkyAdapter:
        retry_config = overrides.pop("retry_config", RetryConfig(max_attempts=3, backoff_ms=100))
        return WellSkyAdapter(
            settings=overrides.pop("settings", test_settings),
            http_client=HTTPClient(
                "wellsky",
                timeout_ms=2000,
                transport=httpx.MockTransport(fake_vendor),
            ),
            retry_handler=RetryHandler(retry_config, sleep=sleeper),
        )
    return _make


@pytest.fixture
def credentials():
    return Credentials(username="nurse.joy", password="s3cret")


@pytest.fixture
def sample_note_payload():
    """Canonical visit note as a caller would send it."""
    return {
        "visitId": "123",
        "patientId": "p1",
        "caregiverId": "c1",
        "visitDate": "2025-12-22",
        "startTime": "09:00",
        "endTime": "10:00",
        "note": "ok",
    }
