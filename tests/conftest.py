"""Shared fixtures: settings pointing at a temp token file and a fake Strava."""

import asyncio
import time

import httpx
import pytest

from stravadash.config import Settings
from stravadash.services.strava_service import StravaService


def make_activity(activity_id, **overrides):
    activity = {
        "id": activity_id,
        "name": f"Morning Run {activity_id}",
        "type": "Run",
        "sport_type": "Run",
        "start_date": "2024-05-01T07:00:00Z",
        "distance": 5000.0,
        "moving_time": 1800,
        "elapsed_time": 1900,
        "total_elevation_gain": 40.0,
        "map": {"id": f"a{activity_id}", "summary_polyline": "_p~iF~ps|U_ulLnnqC_mqNvxq`@"},
    }
    activity.update(overrides)
    return activity


class FakeStrava:
    """Stand-in for the Strava API, used as an ``httpx.MockTransport`` handler.

    API paths are answered by handlers registered in ``routes``; the OAuth
    token endpoint mints numbered tokens and counts how often it was hit.
    """

    def __init__(self):
        self.routes = {}
        self.api_requests = []
        self.token_requests = []
        self.token_status = 200
        self.token_delay = 0.0
        self.deauthorized = False

    @property
    def token_calls(self):
        return len(self.token_requests)

    def requests_to(self, path):
        return [r for r in self.api_requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_requests.append(request)
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "Bad Request"})
            n = self.token_calls
            return httpx.Response(200, json={
                "token_type": "Bearer",
                "access_token": f"access-{n}",
                "refresh_token": f"refresh-{n}",
                "expires_at": int(time.time()) + 21600,
                "expires_in": 21600
            })

        if request.url.path == "/oauth/deauthorize":
            self.deauthorized = True
            return httpx.Response(200, json={"access_token": "revoked"})

        self.api_requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"message": "Record Not Found"})
        return handler(request)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        strava_client_id="12345",
        strava_client_secret="shhh",
        strava_access_token="old-access",
        strava_refresh_token="old-refresh",
        strava_token_expires_at=int(time.time()) + 3600,
        strava_token_file=str(tmp_path / "strava_tokens.json"),
    )


@pytest.fixture
def fake_strava():
    return FakeStrava()


@pytest.fixture
def service(settings, fake_strava):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_strava))
    return StravaService(settings, client=client)
