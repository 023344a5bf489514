"""Tests for the token lifecycle and API access of StravaService."""

import asyncio
import json
import time

import httpx
import pytest

from conftest import make_activity
from stravadash.services.strava_service import (
    ApiResponseError,
    InvalidPayloadError,
    StravaConnectionError,
    StravaService,
    TokenRefreshError,
)
from stravadash.services.token_store import TokenStore


def expire(service):
    service.expires_at = int(time.time()) - 10


def test_token_expired_within_margin(service):
    service.expires_at = 10_000
    assert service.is_token_expired(now=10_000 - 300)
    assert service.is_token_expired(now=10_000 + 5)
    assert not service.is_token_expired(now=10_000 - 301)


def test_unknown_expiry_counts_as_valid(service):
    service.expires_at = 0
    assert not service.is_token_expired(now=time.time() + 10 ** 9)


def test_stored_tokens_override_defaults(settings, fake_strava, tmp_path):
    with open(settings.strava_token_file, "w") as f:
        json.dump({"access_token": "stored-access", "expires_at": "1700000000"}, f)

    service = StravaService(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(fake_strava)))

    assert service.access_token == "stored-access"
    assert service.refresh_token == "old-refresh"
    assert service.expires_at == 1700000000


@pytest.mark.asyncio
async def test_ensure_valid_token_does_nothing_when_valid(service, fake_strava):
    await service.ensure_valid_token()
    assert fake_strava.token_calls == 0
    assert service.access_token == "old-access"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(service, fake_strava, settings):
    expire(service)
    fake_strava.token_delay = 0.05

    await asyncio.gather(*[service.ensure_valid_token() for _ in range(10)])

    assert fake_strava.token_calls == 1
    assert service.access_token == "access-1"
    assert service.refresh_token == "refresh-1"
    assert not service.is_token_expired()
    assert not service.refresh_in_progress

    stored = TokenStore(settings.strava_token_file).load()
    assert stored["access_token"] == "access-1"
    assert stored["refresh_token"] == "refresh-1"
    assert stored["expires_at"] == service.expires_at


@pytest.mark.asyncio
async def test_cancelled_caller_leaves_shared_refresh_running(service, fake_strava, settings):
    expire(service)
    fake_strava.token_delay = 0.1

    first = asyncio.ensure_future(service.ensure_valid_token())
    await asyncio.sleep(0.01)
    second = asyncio.ensure_future(service.ensure_valid_token())
    await asyncio.sleep(0.01)
    first.cancel()

    await second

    assert first.cancelled()
    assert fake_strava.token_calls == 1
    assert service.access_token == "access-1"
    assert not service.refresh_in_progress
    assert TokenStore(settings.strava_token_file).load()["access_token"] == "access-1"


@pytest.mark.asyncio
async def test_refresh_sends_refresh_token_grant(service, fake_strava):
    expire(service)
    await service.ensure_valid_token()

    form = dict(httpx.QueryParams(fake_strava.token_requests[0].content.decode()))
    assert form == {
        "client_id": "12345",
        "client_secret": "shhh",
        "refresh_token": "old-refresh",
        "grant_type": "refresh_token"
    }


@pytest.mark.asyncio
async def test_failed_refresh_keeps_credentials(service, fake_strava):
    expire(service)
    expires_at = service.expires_at
    fake_strava.token_status = 400
    fake_strava.token_delay = 0.01

    results = await asyncio.gather(
        *[service.ensure_valid_token() for _ in range(3)],
        return_exceptions=True
    )

    assert all(isinstance(r, TokenRefreshError) for r in results)
    assert results[0].status_code == 400
    assert fake_strava.token_calls == 1
    assert service.access_token == "old-access"
    assert service.refresh_token == "old-refresh"
    assert service.expires_at == expires_at
    assert not service.refresh_in_progress


@pytest.mark.asyncio
async def test_refresh_after_failure_starts_a_new_exchange(service, fake_strava):
    expire(service)
    fake_strava.token_status = 500
    with pytest.raises(TokenRefreshError):
        await service.ensure_valid_token()

    fake_strava.token_status = 200
    await service.ensure_valid_token()

    assert fake_strava.token_calls == 2
    assert service.access_token == "access-2"


@pytest.mark.asyncio
async def test_refresh_without_refresh_token(service, fake_strava):
    service.refresh_token = ""
    with pytest.raises(TokenRefreshError):
        await service.refresh_access_token()
    assert fake_strava.token_calls == 0


@pytest.mark.asyncio
async def test_request_refreshes_before_call_when_expired(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(200, json={"id": 7})
    expire(service)

    await service.request("/athlete")

    assert fake_strava.token_calls == 1
    assert fake_strava.api_requests[0].headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_request_retries_once_after_401(service, fake_strava):
    responses = [httpx.Response(401), httpx.Response(200, json={"id": 7, "firstname": "Ada"})]
    fake_strava.routes["/api/v3/athlete"] = lambda r: responses.pop(0)

    athlete = await service.get_athlete()

    assert athlete.id == 7
    assert athlete.firstname == "Ada"
    assert fake_strava.token_calls == 1
    calls = fake_strava.requests_to("/api/v3/athlete")
    assert len(calls) == 2
    assert calls[0].headers["Authorization"] == "Bearer old-access"
    assert calls[1].headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_second_401_is_terminal(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(401)

    with pytest.raises(ApiResponseError) as exc_info:
        await service.request("/athlete")

    assert exc_info.value.status_code == 401
    assert exc_info.value.reason_phrase == "Unauthorized"
    assert fake_strava.token_calls == 1
    assert len(fake_strava.requests_to("/api/v3/athlete")) == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(503)

    with pytest.raises(ApiResponseError) as exc_info:
        await service.request("/athlete")

    assert exc_info.value.status_code == 503
    assert fake_strava.token_calls == 0
    assert len(fake_strava.api_requests) == 1


@pytest.mark.asyncio
async def test_transport_failure_raises_connection_error(service, fake_strava):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    fake_strava.routes["/api/v3/athlete"] = unreachable

    with pytest.raises(StravaConnectionError):
        await service.request("/athlete")


@pytest.mark.asyncio
async def test_request_sends_query_parameters(service, fake_strava):
    fake_strava.routes["/api/v3/athlete/activities"] = lambda r: httpx.Response(200, json=[make_activity(1)])

    activities = await service.get_activities(page=3, per_page=20)

    params = fake_strava.api_requests[0].url.params
    assert params["page"] == "3"
    assert params["per_page"] == "20"
    assert activities[0].id == 1
    assert activities[0].start_date.year == 2024


def paged(sizes):
    def handler(request):
        page = int(request.url.params["page"])
        size = sizes[page - 1] if page <= len(sizes) else 0
        first = sum(sizes[:page - 1]) + 1
        return httpx.Response(200, json=[make_activity(first + i) for i in range(size)])
    return handler


@pytest.mark.asyncio
async def test_all_activities_stops_at_short_page(service, fake_strava):
    fake_strava.routes["/api/v3/athlete/activities"] = paged([100, 100, 37])

    activities = await service.get_all_activities(per_page=100)

    assert len(activities) == 237
    assert [a.id for a in activities] == list(range(1, 238))
    pages = [r.url.params["page"] for r in fake_strava.api_requests]
    assert pages == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_all_activities_stops_at_empty_page(service, fake_strava):
    fake_strava.routes["/api/v3/athlete/activities"] = paged([100, 100, 100, 0, 100])

    activities = await service.get_all_activities(per_page=100)

    assert len(activities) == 300
    assert len(fake_strava.api_requests) == 4


@pytest.mark.asyncio
async def test_all_activities_respects_page_bound(service, fake_strava):
    fake_strava.routes["/api/v3/athlete/activities"] = paged([10] * 50)

    activities = await service.get_all_activities(per_page=10, max_pages=3)

    assert len(activities) == 30
    assert len(fake_strava.api_requests) == 3


@pytest.mark.asyncio
async def test_activity_detail_laps_and_streams(service, fake_strava):
    fake_strava.routes["/api/v3/activities/99"] = lambda r: httpx.Response(
        200, json=make_activity(99, description="Tempo", calories=512.0, segment_efforts=[])
    )
    fake_strava.routes["/api/v3/activities/99/laps"] = lambda r: httpx.Response(200, json=[
        {"lap_index": 1, "distance": 1000.0, "elapsed_time": 300, "moving_time": 295}
    ])
    fake_strava.routes["/api/v3/activities/99/streams"] = lambda r: httpx.Response(200, json={
        "time": {"data": [0, 1, 2], "series_type": "distance", "original_size": 3, "resolution": "high"},
        "heartrate": {"data": [120, 125, 130], "series_type": "distance", "original_size": 3, "resolution": "high"}
    })

    detail = await service.get_activity_by_id(99)
    laps = await service.get_activity_laps(99)
    streams = await service.get_activity_streams(99, keys=["time", "heartrate"])

    assert detail.description == "Tempo"
    assert detail.map.summary_polyline
    assert laps[0].lap_index == 1
    assert streams["heartrate"].data == [120, 125, 130]
    stream_params = fake_strava.requests_to("/api/v3/activities/99/streams")[0].url.params
    assert stream_params["keys"] == "time,heartrate"
    assert stream_params["key_by_type"] == "true"


@pytest.mark.asyncio
async def test_extra_fields_are_kept(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(200, json={"id": 7, "badge_type_id": 1})

    athlete = await service.get_athlete()

    assert athlete.model_dump()["badge_type_id"] == 1


@pytest.mark.asyncio
async def test_stats_loads_athlete_when_no_id_given(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(200, json={"id": 42})
    fake_strava.routes["/api/v3/athletes/42/stats"] = lambda r: httpx.Response(200, json={
        "all_run_totals": {"count": 12, "distance": 60000.0, "moving_time": 21600,
                           "elapsed_time": 22000, "elevation_gain": 480.0}
    })

    stats = await service.get_athlete_stats()

    assert stats.all_run_totals.count == 12
    assert [r.url.path for r in fake_strava.api_requests] == ["/api/v3/athlete", "/api/v3/athletes/42/stats"]


@pytest.mark.asyncio
async def test_authorize_and_logout(service, fake_strava, settings):
    url = service.get_authorization_url(state="xyz")
    assert url.startswith("https://www.strava.com/oauth/authorize?")
    assert "client_id=12345" in url
    assert "state=xyz" in url

    await service.authorize("the-code")

    form = dict(httpx.QueryParams(fake_strava.token_requests[0].content.decode()))
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "the-code"
    assert service.access_token == "access-1"
    assert TokenStore(settings.strava_token_file).load()["access_token"] == "access-1"

    await service.logout()

    assert fake_strava.deauthorized
    assert not service.is_authenticated
    assert service.expires_at == 0
    assert TokenStore(settings.strava_token_file).load() == {}


@pytest.mark.asyncio
async def test_non_json_body_raises_invalid_payload(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(InvalidPayloadError) as exc_info:
        await service.request("/athlete")

    assert exc_info.value.status_code == 200
    assert isinstance(exc_info.value.__cause__, ValueError)


@pytest.mark.asyncio
async def test_unexpected_payload_shape_raises_invalid_payload(service, fake_strava):
    fake_strava.routes["/api/v3/athlete"] = lambda r: httpx.Response(200, json={"firstname": "no id"})
    fake_strava.routes["/api/v3/athlete/activities"] = lambda r: httpx.Response(200, json={"id": 1})
    fake_strava.routes["/api/v3/activities/9/streams"] = lambda r: httpx.Response(200, json=[{"data": [1, 2]}])

    with pytest.raises(InvalidPayloadError):
        await service.get_athlete()
    with pytest.raises(InvalidPayloadError):
        await service.get_activities()
    with pytest.raises(InvalidPayloadError):
        await service.get_activity_streams(9)
