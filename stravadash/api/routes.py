from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from stravadash.models.strava import (
    ActivityDetail,
    ActivityStream,
    ActivitySummary,
    Athlete,
    AthleteStats,
    AuthStatus,
    DashboardSnapshot,
    Lap,
    RouteCollection,
    RouteGeometry,
)
from stravadash.services.dashboard_service import DashboardStore
from stravadash.services.strava_service import (
    ApiResponseError,
    InvalidPayloadError,
    StravaAPIError,
    StravaService,
    TokenRefreshError,
)
from stravadash.utils.polyline import PolylineDecodeError, decode_polyline, to_geojson_coords

router = APIRouter()


def get_strava_service(request: Request) -> StravaService:
    return request.app.state.strava_service


def get_dashboard(request: Request) -> DashboardStore:
    return request.app.state.dashboard


def _http_error(e: StravaAPIError) -> HTTPException:
    """Translate a Strava error into the response sent to our own caller."""
    if isinstance(e, TokenRefreshError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ApiResponseError) and e.status_code == 404:
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidPayloadError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.get("/", summary="Health check")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "message": "Strava Dash API is running"}


@router.get("/athlete", response_model=Athlete, summary="Get athlete information")
async def get_athlete(strava_service: StravaService = Depends(get_strava_service)):
    """Get the authenticated athlete's information."""
    try:
        return await strava_service.get_athlete()
    except StravaAPIError as e:
        raise _http_error(e)


@router.get("/activities", response_model=List[ActivitySummary], summary="Get one page of activities")
async def get_activities(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=200, description="Activities per page"),
    strava_service: StravaService = Depends(get_strava_service)
):
    try:
        return await strava_service.get_activities(page=page, per_page=per_page)
    except StravaAPIError as e:
        raise _http_error(e)


@router.get("/activities/all", response_model=List[ActivitySummary], summary="Get every activity")
async def get_all_activities(strava_service: StravaService = Depends(get_strava_service)):
    """Walk every page of the athlete's activities."""
    try:
        return await strava_service.get_all_activities()
    except StravaAPIError as e:
        raise _http_error(e)


@router.get("/activities/{activity_id}", response_model=ActivityDetail, summary="Get activity by ID")
async def get_activity(activity_id: int, strava_service: StravaService = Depends(get_strava_service)):
    """Get detailed information about a specific activity."""
    try:
        return await strava_service.get_activity_by_id(activity_id)
    except StravaAPIError as e:
        raise _http_error(e)


@router.get("/activities/{activity_id}/laps", response_model=List[Lap], summary="Get activity laps")
async def get_activity_laps(activity_id: int, strava_service: StravaService = Depends(get_strava_service)):
    try:
        return await strava_service.get_activity_laps(activity_id)
    except StravaAPIError as e:
        raise _http_error(e)


@router.get(
    "/activities/{activity_id}/streams",
    response_model=Dict[str, ActivityStream],
    summary="Get activity streams"
)
async def get_activity_streams(
    activity_id: int,
    keys: Optional[str] = Query(None, description="Comma separated stream types"),
    strava_service: StravaService = Depends(get_strava_service)
):
    try:
        if keys:
            return await strava_service.get_activity_streams(activity_id, keys=keys.split(","))
        return await strava_service.get_activity_streams(activity_id)
    except StravaAPIError as e:
        raise _http_error(e)


@router.get("/activities/{activity_id}/route", response_model=RouteGeometry, summary="Get activity route")
async def get_activity_route(
    activity_id: int,
    resolution: str = Query("full", pattern="^(summary|full)$", description="summary or full polyline"),
    strava_service: StravaService = Depends(get_strava_service)
):
    """Decode the activity polyline into a GeoJSON LineString."""
    try:
        activity = await strava_service.get_activity_by_id(activity_id)
    except StravaAPIError as e:
        raise _http_error(e)

    encoded = None
    if activity.map:
        if resolution == "full":
            encoded = activity.map.polyline or activity.map.summary_polyline
        else:
            encoded = activity.map.summary_polyline
    if not encoded:
        raise HTTPException(status_code=404, detail=f"Activity {activity_id} has no route")

    try:
        points = decode_polyline(encoded)
    except PolylineDecodeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return RouteGeometry(coordinates=to_geojson_coords(points))


@router.get("/stats", response_model=AthleteStats, summary="Get athlete statistics")
async def get_stats(strava_service: StravaService = Depends(get_strava_service)):
    try:
        return await strava_service.get_athlete_stats()
    except StravaAPIError as e:
        raise _http_error(e)


@router.get("/dashboard", response_model=DashboardSnapshot, summary="Get cached dashboard data")
async def get_dashboard_snapshot(dashboard: DashboardStore = Depends(get_dashboard)):
    return dashboard.snapshot()


@router.post("/dashboard/sync", response_model=DashboardSnapshot, summary="Reload dashboard data")
async def sync_dashboard(dashboard: DashboardStore = Depends(get_dashboard)):
    """Reload athlete, activities and stats. Errors are reported in the snapshot."""
    return await dashboard.sync()


@router.get("/dashboard/routes", response_model=RouteCollection, summary="Get routes of cached activities")
async def get_dashboard_routes(dashboard: DashboardStore = Depends(get_dashboard)):
    return dashboard.route_collection()


@router.get("/auth/login", summary="Start Strava OAuth")
async def login(
    state: Optional[str] = Query(None),
    strava_service: StravaService = Depends(get_strava_service)
):
    return RedirectResponse(strava_service.get_authorization_url(state))


@router.get("/auth/callback", response_model=AuthStatus, summary="Strava OAuth callback")
async def auth_callback(
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    strava_service: StravaService = Depends(get_strava_service)
):
    if error or not code:
        raise HTTPException(status_code=400, detail=f"Authorization denied: {error or 'missing code'}")
    try:
        await strava_service.authorize(code)
    except StravaAPIError as e:
        raise _http_error(e)
    return auth_status(strava_service)


@router.get("/auth/status", response_model=AuthStatus, summary="Authentication status")
async def get_auth_status(strava_service: StravaService = Depends(get_strava_service)):
    return auth_status(strava_service)


@router.post("/auth/logout", response_model=AuthStatus, summary="Log out of Strava")
async def logout(
    revoke: bool = Query(True, description="Also revoke access on Strava"),
    strava_service: StravaService = Depends(get_strava_service)
):
    await strava_service.logout(revoke=revoke)
    return auth_status(strava_service)


def auth_status(strava_service: StravaService) -> AuthStatus:
    return AuthStatus(
        authenticated=strava_service.is_authenticated,
        expires_at=strava_service.expires_at,
        expired=strava_service.is_token_expired()
    )
