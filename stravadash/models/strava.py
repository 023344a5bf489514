"""Pydantic models for Strava API data structures.

Upstream payloads are read-only for this application: unknown fields are
kept (``extra="allow"``) so that a record fetched from Strava is handed to
consumers unchanged.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class StravaPayload(BaseModel):
    """Base model for records returned by the Strava API."""
    model_config = ConfigDict(extra="allow")


class StravaTokens(BaseModel):
    """Strava OAuth tokens model."""
    access_token: str
    refresh_token: str
    expires_at: int
    token_type: str = "Bearer"


class Athlete(StravaPayload):
    """Strava athlete model."""
    id: int
    username: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    profile: Optional[str] = None
    profile_medium: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    sex: Optional[str] = None
    weight: Optional[float] = None
    premium: Optional[bool] = None
    created_at: Optional[datetime] = None
    follower_count: Optional[int] = None
    friend_count: Optional[int] = None
    measurement_preference: Optional[str] = None
    ftp: Optional[int] = None


class Gear(StravaPayload):
    """Strava gear model."""
    id: str
    name: Optional[str] = None
    primary: Optional[bool] = None
    distance: Optional[float] = None


class ActivityMap(StravaPayload):
    """Strava activity map model."""
    id: Optional[str] = None
    summary_polyline: Optional[str] = None
    polyline: Optional[str] = None


class ActivitySummary(StravaPayload):
    """Activity as listed by ``/athlete/activities``."""
    id: int
    start_date: datetime
    name: str = ""
    type: Optional[str] = None
    sport_type: Optional[str] = None
    distance: float = 0.0
    moving_time: int = 0
    elapsed_time: int = 0
    total_elevation_gain: float = 0.0
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    has_heartrate: Optional[bool] = None
    average_watts: Optional[float] = None
    max_watts: Optional[float] = None
    kilojoules: Optional[float] = None
    device_watts: Optional[bool] = None
    average_temp: Optional[float] = None
    suffer_score: Optional[float] = None
    pr_count: Optional[int] = None
    kudos_count: Optional[int] = None
    comment_count: Optional[int] = None
    athlete_count: Optional[int] = None
    photo_count: Optional[int] = None
    trainer: Optional[bool] = None
    commute: Optional[bool] = None
    gear_id: Optional[str] = None
    workout_type: Optional[int] = None
    start_latlng: Optional[List[float]] = None
    end_latlng: Optional[List[float]] = None
    map: Optional[ActivityMap] = None


class Split(StravaPayload):
    """Per-kilometre split."""
    split: int
    distance: float
    elapsed_time: int
    moving_time: int
    elevation_difference: Optional[float] = None
    average_speed: Optional[float] = None
    average_heartrate: Optional[float] = None
    pace_zone: Optional[int] = None


class BestEffort(StravaPayload):
    """Best effort over a standard distance (400m, 1k, 5k...)."""
    id: int
    name: str
    elapsed_time: int
    moving_time: int
    distance: float
    start_index: Optional[int] = None
    end_index: Optional[int] = None
    pr_rank: Optional[int] = None


class SegmentEffort(StravaPayload):
    """Effort on a Strava segment."""
    id: int
    name: str
    elapsed_time: int
    moving_time: int
    distance: float
    start_index: Optional[int] = None
    end_index: Optional[int] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    average_watts: Optional[float] = None
    pr_rank: Optional[int] = None
    kom_rank: Optional[int] = None
    segment: Optional[Dict[str, Any]] = None


class ActivityDetail(ActivitySummary):
    """Activity as returned by ``/activities/{id}``."""
    description: Optional[str] = None
    calories: Optional[float] = None
    average_cadence: Optional[float] = None
    elev_high: Optional[float] = None
    elev_low: Optional[float] = None
    device_name: Optional[str] = None
    perceived_exertion: Optional[float] = None
    segment_efforts: Optional[List[SegmentEffort]] = None
    splits_metric: Optional[List[Split]] = None
    best_efforts: Optional[List[BestEffort]] = None
    gear: Optional[Gear] = None


class Lap(StravaPayload):
    """Lap returned by ``/activities/{id}/laps``."""
    id: Optional[int] = None
    lap_index: int
    distance: float
    elapsed_time: int
    moving_time: int
    start_date: Optional[datetime] = None
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    total_elevation_gain: Optional[float] = None
    average_cadence: Optional[float] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None


class ActivityStream(StravaPayload):
    """One data stream (time, distance, latlng, heartrate...)."""
    type: Optional[str] = None
    data: List[Any] = Field(default_factory=list)
    series_type: Optional[str] = None
    original_size: Optional[int] = None
    resolution: Optional[str] = None


class ActivityTotals(StravaPayload):
    """Totals for one activity type."""
    count: int = 0
    distance: float = 0.0
    moving_time: int = 0
    elapsed_time: int = 0
    elevation_gain: float = 0.0


class AthleteStats(StravaPayload):
    """Athlete statistics from ``/athletes/{id}/stats``."""
    recent_run_totals: Optional[ActivityTotals] = None
    recent_ride_totals: Optional[ActivityTotals] = None
    recent_swim_totals: Optional[ActivityTotals] = None
    ytd_run_totals: Optional[ActivityTotals] = None
    ytd_ride_totals: Optional[ActivityTotals] = None
    ytd_swim_totals: Optional[ActivityTotals] = None
    all_run_totals: Optional[ActivityTotals] = None
    all_ride_totals: Optional[ActivityTotals] = None
    all_swim_totals: Optional[ActivityTotals] = None


class RouteGeometry(BaseModel):
    """GeoJSON LineString with ``[longitude, latitude]`` positions."""
    type: str = "LineString"
    coordinates: List[Tuple[float, float]]


class RouteFeature(BaseModel):
    """GeoJSON feature carrying one activity route."""
    type: str = "Feature"
    geometry: RouteGeometry
    properties: Dict[str, Any] = Field(default_factory=dict)


class RouteCollection(BaseModel):
    """GeoJSON FeatureCollection of activity routes."""
    type: str = "FeatureCollection"
    features: List[RouteFeature] = Field(default_factory=list)


class DashboardTotals(BaseModel):
    """Totals derived from the cached activities."""
    activities_count: int
    total_distance_km: int
    total_elevation: int
    total_time_hours: float


class DashboardSnapshot(BaseModel):
    """Current state of the dashboard cache."""
    athlete: Optional[Athlete] = None
    activities: List[ActivitySummary] = Field(default_factory=list)
    stats: Optional[AthleteStats] = None
    totals: DashboardTotals
    loading: bool = False
    error: Optional[str] = None


class AuthStatus(BaseModel):
    """Authentication state of the service."""
    authenticated: bool
    expires_at: int
    expired: bool
