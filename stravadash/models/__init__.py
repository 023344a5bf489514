"""Data models for Strava API integration."""

from .strava import (
    ActivityDetail,
    ActivityStream,
    ActivitySummary,
    Athlete,
    AthleteStats,
    Lap,
    RouteCollection,
    RouteGeometry,
    StravaTokens,
)

__all__ = [
    "ActivityDetail",
    "ActivityStream",
    "ActivitySummary",
    "Athlete",
    "AthleteStats",
    "Lap",
    "RouteCollection",
    "RouteGeometry",
    "StravaTokens",
]
