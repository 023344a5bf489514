"""Client-side cache of the athlete's profile, activities and statistics."""

import logging
from typing import List, Optional

from stravadash.exceptions import StravaAPIError
from stravadash.models.strava import (
    ActivityDetail,
    ActivitySummary,
    Athlete,
    AthleteStats,
    DashboardSnapshot,
    DashboardTotals,
    RouteCollection,
    RouteFeature,
    RouteGeometry,
)
from stravadash.services.strava_service import StravaService
from stravadash.utils.polyline import PolylineDecodeError, decode_polyline, to_geojson_coords

logger = logging.getLogger(__name__)


class DashboardStore:
    """Holds what the dashboard has loaded so far.

    A failed load records an error message and keeps whatever was loaded
    before, so consumers keep showing stale data rather than nothing.
    """

    def __init__(self, strava_service: StravaService):
        self.strava_service = strava_service
        self.athlete: Optional[Athlete] = None
        self.activities: List[ActivitySummary] = []
        self.stats: Optional[AthleteStats] = None
        self.error: Optional[str] = None
        self._pending = 0

    @property
    def loading(self) -> bool:
        return self._pending > 0

    def _start(self) -> None:
        self._pending += 1
        self.error = None

    def _finish(self) -> None:
        self._pending -= 1

    def _fail(self, what: str, e: Exception) -> None:
        logger.error(f"Error loading {what}: {e}")
        self.error = str(e)

    async def load_athlete(self) -> None:
        self._start()
        try:
            self.athlete = await self.strava_service.get_athlete()
        except StravaAPIError as e:
            self._fail("athlete", e)
        finally:
            self._finish()

    async def load_activities(self, page: int = 1, per_page: int = 50) -> None:
        self._start()
        try:
            self.activities = await self.strava_service.get_activities(page=page, per_page=per_page)
        except StravaAPIError as e:
            self._fail("activities", e)
        finally:
            self._finish()

    async def load_all_activities(self) -> None:
        self._start()
        try:
            self.activities = await self.strava_service.get_all_activities()
        except StravaAPIError as e:
            self._fail("all activities", e)
        finally:
            self._finish()

    async def get_activity_detail(self, activity_id: int) -> Optional[ActivityDetail]:
        """Fetch one activity, returning None (and recording the error) on failure."""
        self._start()
        try:
            return await self.strava_service.get_activity_by_id(activity_id)
        except StravaAPIError as e:
            self._fail(f"activity {activity_id}", e)
            return None
        finally:
            self._finish()

    async def load_stats(self) -> None:
        """Load athlete statistics, loading the profile first when needed."""
        self._start()
        try:
            if self.athlete is None:
                await self.load_athlete()
            if self.athlete is None:
                # Keep the reason the profile failed to load when there is one
                if self.error is None:
                    raise StravaAPIError("Unable to determine the athlete id")
                return
            self.stats = await self.strava_service.get_athlete_stats(self.athlete.id)
        except StravaAPIError as e:
            self._fail("stats", e)
        finally:
            self._finish()

    async def sync(self) -> DashboardSnapshot:
        """Reload profile, every activity and the statistics."""
        await self.load_athlete()
        await self.load_all_activities()
        await self.load_stats()
        return self.snapshot()

    @property
    def activities_count(self) -> int:
        return len(self.activities)

    @property
    def total_distance_km(self) -> int:
        return round(sum(a.distance for a in self.activities) / 1000)

    @property
    def total_elevation(self) -> int:
        return round(sum(a.total_elevation_gain for a in self.activities))

    @property
    def total_time_hours(self) -> float:
        seconds = sum(a.moving_time for a in self.activities)
        return round(seconds / 3600, 1)

    def totals(self) -> DashboardTotals:
        return DashboardTotals(
            activities_count=self.activities_count,
            total_distance_km=self.total_distance_km,
            total_elevation=self.total_elevation,
            total_time_hours=self.total_time_hours
        )

    def snapshot(self) -> DashboardSnapshot:
        return DashboardSnapshot(
            athlete=self.athlete,
            activities=self.activities,
            stats=self.stats,
            totals=self.totals(),
            loading=self.loading,
            error=self.error
        )

    def route_collection(self) -> RouteCollection:
        """Build a GeoJSON FeatureCollection from the cached summary routes."""
        features = []
        for activity in self.activities:
            if not activity.map or not activity.map.summary_polyline:
                continue
            try:
                points = decode_polyline(activity.map.summary_polyline)
            except PolylineDecodeError as e:
                logger.warning(f"Skipping route of activity {activity.id}: {e}")
                continue
            if not points:
                continue
            features.append(RouteFeature(
                geometry=RouteGeometry(coordinates=to_geojson_coords(points)),
                properties={
                    "id": activity.id,
                    "name": activity.name,
                    "type": activity.type,
                    "start_date": activity.start_date.isoformat()
                }
            ))
        return RouteCollection(features=features)
