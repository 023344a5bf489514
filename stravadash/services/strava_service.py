"""Strava API service for handling all Strava-related operations."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from stravadash.config import Settings
from stravadash.exceptions import (
    ApiResponseError,
    InvalidPayloadError,
    StravaAPIError,
    StravaConnectionError,
    TokenRefreshError,
)
from stravadash.models.strava import (
    ActivityDetail,
    ActivityStream,
    ActivitySummary,
    Athlete,
    AthleteStats,
    Lap,
    StravaTokens,
)
from stravadash.services.token_store import TokenStore
from stravadash.utils.auth import StravaAuthHelper

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

__all__ = [
    "ApiResponseError",
    "InvalidPayloadError",
    "StravaAPIError",
    "StravaConnectionError",
    "StravaService",
    "TokenRefreshError",
]

DEFAULT_STREAM_KEYS = (
    "time",
    "distance",
    "latlng",
    "altitude",
    "heartrate",
    "cadence",
    "watts",
    "velocity_smooth",
)


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    """Validate one payload, turning validation failures into a Strava error."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidPayloadError(f"unexpected {model.__name__}: {e}") from e


def _parse_list(model: Type[ModelT], data: Any) -> List[ModelT]:
    if not isinstance(data, list):
        raise InvalidPayloadError(f"expected a list of {model.__name__}, got {type(data).__name__}")
    return [_parse(model, item) for item in data]


class StravaService:
    """Service class for interacting with Strava API.

    Every call goes through :meth:`request`, which makes sure a valid access
    token is held first and retries once with a fresh token when Strava
    answers 401. Concurrent callers that find the token expired share a
    single refresh.
    """

    def __init__(
        self,
        settings: Settings,
        token_store: Optional[TokenStore] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = settings.strava_api_base_url.rstrip("/")
        self.expiry_margin = settings.strava_token_expiry_margin
        self.page_size = settings.strava_page_size
        self.max_pages = settings.strava_max_activity_pages
        self.token_store = token_store or TokenStore(settings.strava_token_file)

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.strava_request_timeout)
        self.auth = StravaAuthHelper(settings, self.client)

        # Initialize tokens from settings (defaults)
        self.access_token = settings.strava_access_token
        self.refresh_token = settings.strava_refresh_token
        self.expires_at = settings.strava_token_expires_at

        # Stored tokens take precedence, entry by entry
        self._load_tokens()

        self._refresh_task: Optional[asyncio.Task] = None

    def _load_tokens(self) -> None:
        data = self.token_store.load()
        self.access_token = data.get("access_token", self.access_token)
        self.refresh_token = data.get("refresh_token", self.refresh_token)
        self.expires_at = data.get("expires_at", self.expires_at)

    async def __aenter__(self) -> "StravaService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            await self.client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_task is not None

    def is_token_expired(self, now: Optional[float] = None) -> bool:
        """Check whether the access token is expired or about to expire.

        An unknown expiry (0) counts as valid. Otherwise the token is treated
        as expired from ``expiry_margin`` seconds before ``expires_at``.
        """
        if not self.expires_at:
            return False
        if now is None:
            now = time.time()
        return now >= self.expires_at - self.expiry_margin

    async def ensure_valid_token(self) -> None:
        """Refresh the access token if it is expired.

        Only one refresh runs at a time: a caller that finds a refresh in
        flight waits for it instead of starting its own. The in-flight handle
        is cleared as soon as the refresh finishes, whether it succeeds or
        fails, and a cancelled caller leaves the refresh running.
        """
        if not self.is_token_expired():
            return

        if self._refresh_task is not None:
            logger.debug("Token refresh already in progress, waiting for it")
            await asyncio.shield(self._refresh_task)
            return

        logger.info(f"Strava token expiring soon or expired (expires_at: {self.expires_at}). Refreshing...")
        task = asyncio.ensure_future(self.refresh_access_token())
        task.add_done_callback(self._clear_refresh_task)
        self._refresh_task = task
        # Cancelling this caller must not cancel the refresh other callers wait on
        await asyncio.shield(task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def refresh_access_token(self) -> StravaTokens:
        """Exchange the refresh token for a new credential and persist it.

        Raises:
            TokenRefreshError: If no refresh token is held or Strava rejects
                the exchange. The current tokens are kept in that case.
        """
        if not self.refresh_token:
            raise TokenRefreshError(None, "no refresh token available")

        tokens = await self.auth.refresh_token(self.refresh_token)
        await self._store_tokens(tokens)
        logger.info(f"Strava token refreshed, expires_at: {tokens.expires_at}")
        return tokens

    async def _store_tokens(self, tokens: StravaTokens) -> None:
        self.access_token = tokens.access_token
        self.refresh_token = tokens.refresh_token
        self.expires_at = tokens.expires_at
        await self.token_store.save(tokens)

    async def _get(self, url: str, params: Optional[Mapping[str, Any]]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            return await self.client.get(url, params=params, headers=headers)
        except httpx.RequestError as e:
            raise StravaConnectionError(f"Request error: {e}") from e

    async def request(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Make an authenticated GET request to the Strava API.

        Args:
            endpoint: Path relative to the API base URL, e.g. ``/athlete``
            params: Optional query parameters

        Returns:
            The decoded JSON body.

        Raises:
            TokenRefreshError: If a needed refresh fails.
            ApiResponseError: If the response is not successful, after at
                most one retry following a 401.
            InvalidPayloadError: If a successful response is not JSON.
            StravaConnectionError: On transport failures.
        """
        await self.ensure_valid_token()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        response = await self._get(url, params)

        if response.status_code == 401:
            logger.warning(f"Access token rejected for {endpoint}, refreshing and retrying once")
            await self.refresh_access_token()
            response = await self._get(url, params)

        if not response.is_success:
            raise ApiResponseError(response.status_code, response.reason_phrase)

        try:
            return response.json()
        except ValueError as e:
            raise InvalidPayloadError(f"{endpoint} did not return JSON", response.status_code) from e

    async def authorize(self, code: str) -> StravaTokens:
        """Complete the OAuth flow with the code Strava redirected back with."""
        tokens = await self.auth.exchange_code_for_token(code)
        await self._store_tokens(tokens)
        logger.info("Strava authorization completed")
        return tokens

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        return self.auth.get_authorization_url(state)

    async def logout(self, revoke: bool = True) -> None:
        """Forget the current credential, revoking it on Strava if asked."""
        if revoke and self.access_token:
            if not await self.auth.deauthorize(self.access_token):
                logger.warning("Strava deauthorization failed, clearing local tokens anyway")
        await self.token_store.clear()
        self.access_token = ""
        self.refresh_token = ""
        self.expires_at = 0
        logger.info("Logged out of Strava")

    async def get_athlete(self) -> Athlete:
        """Get the authenticated athlete's information."""
        data = await self.request("/athlete")
        return _parse(Athlete, data)

    async def get_activities(self, page: int = 1, per_page: int = 50) -> List[ActivitySummary]:
        """Get one page of the athlete's activities."""
        params = {"page": str(page), "per_page": str(per_page)}
        data = await self.request("/athlete/activities", params=params)
        return _parse_list(ActivitySummary, data)

    async def get_all_activities(
        self,
        per_page: Optional[int] = None,
        max_pages: Optional[int] = None
    ) -> List[ActivitySummary]:
        """Get every activity by walking pages until a short page comes back.

        Args:
            per_page: Page size, defaults to the configured page size
            max_pages: Stop after this many pages (0 for no limit), defaults
                to the configured bound
        """
        per_page = per_page or self.page_size
        if max_pages is None:
            max_pages = self.max_pages

        activities: List[ActivitySummary] = []
        page = 1
        while True:
            batch = await self.get_activities(page=page, per_page=per_page)
            activities.extend(batch)
            if len(batch) < per_page:
                break
            if max_pages and page >= max_pages:
                logger.warning(f"Stopped fetching activities after {page} pages, results may be incomplete")
                break
            page += 1

        logger.info(f"Fetched {len(activities)} activities in {page} pages")
        return activities

    async def get_activity_by_id(self, activity_id: int) -> ActivityDetail:
        """Get detailed information about a specific activity."""
        data = await self.request(f"/activities/{activity_id}")
        return _parse(ActivityDetail, data)

    async def get_activity_laps(self, activity_id: int) -> List[Lap]:
        data = await self.request(f"/activities/{activity_id}/laps")
        return _parse_list(Lap, data)

    async def get_activity_streams(
        self,
        activity_id: int,
        keys: Sequence[str] = DEFAULT_STREAM_KEYS
    ) -> Dict[str, ActivityStream]:
        """Get activity streams keyed by stream type."""
        params = {
            "keys": ",".join(keys),
            "key_by_type": "true"
        }
        data = await self.request(f"/activities/{activity_id}/streams", params=params)
        if isinstance(data, list):
            streams = _parse_list(ActivityStream, data)
            if any(stream.type is None for stream in streams):
                raise InvalidPayloadError("stream without a type")
            return {stream.type: stream for stream in streams}
        if not isinstance(data, dict):
            raise InvalidPayloadError(f"expected streams keyed by type, got {type(data).__name__}")
        return {stream_type: _parse(ActivityStream, stream) for stream_type, stream in data.items()}

    async def get_athlete_stats(self, athlete_id: Optional[int] = None) -> AthleteStats:
        """Get the athlete's totals, fetching the profile first if no id is given."""
        if athlete_id is None:
            athlete = await self.get_athlete()
            athlete_id = athlete.id
        data = await self.request(f"/athletes/{athlete_id}/stats")
        return _parse(AthleteStats, data)
