"""Authentication utilities for Strava OAuth."""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from stravadash.config import Settings
from stravadash.exceptions import StravaConnectionError, TokenRefreshError
from stravadash.models.strava import StravaTokens

logger = logging.getLogger(__name__)


class StravaAuthHelper:
    """Helper class for Strava OAuth authentication flow."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.client_id = settings.strava_client_id
        self.client_secret = settings.strava_client_secret
        self.oauth_url = settings.strava_oauth_url.rstrip("/")
        self.redirect_uri = settings.strava_redirect_uri
        self.scope = settings.strava_scope
        self.client = client

    @property
    def token_url(self) -> str:
        return f"{self.oauth_url}/token"

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        """Generate Strava OAuth authorization URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "approval_prompt": "auto"
        }

        if state:
            params["state"] = state

        return f"{self.oauth_url}/authorize?{urlencode(params)}"

    async def _post_token(self, data: dict) -> StravaTokens:
        try:
            response = await self.client.post(self.token_url, data=data)
        except httpx.RequestError as e:
            raise StravaConnectionError(f"Request error: {e}") from e

        if not response.is_success:
            raise TokenRefreshError(response.status_code, response.reason_phrase)

        try:
            return StravaTokens(**response.json())
        except (ValueError, ValidationError) as e:
            raise TokenRefreshError(response.status_code, f"malformed token response: {e}") from e

    async def exchange_code_for_token(self, code: str) -> StravaTokens:
        """Exchange authorization code for access token."""
        return await self._post_token({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code"
        })

    async def refresh_token(self, refresh_token: str) -> StravaTokens:
        """Refresh access token using refresh token."""
        return await self._post_token({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token"
        })

    async def deauthorize(self, access_token: str) -> bool:
        """Revoke the application's access for this athlete."""
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await self.client.post(f"{self.oauth_url}/deauthorize", headers=headers)
        except httpx.RequestError as e:
            logger.warning(f"Deauthorization request failed: {e}")
            return False
        return response.is_success
