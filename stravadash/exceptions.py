"""Exceptions raised when talking to the Strava API."""

from typing import Optional


class StravaAPIError(Exception):
    """Custom exception for Strava API errors."""
    pass


class TokenRefreshError(StravaAPIError):
    """The token endpoint rejected a code or refresh token exchange.

    Credentials held before the exchange are left untouched.
    """

    def __init__(self, status_code: Optional[int], detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            super().__init__(f"Strava token exchange failed: {detail}")
        else:
            super().__init__(f"Strava token exchange failed: {status_code} {detail}".rstrip())


class ApiResponseError(StravaAPIError):
    """Non-success response from an API endpoint, after any 401 retry."""

    def __init__(self, status_code: int, reason_phrase: str = ""):
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        super().__init__(f"Strava API error: {status_code} {reason_phrase}".rstrip())


class StravaConnectionError(StravaAPIError):
    """The Strava API could not be reached."""
    pass


class InvalidPayloadError(StravaAPIError):
    """Successful response whose body is not the payload Strava documents."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"Invalid Strava API payload: {detail}")
