"""Application configuration using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Strava API Configuration
    strava_client_id: str = Field(..., description="Strava API Client ID")
    strava_client_secret: str = Field(..., description="Strava API Client Secret")
    strava_access_token: str = Field(default="", description="Fallback access token when none is stored")
    strava_refresh_token: str = Field(default="", description="Fallback refresh token when none is stored")
    strava_token_expires_at: int = Field(default=0, description="Fallback token expiration timestamp")
    strava_token_file: str = Field(default="data/strava_tokens.json", description="Path to store tokens")
    strava_api_base_url: str = Field(default="https://www.strava.com/api/v3", description="Strava API Base URL")
    strava_oauth_url: str = Field(default="https://www.strava.com/oauth", description="Strava OAuth Base URL")
    strava_redirect_uri: str = Field(
        default="http://localhost:8000/api/v1/auth/callback",
        description="OAuth redirect URI registered with Strava"
    )
    strava_scope: str = Field(default="read,activity:read_all", description="OAuth scopes to request")

    # Client behaviour
    strava_request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    strava_token_expiry_margin: int = Field(
        default=300, ge=0, description="Seconds before expiry at which a token counts as expired"
    )
    strava_page_size: int = Field(default=100, ge=1, le=200, description="Page size used to fetch all activities")
    strava_max_activity_pages: int = Field(
        default=100, ge=0, description="Upper bound on pages fetched for all activities (0 = unbounded)"
    )

    # Application Configuration
    app_host: str = Field(default="0.0.0.0", description="Application host")
    app_port: int = Field(default=8000, description="Application port")
    app_debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
