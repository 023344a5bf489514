"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from stravadash.api.routes import router as api_router
from stravadash.config import Settings
from stravadash.services.dashboard_service import DashboardStore
from stravadash.services.strava_service import StravaService
from stravadash.services.token_store import TokenStore

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """Build the application.

    Settings are read from the environment at startup unless given. The
    Strava service and the dashboard cache live on ``app.state`` for the
    lifetime of the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or Settings()
        logging.basicConfig(format=LOG_FORMAT, level=app_settings.log_level.upper())

        client = httpx.AsyncClient(timeout=app_settings.strava_request_timeout, transport=transport)
        strava_service = StravaService(
            app_settings,
            token_store=TokenStore(app_settings.strava_token_file),
            client=client
        )
        app.state.settings = app_settings
        app.state.strava_service = strava_service
        app.state.dashboard = DashboardStore(strava_service)
        logger.info(f"Strava Dash started (authenticated: {strava_service.is_authenticated})")
        yield
        await client.aclose()

    app = FastAPI(
        title="Strava Dash",
        description="Personal Strava dashboard API: athlete profile, activities, statistics and routes",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Include API routes
    app.include_router(api_router, prefix="/api/v1", tags=["Strava API"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": "Strava Dash",
            "version": "0.1.0"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    run_settings = Settings()
    uvicorn.run(
        "stravadash.main:app",
        host=run_settings.app_host,
        port=run_settings.app_port,
        reload=run_settings.app_debug
    )
