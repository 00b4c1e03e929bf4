"""FastAPI application entrypoint.

Configures logging and CORS, includes routers, and exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .deps import get_settings
from .routers import analytics as analytics_router
from . import schemas

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    app = FastAPI(
        title="keylens API",
        description="""
        Analytics queries for the API keys, key verifications, request logs
        and ratelimit dashboards.

        Dashboard filter state goes in; the service validates it, resolves
        the key scope, picks a time bucket size for the requested window and
        runs one aggregation query.
        """,
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(analytics_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="""
        Simple health check endpoint to verify the API is running.

        Does not touch the row store or the aggregation executor.
        """
    )
    def health():
        return schemas.HealthResponse(status="ok")

    if not settings.AGGREGATION_EXECUTOR_URL:
        logger.warning("[STARTUP] AGGREGATION_EXECUTOR_URL not set - timeseries queries will return 503")
    if not settings.KEYS_DATABASE_URL:
        logger.warning("[STARTUP] KEYS_DATABASE_URL not set - key-scoped domains will return 503")

    return app


app = create_app()
