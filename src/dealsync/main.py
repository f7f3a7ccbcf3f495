"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events that build the HubSpot gateway, Airtable store, and sync
engine, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.dealsync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.dealsync.api.v1.router import router as v1_router
from src.dealsync.config import Settings, get_settings
from src.dealsync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.dealsync.sync.airtable import AirtableStore
from src.dealsync.sync.engine import SyncEngine
from src.dealsync.sync.hubspot import HubSpotGateway


def build_sync_engine(settings: Settings) -> SyncEngine:
    """Wire the HubSpot gateway and Airtable store into a SyncEngine."""
    config = settings.to_sync_config()
    source = HubSpotGateway(
        access_token=settings.HUBSPOT_ACCESS_TOKEN,
        stage_map=config.stage_map,
        base_url=settings.HUBSPOT_BASE_URL,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        max_contacts=config.max_associated_contacts,
    )
    target = AirtableStore(
        api_key=settings.AIRTABLE_API_KEY,
        base_id=settings.AIRTABLE_BASE_ID,
        schema=settings.to_airtable_schema(),
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    return SyncEngine(source=source, target=target, config=config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and Sentry, build the sync engine."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Sync Engine ─────────────────────────────────────────────────────
    # Without credentials the app still starts; sync routes answer 503.
    if settings.hubspot_configured and settings.airtable_configured:
        app.state.sync_engine = build_sync_engine(settings)
        log.info("sync.engine_initialized", environment=settings.ENVIRONMENT.value)
    else:
        app.state.sync_engine = None
        log.warning(
            "sync.engine_not_configured",
            hubspot=settings.hubspot_configured,
            airtable=settings.airtable_configured,
        )

    yield

    log.info("app.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="DealSync API",
        version="0.1.0",
        description="One-way HubSpot deal sync into Airtable companies, clients, and projects",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
