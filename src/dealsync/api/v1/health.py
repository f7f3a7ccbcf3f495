"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks. Readiness
reports whether HubSpot and Airtable credentials are configured and whether
the sync engine was built at startup.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.dealsync.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


def _check_dependencies(request: Request) -> dict:
    settings = get_settings()
    return {
        "hubspot": "ok" if settings.hubspot_configured else "not_configured",
        "airtable": "ok" if settings.airtable_configured else "not_configured",
        "sync_engine": "ok" if getattr(request.app.state, "sync_engine", None) else "not_initialized",
        "webhook_signature": "enabled" if settings.HUBSPOT_CLIENT_SECRET else "disabled",
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: credentials present and engine initialized.

    Returns 200 if ready, 503 otherwise.
    """
    checks = _check_dependencies(request)
    ready = (
        checks["hubspot"] == "ok"
        and checks["airtable"] == "ok"
        and checks["sync_engine"] == "ok"
    )

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "degraded",
            "checks": checks,
        },
    )
