"""Inbound HubSpot webhooks and manual sync triggers.

Thin layer over SyncEngine:
- POST /webhooks/hubspot: verify the v3 signature, parse one event or an
  array of events, and hand the batch to SyncEngine.process_batch
- POST /sync/deals/{deal_id}: run the deal UPSERT on demand
- POST /sync/contacts/{contact_id}: run a standalone contact upsert
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from src.dealsync.api.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_hubspot_signature
from src.dealsync.config import get_settings
from src.dealsync.core.monitoring import webhook_events_total
from src.dealsync.sync.engine import SyncEngine
from src.dealsync.sync.schemas import ContactSyncResult, SyncResult, WebhookEvent

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["sync"])

_webhook_payload = TypeAdapter(list[WebhookEvent] | WebhookEvent)


# ── Response Schemas ─────────────────────────────────────────────────────────


class WebhookBatchResponse(BaseModel):
    """Results for one webhook delivery, one entry per unique deal id."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    received: int
    processed: int
    results: list[SyncResult]


# ── Dependency Injection Helper ──────────────────────────────────────────────


def _get_sync_engine(request: Request) -> SyncEngine:
    """Retrieve SyncEngine from app.state, 503 if not available."""
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync engine not initialized",
        )
    return engine


# ── Webhook Endpoint ─────────────────────────────────────────────────────────


@router.post("/webhooks/hubspot", response_model=WebhookBatchResponse)
async def hubspot_webhook(request: Request) -> WebhookBatchResponse:
    """Receive a HubSpot deal webhook delivery.

    HubSpot may send a single event or an array; duplicates for the same
    deal are collapsed by the engine.
    """
    body = await request.body()
    settings = get_settings()

    if not verify_hubspot_signature(
        secret=settings.HUBSPOT_CLIENT_SECRET,
        method=request.method,
        uri=str(request.url),
        body=body,
        signature=request.headers.get(SIGNATURE_HEADER),
        timestamp=request.headers.get(TIMESTAMP_HEADER),
        max_age_seconds=settings.WEBHOOK_MAX_AGE_SECONDS,
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = _webhook_payload.validate_json(body)
    except ValidationError as exc:
        logger.warning("webhook.payload_invalid", errors=exc.error_count())
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        ) from exc

    events = payload if isinstance(payload, list) else [payload]
    webhook_events_total.inc(len(events))

    engine = _get_sync_engine(request)
    results = await engine.process_batch(events)

    return WebhookBatchResponse(received=len(events), processed=len(results), results=results)


# ── Manual Sync Endpoints ────────────────────────────────────────────────────


@router.post("/sync/deals/{deal_id}", response_model=SyncResult)
async def sync_deal(deal_id: str, request: Request) -> SyncResult:
    """Sync one deal now, outside the webhook flow."""
    engine = _get_sync_engine(request)
    return await engine.sync_deal(deal_id)


@router.post("/sync/contacts/{contact_id}", response_model=ContactSyncResult)
async def sync_contact(contact_id: str, request: Request) -> ContactSyncResult:
    """Upsert one HubSpot contact as an Airtable client."""
    engine = _get_sync_engine(request)
    return await engine.sync_contact(contact_id)
