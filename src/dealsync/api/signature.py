"""HubSpot webhook signature verification (v3).

HubSpot signs each request with base64(HMAC-SHA256(client_secret,
method + uri + body + timestamp)) in X-HubSpot-Signature-v3, where the
timestamp is X-HubSpot-Request-Timestamp in epoch milliseconds. Requests
older than the freshness window are rejected even when the signature
matches.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time

import structlog

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-HubSpot-Signature-v3"
TIMESTAMP_HEADER = "X-HubSpot-Request-Timestamp"


def compute_signature(secret: str, method: str, uri: str, body: bytes, timestamp: str) -> str:
    """Return the base64 v3 signature HubSpot would send for this request."""
    message = method.upper().encode("utf-8") + uri.encode("utf-8") + body + timestamp.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_hubspot_signature(
    secret: str,
    method: str,
    uri: str,
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    max_age_seconds: int = 300,
    now_ms: int | None = None,
) -> bool:
    """Check a v3 signature and its freshness.

    An empty secret disables verification and every request is accepted.

    Args:
        secret: HubSpot app client secret.
        method: HTTP method of the inbound request.
        uri: Full request URL, as HubSpot called it.
        body: Raw request body.
        signature: X-HubSpot-Signature-v3 header value.
        timestamp: X-HubSpot-Request-Timestamp header value (ms).
        max_age_seconds: Freshness window.
        now_ms: Current time in ms, for tests.

    Returns:
        True when the request is authentic and fresh.
    """
    if not secret:
        logger.warning("webhook.signature_unverified", reason="no client secret configured")
        return True

    if not signature or not timestamp:
        logger.warning("webhook.signature_missing")
        return False

    try:
        sent_ms = int(timestamp)
    except ValueError:
        logger.warning("webhook.timestamp_invalid", timestamp=timestamp)
        return False

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if abs(now_ms - sent_ms) > max_age_seconds * 1000:
        logger.warning("webhook.timestamp_stale", timestamp=timestamp)
        return False

    expected = compute_signature(secret, method, uri, body, timestamp)
    if not hmac.compare_digest(expected, signature):
        logger.warning("webhook.signature_mismatch")
        return False
    return True
