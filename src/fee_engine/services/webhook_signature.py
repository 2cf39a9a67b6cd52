"""HMAC signature verification for gateway webhooks."""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Check a webhook signature header against the raw body.

    An empty secret disables verification (local development only).
    """
    if not secret:
        logger.warning("Webhook secret not configured; skipping signature verification")
        return True
    if not signature:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
