from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def build_signature(secret: str, body: bytes) -> str:
    """Value Meta sends in `x-hub-signature-256` for `body`."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check the webhook HMAC-SHA256 signature in constant time.

    With no app secret configured every request is accepted, so environments
    without the secret provisioned keep receiving webhooks.
    """
    if not secret:
        logger.warning("WHATSAPP_APP_SECRET not set, webhook signature not verified")
        return True
    if not signature:
        logger.warning("Webhook signature header missing")
        return False
    return hmac.compare_digest(build_signature(secret, body).encode(), signature.strip().encode())
