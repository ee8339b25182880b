"""HMAC-SHA256 payload signatures.

Receivers recompute the HMAC of the raw request body with their copy of the
webhook secret and compare it to the ``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-ID"


def sign(secret: str, payload: bytes) -> str:
    """Compute the HMAC-SHA256 signature for a webhook payload.

    Args:
        secret: Shared secret for HMAC.
        payload: Exact bytes sent as the request body.

    Returns:
        Lowercase hex digest (64 characters).
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Verify a webhook signature in constant time.

    Args:
        payload: Raw request body as received.
        signature: Value of the signature header.
        secret: Shared secret for HMAC.

    Returns:
        True if signature is valid, False otherwise.
    """
    expected = sign(secret, payload)
    return hmac.compare_digest(expected, signature.strip().lower())
