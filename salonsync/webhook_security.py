"""
Webhook Security Module

Shared-secret verification for webhook endpoints:
- Secret accepted from a dedicated header or an ``Authorization: Bearer`` header
- Constant-time comparison (prevents timing attacks)
- Raw body returned so callers can parse it after verification
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

BOOKING_EVENTS_SECRET_HEADER = "x-booking-webhook-secret"


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token part of an ``Authorization: Bearer <token>`` header"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def verify_shared_secret_webhook(
    request: Request,
    secret: str,
    header_name: str = BOOKING_EVENTS_SECRET_HEADER,
    raise_on_failure: bool = False,
) -> tuple[bool, bytes]:
    """
    Verify a webhook that authenticates with a pre-shared secret.

    Args:
        request: FastAPI request object
        secret: Expected secret
        header_name: Header carrying the secret; Bearer auth is accepted too
        raise_on_failure: If True, raises HTTPException on failure

    Returns:
        Tuple of (is_valid, raw_body)
    """
    raw_body = await request.body()

    provided = request.headers.get(header_name) or extract_bearer_token(
        request.headers.get("authorization")
    )

    if not provided:
        logger.warning(f"🚫 Webhook secret missing on {request.url.path}")
    elif constant_time_compare(provided, secret):
        return True, raw_body
    else:
        logger.warning(f"🚫 Invalid webhook secret on {request.url.path}")

    if raise_on_failure:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return False, raw_body
