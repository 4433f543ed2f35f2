"""
Square webhook signature verification.

Square signs each notification with HMAC-SHA1 over the notification URL
followed by the raw request body, base64 encoded, and sends it in the
x-square-signature header. The body must be the exact bytes received.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional, Union

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-square-signature"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(signature_key: str, notification_url: str, raw_body: Union[str, bytes]) -> str:
    """Base64 HMAC-SHA1 of notification_url + raw_body."""
    digest = hmac.new(
        signature_key.encode("utf-8"),
        _to_bytes(notification_url) + _to_bytes(raw_body),
        hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    signature_key: str,
    notification_url: str,
    provided_signature: Optional[str],
    raw_body: Union[str, bytes]
) -> bool:
    """
    True only if provided_signature matches. Never raises.
    """
    if not signature_key or not provided_signature:
        return False

    try:
        expected = compute_signature(signature_key, notification_url, raw_body)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not compute webhook signature: {e}")
        return False

    # Compare in constant time
    return hmac.compare_digest(expected.encode("ascii"), _to_bytes(provided_signature))


def build_notification_url(host: str, path: str, override: Optional[str] = None) -> str:
    """
    The URL Square signed: https + Host header + webhook mount path,
    unless a fixed URL is configured (e.g. behind a rewriting proxy).
    """
    if override:
        return override
    if not path.startswith("/"):
        path = "/" + path
    return f"https://{host}{path}"
