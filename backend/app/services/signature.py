"""
Webhook signature verification for Postmark inbound deliveries.

Postmark signs each delivery with HMAC-SHA256 over the raw request body,
keyed by the shared webhook secret, and sends the base64 digest in one of a
few header names. The signature must be checked against the exact bytes
received: parsing and re-serializing the JSON would change them.

Unsigned mode
-------------
When no secret is configured, verification is skipped only if
allow_unsigned is True (development). Production settings turn it off, so
a missing secret rejects every delivery instead of silently accepting them.
"""

import base64
import hashlib
import hmac
import logging
from typing import Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Checked in this order; the first header present wins.
SIGNATURE_HEADERS: tuple[str, ...] = (
    "x-postmark-signature",
    "x-pm-signature",
    "postmark-signature",
    "signature",
)


def compute_signature(raw_body: Union[str, bytes], secret: str) -> str:
    """Return the base64 HMAC-SHA256 of raw_body keyed by secret."""
    body = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    raw_body: Union[str, bytes],
    signature: Optional[str],
    secret: Optional[str],
    allow_unsigned: bool = True,
) -> bool:
    """
    Verify a webhook signature.

    Returns:
        True when the signature matches (or when no secret is configured and
        allow_unsigned is True), False otherwise. Never raises.
    """
    if not secret:
        if allow_unsigned:
            logger.warning("Webhook secret not configured, skipping signature verification")
            return True
        logger.error(
            "Webhook secret not configured and unsigned webhooks are disabled; "
            "rejecting delivery"
        )
        return False

    if not signature:
        logger.warning("Webhook signature header missing")
        return False

    try:
        expected = compute_signature(raw_body, secret)
        # compare_digest runs in constant time for equal-length inputs
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("ascii"))
    except Exception as e:
        logger.error(f"Error verifying webhook signature: {e}")
        return False


def extract_signature(
    headers: Mapping[str, Union[str, Sequence[str]]],
) -> Optional[str]:
    """
    Pull the webhook signature out of a request header mapping.

    Header names are matched case-insensitively against SIGNATURE_HEADERS in
    priority order. List values (multi-valued headers) yield their first
    element.
    """
    lowered: dict[str, Union[str, Sequence[str]]] = {}
    for name, value in headers.items():
        lowered.setdefault(name.lower(), value)

    for header_name in SIGNATURE_HEADERS:
        value = lowered.get(header_name)
        if not value:
            continue
        if isinstance(value, (list, tuple)):
            return value[0]
        return value

    return None


class SignatureVerifier:
    """Binds a secret and the unsigned-mode flag for repeated verification."""

    def __init__(self, secret: Optional[str], allow_unsigned: bool = False):
        self.secret = secret or ""
        self.allow_unsigned = allow_unsigned

    def verify(self, raw_body: Union[str, bytes], signature: Optional[str]) -> bool:
        return verify_signature(
            raw_body,
            signature,
            self.secret,
            allow_unsigned=self.allow_unsigned,
        )
