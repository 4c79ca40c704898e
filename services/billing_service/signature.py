"""Stripe webhook signature verification.

Stripe signs ``f"{timestamp}.{raw_body}"`` with HMAC-SHA256 and sends

    Stripe-Signature: t=1700000000,v1=<hex>[,v1=<hex>...]

Every configured secret is tried so a rotated secret keeps working while
the old one is still in use.
"""

import hashlib
import hmac
from typing import Iterable, Optional

from libs.common.datetime_utils import unix_now

SIGNATURE_SCHEME = "v1"


class SignatureVerificationError(Exception):
    """The webhook body could not be authenticated."""


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    signed_payload = str(timestamp).encode("utf-8") + b"." + raw_body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureVerificationError("Malformed timestamp in signature header")
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)

    if timestamp is None:
        raise SignatureVerificationError("No timestamp in signature header")
    if not signatures:
        raise SignatureVerificationError(f"No {SIGNATURE_SCHEME} signature in header")
    return timestamp, signatures


def verify_stripe_signature(
    raw_body: bytes,
    header: Optional[str],
    secrets: Iterable[str],
    tolerance: int = 300,
    now: Optional[int] = None,
) -> int:
    """
    Check ``header`` against ``raw_body`` for any of ``secrets``.

    Returns the signed timestamp. Raises SignatureVerificationError when the
    header is missing or malformed, no secret matches, or the timestamp is
    further than ``tolerance`` seconds from ``now``.
    """
    secrets = [s for s in secrets if s]
    if not secrets:
        raise SignatureVerificationError("No webhook secret configured")
    if not header:
        raise SignatureVerificationError("Missing Stripe-Signature header")

    timestamp, signatures = _parse_header(header)

    matched = any(
        hmac.compare_digest(compute_signature(secret, timestamp, raw_body), candidate)
        for secret in secrets
        for candidate in signatures
    )
    if not matched:
        raise SignatureVerificationError("No signature matches the payload")

    now = unix_now() if now is None else now
    if tolerance > 0 and abs(now - timestamp) > tolerance:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    return timestamp


def build_signature_header(secret: str, raw_body: bytes, timestamp: Optional[int] = None) -> str:
    """Produce a header the way Stripe would; used by tooling and tests."""
    timestamp = unix_now() if timestamp is None else timestamp
    return f"t={timestamp},{SIGNATURE_SCHEME}={compute_signature(secret, timestamp, raw_body)}"
