"""Stripe webhook signature verification (v1 scheme).

Stripe sends a ``Stripe-Signature`` header of the form::

    t=<unix-seconds>,v1=<hex>[,v1=<hex>...]

The expected signature is HMAC-SHA256(secret, "<t>." + raw_body), hex encoded.
Several ``v1`` values are sent while a secret is being rolled; a delivery is
authentic when any of them matches.

Signing and comparison are delegated to ``stripe.WebhookSignature``. This
module adds what the SDK does not do:

- Headers must carry exactly one integer ``t=`` value
- ``v1`` values compare case-insensitively
- The tolerance applies in both directions, so future timestamps are rejected
- Malformed headers and mismatches return False, they never raise
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import stripe

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class SignatureHeader:
    """Parsed Stripe-Signature header."""

    timestamp: int
    signatures: tuple[str, ...]


def parse_signature_header(header: Optional[str]) -> Optional[SignatureHeader]:
    """Parse a Stripe-Signature header.

    Args:
        header: Raw header value

    Returns:
        SignatureHeader, or None when the header has no single integer
        timestamp or no v1 signatures.
    """
    if not header:
        return None

    timestamps: list[str] = []
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key == "t":
            timestamps.append(value)
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)

    if len(timestamps) != 1 or not signatures:
        return None

    try:
        timestamp = int(timestamps[0])
    except ValueError:
        return None

    return SignatureHeader(timestamp=timestamp, signatures=tuple(signatures))


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    """Compute the lowercase hex v1 signature for a payload."""
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}"
    return stripe.WebhookSignature._compute_signature(signed_payload, secret)


def build_signature_header(
    payload: bytes,
    secret: str,
    timestamp: Optional[int] = None,
) -> str:
    """Build a Stripe-Signature header value for a payload.

    Used to sign test deliveries and replay captured events locally.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(payload, secret, ts)}"


def verify_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    *,
    tolerance: Optional[int] = None,
    now: Optional[float] = None,
) -> bool:
    """Check that a webhook delivery was signed with ``secret``.

    Args:
        payload: Raw request body bytes
        header: Value of the Stripe-Signature header
        secret: Webhook signing secret (whsec_...)
        tolerance: Maximum age of the signature timestamp in seconds.
            None or 0 disables the freshness check.
        now: Current unix time (defaults to time.time())

    Returns:
        True if any v1 signature matches and the timestamp is fresh enough.
    """
    if not secret:
        logger.warning("Webhook secret is empty, rejecting delivery")
        return False

    parsed = parse_signature_header(header)
    if parsed is None:
        logger.warning("Malformed Stripe-Signature header")
        return False

    # The SDK only rejects stale timestamps against the wall clock
    if tolerance:
        current = time.time() if now is None else now
        if abs(current - parsed.timestamp) > tolerance:
            logger.warning(
                "Stripe-Signature timestamp outside tolerance: %s (tolerance=%ss)",
                parsed.timestamp,
                tolerance,
            )
            return False

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Webhook body is not valid UTF-8")
        return False

    candidates = [signature.lower() for signature in parsed.signatures if signature.isascii()]
    if not candidates:
        logger.warning("No usable v1 signatures in Stripe-Signature header")
        return False

    normalized = ",".join(
        [f"t={parsed.timestamp}"] + [f"{SIGNATURE_SCHEME}={candidate}" for candidate in candidates]
    )
    try:
        stripe.WebhookSignature.verify_header(body, normalized, secret, tolerance=None)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        return False
    return True
