from __future__ import annotations

import hashlib
import hmac
import json
import time

DEFAULT_TOLERANCE_SECONDS = 300


class SignatureVerificationError(ValueError):
    pass


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{int(timestamp)}.".encode("utf-8") + (payload or b"")
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def _parse_header(header: str) -> tuple[int | None, list[str]]:
    timestamp = None
    signatures: list[str] = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def construct_event(
    payload: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> dict:
    """Verify a ``Stripe-Signature`` header and return the decoded event."""
    if not secret:
        raise SignatureVerificationError("webhook secret is not configured")
    if not header:
        raise SignatureVerificationError("missing signature header")
    timestamp, signatures = _parse_header(header)
    if timestamp is None or not signatures:
        raise SignatureVerificationError("unable to extract timestamp and signatures from header")

    expected = compute_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise SignatureVerificationError("no signatures found matching the expected signature for payload")

    current = int(now if now is not None else time.time())
    if tolerance and timestamp < current - int(tolerance):
        raise SignatureVerificationError("timestamp outside the tolerance zone")

    try:
        event = json.loads((payload or b"").decode("utf-8"))
    except ValueError as e:
        raise SignatureVerificationError(f"invalid payload: {e}")
    if not isinstance(event, dict):
        raise SignatureVerificationError("invalid payload: event must be an object")
    return event
