"""Webhook signature verification.

Outbound lifecycle notifications are signed with HMAC-SHA256.

    Header:          "t=<unix_seconds>,v1=<hmac_hex>"
    Signed payload:  "<timestamp>.<raw_body>"

verify_webhook_signature() is total: any malformed input yields False, it
never raises. Parsing the body as JSON is the caller's job and happens only
after the signature checks out.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import time

DEFAULT_TOLERANCE_SECONDS = 300

# Unix seconds, at most 15 digits.
_TIMESTAMP_RE = re.compile(r"[0-9]{1,15}")


def compute_signature(body: str | bytes, secret: str, timestamp: int) -> str:
    """Return the hex HMAC-SHA256 of "<timestamp>.<body>" under secret."""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    to_sign = f"{timestamp}.{body}".encode()
    return hmac.new(secret.encode(), to_sign, hashlib.sha256).hexdigest()


def sign_webhook_payload(body: str | bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header value for body, as the sender would."""
    if timestamp is None:
        timestamp = int(time.time())
    return f"t={timestamp},v1={compute_signature(body, secret, timestamp)}"


def _header_field(parts: list[str], prefix: str) -> str | None:
    for part in parts:
        part = part.strip()
        if part.startswith(prefix):
            return part[len(prefix):]
    return None


def verify_webhook_signature(
    body: str | bytes,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> bool:
    """Check that body was signed with secret recently enough.

    Args:
        body: Raw request body, exactly as received.
        signature_header: Value of the signature header.
        secret: Shared webhook signing secret.
        tolerance_seconds: Max allowed |now - timestamp| (replay/skew window).
        now: Current unix seconds; defaults to the system clock.

    Returns:
        True if the signature is valid and fresh, False otherwise.
    """
    if not isinstance(signature_header, str) or not isinstance(secret, str) or not secret:
        return False
    if not isinstance(body, str | bytes):
        return False

    parts = signature_header.split(",")
    raw_timestamp = _header_field(parts, "t=")
    provided = _header_field(parts, "v1=")
    if raw_timestamp is None or provided is None:
        return False

    if not _TIMESTAMP_RE.fullmatch(raw_timestamp):
        return False
    timestamp = int(raw_timestamp)

    current = int(time.time()) if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        return False

    try:
        expected = compute_signature(body, secret, timestamp)
    except UnicodeError:
        return False

    provided_bytes = provided.encode("utf-8", errors="replace")
    expected_bytes = expected.encode()
    # compare_digest needs equal lengths to be meaningful
    if len(provided_bytes) != len(expected_bytes):
        return False
    return hmac.compare_digest(provided_bytes, expected_bytes)
