"""HMAC-SHA256 signing and verification for webhook payloads.

Signatures are always computed over the exact bytes that go on the wire.
Re-serializing a payload before verifying can reorder keys or change
whitespace, so receivers must verify the raw request body.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="
_HEX_DIGEST_LENGTH = hashlib.sha256().digest_size * 2


def sign(payload: bytes, secret: str) -> str:
    """Compute the hex HMAC-SHA256 of a payload.

    Args:
        payload: Exact bytes to be transmitted.
        secret: Shared secret for HMAC.

    Returns:
        Lowercase hex digest (64 chars).
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(payload: bytes, secret: str) -> str:
    """Value for the X-Webhook-Signature header: "sha256=<hex_digest>"."""
    return f"{SIGNATURE_PREFIX}{sign(payload, secret)}"


def verify(payload: bytes, signature: str, secret: str) -> bool:
    """Verify an HMAC-SHA256 signature in constant time.

    Accepts the bare hex digest or the "sha256=" header form. Malformed
    input (wrong length, non-hex, non-ASCII, wrong type) returns False
    instead of raising.

    Args:
        payload: Bytes exactly as received.
        signature: Hex digest to check.
        secret: Shared secret for HMAC.

    Returns:
        True if signature is valid, False otherwise.
    """
    if not isinstance(signature, str) or not isinstance(payload, (bytes, bytearray)):
        return False

    candidate = signature.strip()
    if candidate.startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX) :]

    if len(candidate) != _HEX_DIGEST_LENGTH or not candidate.isascii():
        return False

    try:
        provided = bytes.fromhex(candidate)
    except ValueError:
        return False

    expected = hmac.new(
        key=secret.encode("utf-8"),
        msg=bytes(payload),
        digestmod=hashlib.sha256,
    ).digest()
    return hmac.compare_digest(expected, provided)


__all__ = ["SIGNATURE_PREFIX", "sign", "signature_header", "verify"]
