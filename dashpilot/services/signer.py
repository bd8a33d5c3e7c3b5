"""HMAC-SHA256 signing of outbound webhook bodies."""
from __future__ import annotations

import hashlib
import hmac


def _key_bytes(secret: str | bytes) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


def compute_signature(payload: bytes, secret: str | bytes) -> str:
    """Compute the hex HMAC-SHA256 of the exact bytes that will be sent.

    Args:
        payload: Serialized request body.
        secret: Shared secret of the destination.

    Returns:
        Lowercase hex digest (64 characters).
    """
    return hmac.new(key=_key_bytes(secret), msg=payload, digestmod=hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, secret: str | bytes, signature: str) -> bool:
    """Check a signature in constant time."""
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def sign(payload: bytes, secret: str | bytes | None) -> str | None:
    """Sign ``payload`` if a secret is configured, otherwise return None."""
    if not secret:
        return None
    return compute_signature(payload, secret)


def signature_headers(payload: bytes, secret: str | bytes | None, header_name: str) -> dict[str, str]:
    """Return the signature header for a payload, or no headers when unsigned."""
    signature = sign(payload, secret)
    if signature is None:
        return {}
    return {header_name: signature}
