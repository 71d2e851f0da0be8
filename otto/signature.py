"""Webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the raw request body and
sends the hex digest in ``X-Hub-Signature-256`` as ``sha256=<hex>``. The check
runs on the raw bytes before the payload is decoded or dispatched.

Usage
-----
>>> header = sign_payload(b"s3cret", b'{"zen": "hi"}')
>>> verify_signature(b"s3cret", b'{"zen": "hi"}', header)
True

"""

from __future__ import annotations

import hashlib
import hmac

__all__ = ["SIGNATURE_HEADER", "SIGNATURE_PREFIX", "sign_payload", "verify_signature"]

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def _digest(secret: bytes, payload: bytes) -> bytes:
    return hmac.new(secret, payload, hashlib.sha256).digest()


def sign_payload(secret: bytes, payload: bytes) -> str:
    """Return the ``sha256=<hex>`` header value for *payload*."""
    return SIGNATURE_PREFIX + _digest(secret, payload).hex()


def verify_signature(secret: bytes, payload: bytes, signature: str | None) -> bool:
    """Return whether *signature* authenticates *payload* under *secret*.

    Parameters
    ----------
    secret
        Shared webhook secret.
    payload
        Exact raw request body.
    signature
        Header value; must carry the ``sha256=`` prefix.

    Returns
    -------
    bool
        ``True`` only for a well-formed, matching digest. A missing prefix
        or undecodable hex yields ``False``.

    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    try:
        received = bytes.fromhex(signature.removeprefix(SIGNATURE_PREFIX))
    except ValueError:
        return False
    return hmac.compare_digest(received, _digest(secret, payload))
