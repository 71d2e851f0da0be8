"""Unit tests for webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac

import pytest

from otto.signature import SIGNATURE_PREFIX, sign_payload, verify_signature

SECRET = b"It's a Secret to Everybody"
PAYLOAD = b"Hello, World!"
# Published example from the GitHub webhook validation documentation.
KNOWN_SIGNATURE = (
    "sha256=757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"
)


def test_known_vector_verifies() -> None:
    """The documented example signature is accepted."""
    assert verify_signature(SECRET, PAYLOAD, KNOWN_SIGNATURE), (
        "documented signature should verify"
    )


def test_sign_payload_matches_hmac_sha256() -> None:
    """sign_payload produces the prefixed hex HMAC-SHA256 digest."""
    expected = hmac.new(SECRET, PAYLOAD, hashlib.sha256).hexdigest()
    assert sign_payload(SECRET, PAYLOAD) == SIGNATURE_PREFIX + expected, (
        "signature should be sha256=<hex digest>"
    )


def test_sign_then_verify_round_trip() -> None:
    """A freshly signed payload verifies under the same secret."""
    body = b'{"action": "opened"}'
    assert verify_signature(SECRET, body, sign_payload(SECRET, body)), (
        "own signature should verify"
    )


@pytest.mark.parametrize("bit", [0, 7, 40, 103])
def test_single_bit_flip_in_payload_fails(bit: int) -> None:
    """Flipping any single payload bit invalidates the signature."""
    mutated = bytearray(PAYLOAD)
    mutated[bit // 8] ^= 1 << (bit % 8)
    assert not verify_signature(SECRET, bytes(mutated), KNOWN_SIGNATURE), (
        f"bit {bit} flip should fail verification"
    )


def test_wrong_secret_fails() -> None:
    """A different secret does not verify."""
    assert not verify_signature(b"other", PAYLOAD, KNOWN_SIGNATURE), (
        "wrong secret should fail"
    )


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        KNOWN_SIGNATURE.removeprefix(SIGNATURE_PREFIX),
        "sha1=" + KNOWN_SIGNATURE.removeprefix(SIGNATURE_PREFIX),
        "sha256=not-hex",
        "sha256=abc",
        "sha256=",
    ],
)
def test_malformed_headers_fail(header: str | None) -> None:
    """Missing prefix, odd-length or non-hex digests are rejected."""
    assert not verify_signature(SECRET, PAYLOAD, header), (
        f"malformed header {header!r} should fail"
    )


def test_uppercase_hex_digest_is_accepted() -> None:
    """Hex decoding is case-insensitive."""
    upper = SIGNATURE_PREFIX + KNOWN_SIGNATURE.removeprefix(SIGNATURE_PREFIX).upper()
    assert verify_signature(SECRET, PAYLOAD, upper), "uppercase hex should verify"
