"""
keys.py - Public key canonicalization and comparison

A public key can arrive as 64-char hex (either case) or as a bech32 "npub"
string. Everything inside the engine works with lowercase hex; compare keys
only after passing both through canonical_public_key().
"""

from __future__ import annotations

import re
from typing import Optional

from bech32 import bech32_decode, bech32_encode, convertbits

from onboarding.runtime.types import Outcome

NPUB_HRP = "npub"
_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


class InvalidPublicKeyError(ValueError):
    """Raised when a value is neither hex nor npub encoding of a 32-byte key."""

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid public key: {reason}")


def canonical_public_key(value: str) -> str:
    """Return the lowercase hex form of a public key.

    Args:
        value: 64-char hex (any case) or bech32 npub. Surrounding whitespace
            is ignored.

    Raises:
        InvalidPublicKeyError: If the value is not a valid encoding.
    """
    if not isinstance(value, str):
        raise InvalidPublicKeyError(value, f"expected str, got {type(value).__name__}")

    candidate = value.strip()
    if _HEX_KEY_RE.match(candidate):
        return candidate.lower()

    if candidate.lower().startswith(NPUB_HRP + "1"):
        hrp, data = bech32_decode(candidate)
        if hrp != NPUB_HRP or data is None:
            raise InvalidPublicKeyError(value, "bad npub checksum or characters")
        decoded = convertbits(data, 5, 8, False)
        if decoded is None or len(decoded) != 32:
            raise InvalidPublicKeyError(value, "npub does not encode 32 bytes")
        return bytes(decoded).hex()

    raise InvalidPublicKeyError(value, "expected 64 hex characters or an npub")


def is_valid_public_key(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        canonical_public_key(value)
    except InvalidPublicKeyError:
        return False
    return True


def npub_encode(value: str) -> str:
    """Encode a public key (hex or npub) as npub."""
    raw = bytes.fromhex(canonical_public_key(value))
    return bech32_encode(NPUB_HRP, convertbits(raw, 8, 5))


def compare_public_keys(expected: str, actual: str) -> Outcome:
    """Compare two keys in any supported encoding.

    Returns:
        Outcome.KEY_MATCHES or Outcome.KEY_MISMATCH.

    Raises:
        InvalidPublicKeyError: If either side is not a valid key.
    """
    if canonical_public_key(expected) == canonical_public_key(actual):
        return Outcome.KEY_MATCHES
    return Outcome.KEY_MISMATCH


def truncate_public_key(value: Optional[str], start_chars: int = 8, end_chars: int = 8) -> str:
    """Shorten a key for logs and display ("abcd1234...9876fedc")."""
    if not value or not isinstance(value, str) or len(value) < start_chars + end_chars:
        return "invalid-pubkey"
    return f"{value[:start_chars]}...{value[-end_chars:]}"
