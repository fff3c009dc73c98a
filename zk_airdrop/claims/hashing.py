"""
Hashing into the SNARK scalar field.

Digests are SHA3-256 shifted right by 8 bits, so every output is a 248-bit
value and always a valid BN254 field element.
"""

from __future__ import annotations

import hashlib

from .config import EXTERNAL_NULLIFIER_DOMAIN, SNARK_SCALAR_FIELD

FIELD_BYTES = 32


def hash_to_field(data: bytes) -> int:
    """Map arbitrary bytes to a field element."""
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("data must be bytes")
    digest = hashlib.sha3_256(bytes(data)).digest()
    return int.from_bytes(digest, "big") >> 8


def field_to_bytes(value: int) -> bytes:
    return require_field_element(value, "value").to_bytes(FIELD_BYTES, "big")


def hash_fields(domain: bytes, *elements: int) -> int:
    """Hash a domain separator and a sequence of field elements."""
    payload = bytearray(domain)
    for element in elements:
        payload.extend(field_to_bytes(element))
    return hash_to_field(bytes(payload))


def hash_address(address: str) -> int:
    """
    Signal for a receiver address.

    Addresses are compared case-insensitively, so ``0xAbC`` and ``0xabc``
    bind to the same signal.
    """
    if not isinstance(address, str) or not address:
        raise ValueError("address must be a non-empty string")
    return hash_to_field(address.strip().lower().encode("utf-8"))


def derive_external_nullifier(airdrop_id: int) -> int:
    """Scope value binding a nullifier to one airdrop."""
    if isinstance(airdrop_id, bool) or not isinstance(airdrop_id, int):
        raise TypeError("airdrop_id must be int")
    if airdrop_id < 1:
        raise ValueError("airdrop_id must be >= 1")
    return hash_to_field(EXTERNAL_NULLIFIER_DOMAIN + airdrop_id.to_bytes(FIELD_BYTES, "big"))


def is_field_element(value: object) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < SNARK_SCALAR_FIELD
    )


def require_field_element(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{label} must be int")
    if not 0 <= value < SNARK_SCALAR_FIELD:
        raise ValueError(f"{label} must be in the SNARK scalar field")
    return value


def short_hex(value: int) -> str:
    """First 16 hex digits of a field element, for log lines."""
    return f"{value:064x}"[:16]
