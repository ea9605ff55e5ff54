# Overview: Cross-platform product fingerprints (32-bit string hashes of product ids).

"""
Fingerprint Service

WHY: The mobile ordering app stores products by an integer computed from
the product id string instead of the id itself. The server must reproduce
that integer bit-for-bit to map a cart line back to a catalog row.

CANONICAL ALGORITHM:
- iterate the UTF-16 code units of the id string
- h = (h << 5) - h + c, i.e. 31 * h + c, wrapped to a signed 32-bit int
- fingerprint = abs(h)

abs(INT32_MIN) is 2**31, one past the signed 32-bit range. The legacy
server produced that value and some stored rows carry it, so it is kept
as-is and the column is 64-bit.

ALTERNATE VARIANTS: older migration scripts matched products with two
other hashes. They are only used by the resolver's last-resort scan.
"""

from __future__ import annotations

import struct
from typing import Callable

INT32_MIN = -(2 ** 31)
_MASK32 = 0xFFFFFFFF


def _utf16_code_units(value: str) -> tuple[int, ...]:
    data = value.encode("utf-16-le", "surrogatepass")
    return struct.unpack(f"<{len(data) // 2}H", data)


def to_int32(value: int) -> int:
    """Wrap an arbitrary int to signed 32-bit two's complement."""
    value &= _MASK32
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash32(value: str, *, multiplier: int = 31, seed: int = 0) -> int:
    """Polynomial string hash over UTF-16 code units, wrapped at every step."""
    h = to_int32(seed)
    for unit in _utf16_code_units(value):
        h = to_int32(h * multiplier + unit)
    return h


def finalize(h: int) -> int:
    """abs() of the signed accumulator; INT32_MIN maps to 2**31."""
    return abs(h)


def compute_fingerprint(product_id) -> int:
    """Canonical fingerprint of a product id's string form."""
    return finalize(string_hash32(str(product_id)))


def unsigned_fingerprint(product_id) -> int:
    """Same accumulator read as an unsigned 32-bit value (clients that skipped abs())."""
    return string_hash32(str(product_id)) & _MASK32


def additive_fingerprint(product_id) -> int:
    """Plain sum of code units (multiplier 1), as used by an old backfill script."""
    return finalize(string_hash32(str(product_id), multiplier=1))


HASH_VARIANTS: dict[str, Callable[[object], int]] = {
    "canonical": compute_fingerprint,
    "unsigned": unsigned_fingerprint,
    "additive": additive_fingerprint,
}


def candidate_fingerprints(product_id) -> dict[str, int]:
    """All known variant fingerprints for a product id, keyed by variant name."""
    return {name: fn(product_id) for name, fn in HASH_VARIANTS.items()}
