# Overview: Identifier generation for documents and order codes.

"""
Identifiers

Primary keys are 24-character lowercase hex strings shaped like the
document-store ObjectIds the mobile app was built against: 4 bytes of
epoch seconds followed by 8 random bytes. The mobile client hashes this
string form into its integer fingerprint, so the format must not change.

Order codes are short and human-legible ("ORD482913"). The unique index on
orders.order_code is the real guarantee; callers retry on collision.
"""

from __future__ import annotations

import re
import secrets
import time

from .time_utils import epoch_millis

OBJECT_ID_LENGTH = 24
_OBJECT_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def new_object_id() -> str:
    """Generate a time-prefixed 24-hex identifier."""
    seconds = int(time.time()) & 0xFFFFFFFF
    return f"{seconds:08x}{secrets.token_hex(8)}"


def is_object_id(value) -> bool:
    """True when value is a canonical (lowercase) 24-hex identifier string."""
    return isinstance(value, str) and bool(_OBJECT_ID_RE.match(value))


def generate_order_code(prefix: str = "ORD", *, attempt: int = 0) -> str:
    """
    Build an order code from the last six digits of the millisecond clock.

    Retries (attempt > 0) mix random digits into the clock value so two
    requests that collided in the same millisecond do not collide again.
    """
    millis = epoch_millis()
    if attempt:
        millis += secrets.randbelow(1_000_000)
    return f"{prefix}{millis % 1_000_000:06d}"
