"""
Record identifiers.

ULIDs: 48-bit millisecond timestamp + 80 random bits, Crockford base32,
26 characters. Sort order follows creation time.
"""

import os
import time


CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH = 26


def new_ulid(timestamp_ms: int | None = None) -> str:
    """Generate a ULID string."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    if not 0 <= timestamp_ms < 2 ** 48:
        raise ValueError(f"timestamp out of range: {timestamp_ms}")
    value = (timestamp_ms << 80) | int.from_bytes(os.urandom(10), "big")
    chars = []
    for _ in range(ULID_LENGTH):
        chars.append(CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))
