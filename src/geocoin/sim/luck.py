from __future__ import annotations

import hashlib

LUCK_MANTISSA_BITS = 53


def luckiness(key: str) -> float:
    """Deterministic pseudo-random float in [0, 1) derived from a string key."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], byteorder="big", signed=False) >> (64 - LUCK_MANTISSA_BITS)
    return value / (1 << LUCK_MANTISSA_BITS)
