from __future__ import annotations

import hashlib

# 53 bits fit a float mantissa exactly, so the draw never rounds up to 1.0.
_DRAW_BITS = 53


def luck(key: str) -> float:
    """Deterministic draw in [0, 1) from a string key; no seed, no state."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], byteorder="big", signed=False) >> (64 - _DRAW_BITS)
    return value / float(1 << _DRAW_BITS)
