"""Deterministic string hashing for rollout and variant bucketing.

The rolling hash mirrors the one used by the storefront front-end, so a given
user or session id lands in the same bucket on both sides.
"""

from __future__ import annotations

from typing import Optional

BUCKET_COUNT = 100


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def hash_string(seed: Optional[str]) -> int:
    """Map a string to a stable bucket in ``[0, 100)``.

    Iterates UTF-16 code units and accumulates
    ``hash = int32((hash << 5) - hash + unit)``.
    """
    if not seed:
        return 0

    data = seed.encode("utf-16-le", "surrogatepass")
    hash_val = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        hash_val = _to_int32((hash_val << 5) - hash_val + unit)

    return abs(hash_val) % BUCKET_COUNT


__all__ = ["BUCKET_COUNT", "hash_string"]
