"""
Compact printable peer identifiers.

A relay-lifetime counter rendered in a 64-symbol alphabet. Ids are unique
only while the relay process runs.
"""

from __future__ import annotations

from constants import SHORT_ID_ALPHABET


def int_to_short_id(num: int) -> str:
    """
    Encode a non-negative integer, most significant digit first.

    0 -> "A", 63 -> "/", 64 -> "BA".
    """
    if isinstance(num, bool) or not isinstance(num, int) or num < 0:
        raise ValueError(f"Short id source must be a non-negative int, got {num!r}")

    base = len(SHORT_ID_ALPHABET)
    if num == 0:
        return SHORT_ID_ALPHABET[0]

    digits: list[str] = []
    while num > 0:
        num, remainder = divmod(num, base)
        digits.append(SHORT_ID_ALPHABET[remainder])
    return "".join(reversed(digits))


class ShortIdAllocator:
    """Hands out ids in counter order. Never reuses a value."""

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be >= 0")
        self._next = start

    def allocate(self) -> str:
        peer_id = int_to_short_id(self._next)
        self._next += 1
        return peer_id

    @property
    def allocated(self) -> int:
        return self._next
