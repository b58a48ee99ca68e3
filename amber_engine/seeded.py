"""Seeded determinism helpers.

Every subject-specific "random" value in the engine derives from these
functions rather than from ambient entropy, so reloading or re-rendering a
subject never changes what the operator has already seen.

FROZEN: ``seeded_random`` and ``hash_string`` are part of the save format.
Changing either silently reassigns every subject's dossier gaps and
equipment failures.
"""

from __future__ import annotations

from typing import Any, List, Sequence, TypeVar, Union

T = TypeVar("T")

_U32 = 0xFFFFFFFF
_INT31_MAX = 2147483647


def _utf16_units(seed: str) -> List[int]:
    # Hash over UTF-16 code units so astral characters hash the same way
    # on every platform that stores strings as UTF-16.
    raw = seed.encode("utf-16-le", errors="surrogatepass")
    return [raw[i] | (raw[i + 1] << 8) for i in range(0, len(raw), 2)]


def _to_int32(value: int) -> int:
    value &= _U32
    return value - 0x100000000 if value & 0x80000000 else value


def seeded_random(seed: Any) -> float:
    """Map a seed string to a float in [0, 1).

    Pure and total: the same seed always yields the same value.
    """
    text = seed if isinstance(seed, str) else str(seed)
    h = 0
    for unit in _utf16_units(text):
        h = ((h << 5) - h + unit) & _U32
    return (abs(_to_int32(h)) % _INT31_MAX) / _INT31_MAX


def hash_string(seed: str) -> int:
    """djb2 (xor variant) as an unsigned 32-bit integer."""
    h = 5381
    for unit in _utf16_units(seed):
        h = (((h << 5) + h) ^ unit) & _U32
    return h


class SeededRandom:
    """Deterministic xorshift32 stream seeded from a string or integer."""

    def __init__(self, seed: Union[str, int]):
        state = hash_string(seed) if isinstance(seed, str) else int(seed) & _U32
        self._state = state or 1

    def next(self) -> float:
        """Next float in [0, 1)."""
        s = self._state
        s ^= (s << 13) & _U32
        s ^= s >> 17
        s ^= (s << 5) & _U32
        self._state = s & _U32
        return self._state / (_U32 + 1)

    def random(self) -> float:
        # Lets SeededRandom stand in wherever a random.Random is accepted.
        return self.next()

    def range(self, low: float, high: float) -> float:
        return low + self.next() * (high - low)

    def int(self, low: int, high: int) -> int:
        """Integer in [low, high] inclusive."""
        return low + int(self.next() * (high - low + 1))

    def bool(self, probability: float = 0.5) -> bool:
        return self.next() < probability

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot pick from an empty sequence")
        return items[int(self.next() * len(items))]
