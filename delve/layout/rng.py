"""Seeded xorshift32 random source.

All generation randomness flows through :class:`DeterministicRNG` so that a
seed (int or str) plus a configuration reproduces a layout exactly. String
seeds are folded with a position-weighted byte sum; the fold and the shift
constants are part of the persistence format and must not change.
"""
from __future__ import annotations

import random
import string
from typing import MutableSequence, Optional, Sequence, TypeVar, Union

from .errors import ConfigError

T = TypeVar("T")

MASK32 = 0xFFFFFFFF
SEED_ALPHABET = string.ascii_lowercase + string.digits
SEED_LENGTH = 12

Seed = Union[int, str]


def fold_seed(seed: Seed) -> int:
    """Return the non-zero 32-bit initial state for ``seed``."""
    if isinstance(seed, bool):
        raise TypeError("seed must be an int or str, not bool")
    if isinstance(seed, str):
        state = 0
        for i, byte in enumerate(seed.encode("utf-8"), start=1):
            state += byte * (i * 31)
        state &= MASK32
    elif isinstance(seed, int):
        state = seed & MASK32
    else:
        raise TypeError(f"seed must be an int or str, got {type(seed).__name__}")
    return state or 1


def generate_seed() -> str:
    """Fresh 12 character seed. Only used when the caller supplied none."""
    return "".join(random.choice(SEED_ALPHABET) for _ in range(SEED_LENGTH))


class DeterministicRNG:
    __slots__ = ("seed", "state", "draws")

    def __init__(self, seed: Seed):
        self.seed = seed
        self.state = fold_seed(seed)
        self.draws = 0

    def __repr__(self) -> str:
        return f"DeterministicRNG(seed={self.seed!r}, draws={self.draws})"

    def next(self) -> int:
        x = self.state
        x ^= (x << 13) & MASK32
        x ^= x >> 17
        x ^= (x << 5) & MASK32
        self.state = x & MASK32
        self.draws += 1
        return self.state

    def int_range(self, lo: int, hi: int) -> int:
        # Modulo bias is accepted; changing it would break existing seeds.
        if hi < lo:
            raise ValueError(f"empty range [{lo}, {hi}]")
        return lo + self.next() % (hi - lo + 1)

    def float_range(self, lo: float, hi: float) -> float:
        return lo + (self.next() / MASK32) * (hi - lo)

    def chance(self, probability: float) -> bool:
        return self.float_range(0.0, 1.0) < probability

    def choice(self, seq: Sequence[T]) -> T:
        if not seq:
            raise IndexError("cannot choose from an empty sequence")
        return seq[self.int_range(0, len(seq) - 1)]

    def weighted_index(self, weights: Sequence[int]) -> int:
        """Index drawn proportionally to integer ``weights`` (one draw)."""
        total = sum(weights)
        if total <= 0:
            raise ValueError("weights must sum to a positive value")
        pick = self.int_range(1, total)
        upto = 0
        for i, w in enumerate(weights):
            upto += w
            if pick <= upto:
                return i
        return len(weights) - 1

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        for i in range(len(items) - 1, 0, -1):
            j = self.int_range(0, i)
            items[i], items[j] = items[j], items[i]
        return items


def coerce_seed(value) -> Optional[Seed]:
    """Normalize a user supplied seed: None or blank -> None.

    Canonical decimal strings (``"42"``, ``"0"``) become ints, so ``"42"`` from a
    URL or the command line reproduces the layout of the int seed 42, not of the
    string seed ``"42"``. Anything else, including zero-padded digits such as
    ``"0042"``, stays a string seed.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError("seed must be an int or string")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.isascii() and s.isdigit() and str(int(s)) == s:
            return int(s)
        return s
    raise ConfigError("seed must be an int or string")


def make_rng(seed: Optional[Seed]) -> DeterministicRNG:
    """RNG for ``seed``, generating and recording one when it is None."""
    return DeterministicRNG(generate_seed() if seed is None else seed)


__all__ = ["DeterministicRNG", "fold_seed", "generate_seed", "coerce_seed", "make_rng", "MASK32"]
