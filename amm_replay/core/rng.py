"""Seeded pseudo-random generator shared by every stochastic component.

The generator is mulberry32 over a 32-bit unsigned state. It reproduces the
reference JavaScript generator bit for bit, so a seed names the same run on
either side of the language boundary.
"""

import math

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def _normalize_seed(seed: int) -> int:
    normalized = int(seed) or 1
    return normalized & _MASK32


class SeededRng:
    """Deterministic uniform and Gaussian draws from a single integer seed."""

    def __init__(self, seed: int):
        self._initial_seed = _normalize_seed(seed)
        self._state = self._initial_seed

    @property
    def seed(self) -> int:
        return self._initial_seed

    def reset(self, seed: int | None = None) -> None:
        """Rewind to ``seed``, or to the constructor seed when omitted."""
        if seed is not None:
            self._initial_seed = _normalize_seed(seed)
        self._state = self._initial_seed

    def next(self) -> float:
        """Uniform draw in [0, 1)."""
        self._state = (self._state + _INCREMENT) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    def between(self, low: float, high: float) -> float:
        return low + self.next() * (high - low)

    def gaussian(self) -> float:
        """Standard normal draw via Box-Muller (cosine branch only)."""
        u = 0.0
        v = 0.0
        while u == 0.0:
            u = self.next()
        while v == 0.0:
            v = self.next()
        return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
