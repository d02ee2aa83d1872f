from __future__ import annotations

MODULUS: int = 2_147_483_647  # 2^31 - 1
MULTIPLIER: int = 16_807
DEFAULT_SEED: int = 12_345


class SeededRandom:
    """Minimal standard (Park-Miller) multiplicative congruential generator.

    A single instance is shared by every generator that draws from it, so the
    values a caller sees depend on the order in which draws were consumed.
    """

    def __init__(self, seed: int = DEFAULT_SEED) -> None:
        self._state = int(seed) % MODULUS
        if self._state == 0:
            raise ValueError("seed must not be a multiple of 2^31 - 1")

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> float:
        self._state = (self._state * MULTIPLIER) % MODULUS
        return (self._state - 1) / (MODULUS - 1)

    def range(self, lo: float, hi: float) -> float:
        return lo + self.next() * (hi - lo)
