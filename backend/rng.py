"""
Seeded RNG for reproducible draws and AI decisions.
Fixture shuffles and automatic substitutions take one of these instead of
reaching for the global random module.
"""
from __future__ import annotations

import random
from typing import Any, MutableSequence, Sequence


class SeededRNG:
    """Wrapper around random.Random. seed=None gives an unseeded source."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def choice(self, seq: Sequence[Any]) -> Any:
        return self._rng.choice(seq)

    def shuffle(self, seq: MutableSequence[Any]) -> None:
        """In-place uniform Fisher-Yates shuffle."""
        for i in range(len(seq) - 1, 0, -1):
            j = self._rng.randint(0, i)
            seq[i], seq[j] = seq[j], seq[i]
