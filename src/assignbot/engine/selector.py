from __future__ import annotations

import random
from typing import AbstractSet


class Selector:
    """Uniform random choice among eligible reviewers.

    Pass a seeded ``random.Random`` for reproducible picks.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def choose(self, candidates: AbstractSet[str]) -> str:
        if not candidates:
            raise ValueError("cannot choose from an empty candidate set")
        # Sorted so a seeded rng gives the same answer regardless of set order.
        return self._rng.choice(sorted(candidates))
