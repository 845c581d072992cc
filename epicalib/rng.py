from __future__ import annotations

import itertools
from dataclasses import dataclass, field

import numpy as np


@dataclass
class RNGManager:
    """Hands out independent numpy generators derived from one seed."""

    seed: int
    _counter: itertools.count = field(default_factory=itertools.count, init=False, repr=False)

    def spawn(self) -> np.random.Generator:
        # next() on itertools.count is atomic under the GIL
        return np.random.default_rng([self.seed, next(self._counter)])
