"""
Prior over theta
================
Calibration places the same Uniform(low, high) prior on every axis of
theta. The default bounds (0, 0.05) suit rates and fractions near zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class UniformPrior:
    """Independent Uniform(low, high) on each of ``dimension`` axes."""

    dimension: int
    low: float = 0.0
    high: float = 0.05

    def __post_init__(self) -> None:
        if self.dimension < 0:
            raise ValueError(f"prior dimension must be non-negative, got {self.dimension}")
        if not self.high > self.low:
            raise ValueError(f"prior needs high > low, got [{self.low}, {self.high}]")

    def sample(self, rng: np.random.Generator, n: int = 1) -> np.ndarray:
        """Return an ``(n, dimension)`` array of draws."""
        return rng.uniform(self.low, self.high, size=(n, self.dimension))

    def _check(self, theta: Sequence[float]) -> np.ndarray:
        theta = np.asarray(theta, dtype=float)
        if theta.shape != (self.dimension,):
            raise ValueError(f"theta has length {len(theta)}, prior has {self.dimension} dimensions")
        return theta

    def contains(self, theta: Sequence[float]) -> bool:
        theta = self._check(theta)
        return bool(np.all((theta >= self.low) & (theta <= self.high)))

    def log_prob(self, theta: Sequence[float]) -> float:
        if not self.contains(theta):
            return -np.inf
        return -self.dimension * float(np.log(self.high - self.low))
