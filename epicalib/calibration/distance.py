"""
Distance Functions
==================
Compare an observed daily case series with a simulated one.
"""

from __future__ import annotations

from typing import Callable, Dict, Sequence

import numpy as np

from epicalib.config import ConfigError

# Simulated rates below this contribute nothing to the log-likelihood
MIN_POISSON_RATE = 0.01


def _pair(observed: Sequence[float], simulated: Sequence[float]):
    y = np.asarray(observed, dtype=float)
    yhat = np.asarray(simulated, dtype=float)
    if y.shape != yhat.shape:
        raise ValueError(f"observed has shape {y.shape}, simulated has shape {yhat.shape}")
    return y, yhat


def rmse(observed: Sequence[float], simulated: Sequence[float]) -> float:
    y, yhat = _pair(observed, simulated)
    return float(np.sqrt(np.mean((y - yhat) ** 2)))


def poisson_loglikelihood(observed: Sequence[float], simulated: Sequence[float]) -> float:
    """
    Mean Poisson log-likelihood of ``observed`` given rates ``simulated``,
    without the constant ``log(y!)`` term. Higher is a better fit.
    """
    y, yhat = _pair(observed, simulated)
    keep = yhat >= MIN_POISSON_RATE
    terms = np.zeros_like(y)
    terms[keep] = y[keep] * np.log(yhat[keep]) - yhat[keep]
    return float(terms.mean())


def negative_poisson_loglikelihood(observed: Sequence[float], simulated: Sequence[float]) -> float:
    return -poisson_loglikelihood(observed, simulated)


DISTANCES: Dict[str, Callable[[Sequence[float], Sequence[float]], float]] = {
    "rmse": rmse,
    "poisson": negative_poisson_loglikelihood,
}


def get_distance(name: str) -> Callable[[Sequence[float], Sequence[float]], float]:
    try:
        return DISTANCES[name]
    except KeyError:
        raise ConfigError(f"Unknown loss: {name} (expected one of: {', '.join(DISTANCES)})") from None
