"""
Approximate Bayesian Computation
=================================
Population-based ABC solvers driven by an ``ABCPlan``.

A plan bundles:
1. A prior over theta
2. A simulator ``theta -> simulated series``
3. The observed series
4. A distance between observed and simulated series

Solvers share the signature ``solver(plan, etarget, **options)`` and
return an ``ABCResult`` holding the accepted particle population, so
the search strategy can be swapped without touching the simulator side.
Exceptions raised by the simulator propagate out of every solver.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Sequence, Tuple

import numpy as np

from epicalib.calibration.priors import UniformPrior
from epicalib.config import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ABCPlan:
    prior: UniformPrior
    simulate_fn: Callable[[Sequence[float]], np.ndarray]
    observed: np.ndarray
    distance_fn: Callable[[Sequence[float], Sequence[float]], float]

    def distance(self, theta: Sequence[float]) -> float:
        return float(self.distance_fn(self.observed, self.simulate_fn(theta)))

    def distances(self, thetas: np.ndarray, n_workers: int = 1) -> np.ndarray:
        if n_workers > 1 and len(thetas) > 1:
            with ThreadPoolExecutor(max_workers=n_workers) as pool:
                return np.array(list(pool.map(self.distance, thetas)), dtype=float)
        return np.array([self.distance(theta) for theta in thetas], dtype=float)


@dataclass
class ABCResult:
    """Results from ABC calibration."""

    particles: np.ndarray  # (n_particles, dimension)
    distances: np.ndarray
    final_threshold: float
    converged: bool
    n_simulations: int
    n_generations: int = 0

    @property
    def acceptance_rate(self) -> float:
        return len(self.particles) / self.n_simulations if self.n_simulations > 0 else 0.0

    def posterior_mean(self) -> np.ndarray:
        return self.particles.mean(axis=0)

    def posterior_std(self) -> np.ndarray:
        return self.particles.std(axis=0)

    def credible_interval(self, axis: int, level: float = 0.95) -> Tuple[float, float]:
        """Equal-tailed credible interval for one theta axis."""
        alpha = (1 - level) / 2
        lower, upper = np.quantile(self.particles[:, axis], [alpha, 1 - alpha])
        return float(lower), float(upper)


class ABCSolver(Protocol):
    def __call__(self, plan: ABCPlan, etarget: float, **options) -> ABCResult: ...


def _resolve_workers(plan: ABCPlan, n_workers: int, parallel: bool) -> int:
    workers = (os.cpu_count() or 1) if parallel else int(n_workers)
    if workers > 1 and not getattr(plan.simulate_fn, "thread_safe", False):
        raise ValueError(
            "simulate_fn shares state between calls and cannot be evaluated concurrently; "
            "use n_workers=1 or an isolating evaluator"
        )
    return max(workers, 1)


def run_abc_de(
    plan: ABCPlan,
    etarget: float,
    nparticles: int = 50,
    generations: int = 20,
    earlystop: bool = False,
    parallel: bool = False,
    n_workers: int = 1,
    seed: Optional[int] = None,
    verbose: bool = False,
    jitter: float = 1e-4,
) -> ABCResult:
    """
    Run ABC with differential-evolution proposals (ABC-DE).

    Each generation every particle proposes
    ``p_i + gamma * (p_b - p_c) + noise`` from two other particles. A
    proposal outside the prior support is discarded without simulating;
    otherwise it replaces its particle when its distance is no larger
    than the particle's or is within ``etarget``. The run converges once
    every particle is within ``etarget``.
    """
    if nparticles < 4:
        raise ValueError(f"ABC-DE needs at least 4 particles, got {nparticles}")
    workers = _resolve_workers(plan, n_workers, parallel)
    rng = np.random.default_rng(seed)
    dim = plan.prior.dimension

    particles = plan.prior.sample(rng, nparticles)
    distances = plan.distances(particles, workers)
    n_simulations = nparticles
    gamma0 = 2.38 / np.sqrt(2 * max(dim, 1))
    converged = bool(np.all(distances <= etarget))
    generation = 0

    while not converged and generation < generations:
        generation += 1
        proposals = np.empty_like(particles)
        for i in range(nparticles):
            others = np.delete(np.arange(nparticles), i)
            b, c = rng.choice(others, size=2, replace=False)
            gamma = gamma0 * rng.uniform(0.5, 1.0)
            noise = rng.uniform(-jitter, jitter, size=dim)
            proposals[i] = particles[i] + gamma * (particles[b] - particles[c]) + noise

        idx = np.flatnonzero([plan.prior.contains(p) for p in proposals])
        new_distances = plan.distances(proposals[idx], workers)
        n_simulations += idx.size

        accept = (new_distances <= distances[idx]) | (new_distances <= etarget)
        particles[idx[accept]] = proposals[idx[accept]]
        distances[idx[accept]] = new_distances[accept]
        converged = bool(np.all(distances <= etarget))

        if verbose:
            logger.info(
                "Generation %d: accepted %d/%d, max distance %.4g, target %.4g",
                generation,
                int(accept.sum()),
                nparticles,
                float(distances.max()),
                etarget,
            )
        if earlystop and not accept.any():
            break

    return ABCResult(
        particles=particles,
        distances=distances,
        final_threshold=float(distances.max()),
        converged=converged,
        n_simulations=n_simulations,
        n_generations=generation,
    )


def run_abc_rejection(
    plan: ABCPlan,
    etarget: float,
    n_samples: int = 100,
    max_sim_attempts: int = 10000,
    parallel: bool = False,
    n_workers: int = 1,
    seed: Optional[int] = None,
) -> ABCResult:
    """
    Run basic ABC rejection sampling.

    Draws from the prior until ``n_samples`` particles fall within
    ``etarget`` or ``max_sim_attempts`` simulations have been spent.
    """
    workers = _resolve_workers(plan, n_workers, parallel)
    rng = np.random.default_rng(seed)
    accepted = []
    accepted_distances = []
    n_attempted = 0

    while len(accepted) < n_samples and n_attempted < max_sim_attempts:
        batch = min(workers, max_sim_attempts - n_attempted)
        candidates = plan.prior.sample(rng, batch)
        batch_distances = plan.distances(candidates, workers)
        n_attempted += batch
        for theta, distance in zip(candidates, batch_distances):
            if distance <= etarget and len(accepted) < n_samples:
                accepted.append(theta)
                accepted_distances.append(distance)

    particles = np.array(accepted).reshape(len(accepted), plan.prior.dimension)
    distances = np.array(accepted_distances, dtype=float)
    return ABCResult(
        particles=particles,
        distances=distances,
        final_threshold=float(distances.max()) if len(distances) else float("inf"),
        converged=len(accepted) >= n_samples,
        n_simulations=n_attempted,
    )


SOLVERS: Dict[str, ABCSolver] = {
    "abcde": run_abc_de,
    "rejection": run_abc_rejection,
}


def get_solver(name: str) -> ABCSolver:
    try:
        return SOLVERS[name]
    except KeyError:
        raise ConfigError(f"Unknown solver: {name} (expected one of: {', '.join(SOLVERS)})") from None
