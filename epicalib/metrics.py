from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict


@dataclass
class Metrics:
    """Cumulative counters over a simulation run."""

    positives: int = 0
    infections: int = 0
    recoveries: int = 0
    isolations: int = 0
    tests: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def reset_metrics(metrics: Metrics) -> None:
    metrics.positives = 0
    metrics.infections = 0
    metrics.recoveries = 0
    metrics.isolations = 0
    metrics.tests = 0
