"""
Evaluation Harness
==================
Turns one theta vector into a simulated daily new-case series.

A single evaluation:
1. Decodes theta into the parameter map and policy records
2. Resets the model and metrics to the start of the date range
3. Steps the model one day at a time over [firstday, lastday)
4. Emits the daily increment of the cumulative positives counter

Evaluations mutate the state they run on. ``SimulationEvaluator`` gives
each call its own deep copy so concurrent evaluations never share a
model, config or metrics object.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from epicalib.calibration.codec import decode
from epicalib.calibration.schema import CalibrationSchema
from epicalib.config import CalibrationConfig
from epicalib.metrics import Metrics, reset_metrics
from epicalib.model import Model, date_range, reset_model, step_day
from epicalib.rng import RNGManager


@dataclass
class EvaluationContext:
    model: Model
    cfg: CalibrationConfig
    metrics: Metrics
    schema: CalibrationSchema


def run_one(theta: Sequence[float], context: EvaluationContext) -> np.ndarray:
    """Simulate the configured date range under ``theta``; mutates ``context``."""
    model, cfg, metrics, schema = context.model, context.cfg, context.metrics, context.schema
    decode(theta, schema, model.params, cfg)
    reset_model(model, cfg)
    reset_metrics(metrics)

    days = date_range(cfg.firstday, cfg.lastday)
    result = np.zeros(len(days) - 1, dtype=np.int64)
    prev_positives = 0
    for i, today in enumerate(days):
        model.today = today
        if today == cfg.lastday:
            break
        step_day(model, cfg, today, metrics)
        positives = metrics.positives
        result[i] = positives - prev_positives
        prev_positives = positives
    return result


class SimulationEvaluator:
    """
    Callable ``theta -> simulated series`` handed to an ABC solver.

    With ``isolate=True`` (default) every call runs on a deep copy of the
    context with its own random generator derived from ``seed`` and the
    call index, so calls may run concurrently. With ``isolate=False``
    calls run in place on the shared context and must be serialized.
    """

    def __init__(self, context: EvaluationContext, seed: int = 0, isolate: bool = True) -> None:
        self.context = context
        self.isolate = isolate
        self.rng_manager = RNGManager(seed)

    @property
    def thread_safe(self) -> bool:
        return self.isolate

    def snapshot(self) -> EvaluationContext:
        # deepcopy keeps model.metrics and context.metrics the same object
        context = copy.deepcopy(self.context)
        context.model.rng = self.rng_manager.spawn()
        return context

    def __call__(self, theta: Sequence[float]) -> np.ndarray:
        context = self.snapshot() if self.isolate else self.context
        return run_one(theta, context)
