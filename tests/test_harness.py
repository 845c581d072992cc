from datetime import date

import numpy as np
import pytest

from epicalib.calibration.harness import EvaluationContext, SimulationEvaluator, run_one
from epicalib.calibration.schema import build_schema
from epicalib.model import Event, init_model


def _context(cfg) -> EvaluationContext:
    schema, _ = build_schema(cfg.unknowns)
    model = init_model({"beta": 0.05, "contacts_per_day": 8}, cfg)
    return EvaluationContext(model=model, cfg=cfg, metrics=model.metrics, schema=schema)


def test_run_one_emits_one_value_per_day(cfg):
    context = _context(cfg)
    series = run_one([0.04, 0.2], context)
    assert len(series) == (cfg.lastday - cfg.firstday).days
    assert series.dtype.kind == "i"
    assert np.all(series >= 0)
    assert series.sum() == context.metrics.positives


def test_run_one_decodes_theta_into_state(cfg):
    context = _context(cfg)
    run_one([0.02, 0.75], context)
    assert context.model.params["beta"] == 0.02
    assert context.cfg.distancing_policy[date(2020, 3, 5)].strength == 0.75
    assert context.model.active["distancing_policy"].strength == 0.75


def test_run_one_resets_between_evaluations(cfg):
    context = _context(cfg)
    context.model.rng = np.random.default_rng(1)
    first = run_one([0.04, 0.2], context)
    context.model.rng = np.random.default_rng(1)
    second = run_one([0.04, 0.2], context)
    np.testing.assert_array_equal(first, second)


def test_evaluator_leaves_shared_context_untouched(cfg):
    context = _context(cfg)
    evaluator = SimulationEvaluator(context, seed=3)
    evaluator([0.01, 0.9])
    assert evaluator.thread_safe
    assert context.model.params["beta"] == 0.05
    assert context.cfg.distancing_policy[date(2020, 3, 5)].strength == 0.4
    assert context.metrics.positives == 0


def test_evaluator_is_reproducible_for_a_seed(cfg):
    a = SimulationEvaluator(_context(cfg), seed=11)
    b = SimulationEvaluator(_context(cfg), seed=11)
    for _ in range(3):
        np.testing.assert_array_equal(a([0.05, 0.1]), b([0.05, 0.1]))


def test_shared_evaluator_mutates_in_place(cfg):
    context = _context(cfg)
    evaluator = SimulationEvaluator(context, isolate=False)
    evaluator([0.01, 0.9])
    assert not evaluator.thread_safe
    assert context.model.params["beta"] == 0.01
    assert context.cfg.distancing_policy[date(2020, 3, 5)].strength == 0.9


class Boom(Event):
    def execute(self, model, today, metrics):
        raise RuntimeError("simulator failure")


def test_simulator_errors_propagate(cfg, monkeypatch):
    import epicalib.model as model_module

    original = model_module.build_schedule

    def broken_schedule(model, cfg):
        schedule = original(model, cfg)
        schedule[date(2020, 3, 4)].append(Boom())
        return schedule

    monkeypatch.setattr(model_module, "build_schedule", broken_schedule)
    with pytest.raises(RuntimeError, match="simulator failure"):
        run_one([0.04, 0.2], _context(cfg))
