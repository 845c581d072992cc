"""
Reference Epidemic Model
========================
A stochastic agent-based SEIR model stepped one calendar day at a time.

Each day the model:
1. Activates any policy dated today
2. Applies exogenous forcing (imported infections)
3. Executes the day's scheduled events (seeding, transmission,
   progression, testing, tracing and isolation)

The cumulative ``positives`` counter is what calibration compares
against observed case counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
from pydantic import BaseModel

from epicalib.config import CalibrationConfig
from epicalib.metrics import Metrics
from epicalib.policies import POLICY_KINDS, POLICY_TYPES

SUSCEPTIBLE = 0
EXPOSED = 1
INFECTIOUS = 2
RECOVERED = 3

DEFAULT_PARAMS: Dict[str, float] = {
    "beta": 0.03,
    "contacts_per_day": 10.0,
    "incubation_days": 4.0,
    "infectious_days": 7.0,
    "initial_infections": 10.0,
}


def date_range(first: date, last: date) -> List[date]:
    """Every date from ``first`` to ``last`` inclusive."""
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


@dataclass
class Model:
    params: Dict[str, float]
    population: int
    rng: np.random.Generator
    metrics: Metrics = field(default_factory=Metrics)
    today: Optional[date] = None
    status: Optional[np.ndarray] = field(default=None, repr=False)
    tested: Optional[np.ndarray] = field(default=None, repr=False)
    isolated: Optional[np.ndarray] = field(default=None, repr=False)
    infector: Optional[np.ndarray] = field(default=None, repr=False)
    active: Dict[str, BaseModel] = field(default_factory=dict)
    schedule: Dict[date, List["Event"]] = field(default_factory=dict, repr=False)

    def count(self, state: int) -> int:
        return int((self.status == state).sum())


class Event:
    def execute(self, model: Model, today: date, metrics: Metrics) -> None:
        raise NotImplementedError


@dataclass
class SeedInfections(Event):
    count: int

    def execute(self, model: Model, today: date, metrics: Metrics) -> None:
        infect_random(model, self.count, metrics)


@dataclass
class DailyStep(Event):
    def execute(self, model: Model, today: date, metrics: Metrics) -> None:
        transmit(model, metrics)
        progress(model, metrics)
        screen_and_trace(model, metrics)


def init_model(
    params: Mapping[str, float],
    cfg: CalibrationConfig,
    rng: np.random.Generator | None = None,
) -> Model:
    merged = dict(DEFAULT_PARAMS)
    merged.update({k: float(v) for k, v in params.items()})
    model = Model(
        params=merged,
        population=cfg.demographics.population,
        rng=rng if rng is not None else np.random.default_rng(cfg.seed),
    )
    reset_model(model, cfg)
    return model


def reset_model(model: Model, cfg: CalibrationConfig) -> None:
    n = model.population
    model.status = np.full(n, SUSCEPTIBLE, dtype=np.int8)
    model.tested = np.zeros(n, dtype=bool)
    model.isolated = np.zeros(n, dtype=bool)
    model.infector = np.full(n, -1, dtype=np.int64)
    model.today = cfg.firstday
    model.active = {
        kind: _policy_in_effect(kind, getattr(cfg, kind), cfg.firstday) for kind in POLICY_KINDS
    }
    model.schedule = build_schedule(model, cfg)


def _policy_in_effect(kind: str, dated: Mapping[date, BaseModel], firstday: date) -> BaseModel:
    # Policies dated on firstday are activated by update_policies
    earlier = [d for d in dated if d < firstday]
    if earlier:
        return dated[max(earlier)]
    return POLICY_TYPES[kind]()


def build_schedule(model: Model, cfg: CalibrationConfig) -> Dict[date, List[Event]]:
    days = date_range(cfg.firstday, cfg.lastday - timedelta(days=1))
    schedule: Dict[date, List[Event]] = {d: [DailyStep()] for d in days}
    n_seed = int(round(model.params["initial_infections"]))
    if n_seed > 0:
        schedule[cfg.firstday].insert(0, SeedInfections(n_seed))
    return schedule


def step_day(model: Model, cfg: CalibrationConfig, today: date, metrics: Metrics) -> None:
    model.today = today
    update_policies(model, cfg, today)
    apply_forcing(cfg.forcing, model, today, metrics)
    execute_events(model.schedule.get(today, ()), model, today, metrics)


def update_policies(model: Model, cfg: CalibrationConfig, today: date) -> None:
    for kind in POLICY_KINDS:
        policy = getattr(cfg, kind).get(today)
        if policy is not None:
            model.active[kind] = policy


def apply_forcing(forcing: Mapping[date, int], model: Model, today: date, metrics: Metrics) -> None:
    count = forcing.get(today, 0)
    if count > 0:
        infect_random(model, count, metrics)


def execute_events(events: Iterable[Event], model: Model, today: date, metrics: Metrics) -> None:
    for event in events:
        event.execute(model, today, metrics)


def infect(model: Model, idx: np.ndarray, metrics: Metrics, infector: np.ndarray | None = None) -> None:
    model.status[idx] = EXPOSED
    if infector is not None:
        model.infector[idx] = infector
    metrics.infections += int(idx.size)


def infect_random(model: Model, count: int, metrics: Metrics) -> None:
    susceptible = np.flatnonzero(model.status == SUSCEPTIBLE)
    k = min(int(count), susceptible.size)
    if k == 0:
        return
    infect(model, model.rng.choice(susceptible, size=k, replace=False), metrics)


def transmit(model: Model, metrics: Metrics) -> None:
    spreaders = np.flatnonzero((model.status == INFECTIOUS) & ~model.isolated)
    if spreaders.size == 0:
        return
    strength = model.active["distancing_policy"].strength
    rate = model.params["contacts_per_day"] * max(0.0, 1.0 - strength)
    contacts = model.rng.poisson(rate, size=spreaders.size)
    sources = np.repeat(spreaders, contacts)
    if sources.size == 0:
        return
    targets = model.rng.integers(model.population, size=sources.size)
    hit = (model.status[targets] == SUSCEPTIBLE) & (model.rng.random(sources.size) < model.params["beta"])
    # One infection per target even if several contacts hit it
    targets, first = np.unique(targets[hit], return_index=True)
    infect(model, targets, metrics, infector=sources[hit][first])


def _daily_probability(days: float) -> float:
    return 1.0 if days <= 1.0 else 1.0 / days


def progress(model: Model, metrics: Metrics) -> None:
    exposed = np.flatnonzero(model.status == EXPOSED)
    infectious = np.flatnonzero(model.status == INFECTIOUS)
    onset = exposed[model.rng.random(exposed.size) < _daily_probability(model.params["incubation_days"])]
    recover = infectious[
        model.rng.random(infectious.size) < _daily_probability(model.params["infectious_days"])
    ]
    model.status[onset] = INFECTIOUS
    model.status[recover] = RECOVERED
    model.isolated[recover] = False
    metrics.recoveries += int(recover.size)


def isolate(model: Model, idx: np.ndarray, compliance: float, metrics: Metrics) -> None:
    comply = idx[(model.rng.random(idx.size) < compliance) & ~model.isolated[idx]]
    model.isolated[comply] = True
    metrics.isolations += int(comply.size)


def _screen(model: Model, idx: np.ndarray, sensitivity: float, metrics: Metrics) -> np.ndarray:
    metrics.tests += int(idx.size)
    found = idx[model.rng.random(idx.size) < sensitivity]
    model.tested[found] = True
    metrics.positives += int(found.size)
    return found


def screen_and_trace(model: Model, metrics: Metrics) -> None:
    testing = model.active["testing_policy"]
    compliance = model.active["quarantine_policy"].compliance
    coverage = model.active["tracing_policy"].coverage

    candidates = np.flatnonzero((model.status == INFECTIOUS) & ~model.tested)
    sampled = candidates[model.rng.random(candidates.size) < testing.test_probability]
    positives = _screen(model, sampled, testing.sensitivity, metrics)
    if positives.size == 0:
        return
    isolate(model, positives, compliance, metrics)

    if coverage <= 0.0:
        return
    active_case = (model.status == EXPOSED) | (model.status == INFECTIOUS)
    contacts = np.flatnonzero(np.isin(model.infector, positives) & active_case & ~model.tested)
    traced = contacts[model.rng.random(contacts.size) < coverage]
    isolate(model, traced, compliance, metrics)
    traced_infectious = traced[model.status[traced] == INFECTIOUS]
    _screen(model, traced_infectious, testing.sensitivity, metrics)
