"""
Calibration Driver
==================
Calibrates the model's free parameters and policy fields against an
observed daily new-case series and summarizes the posterior.

Pipeline:
1. Build the calibration schema from ``unknowns``
2. Prepare the observed series over [firstday, lastday)
3. Construct parameters and initialise the model
4. Run an ABC solver with a Uniform(0, 0.05) prior on every axis
5. Write per-axis posterior quantiles to ``trained_params.tsv``
"""

from __future__ import annotations

import inspect
import json
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from epicalib.calibration.abc import ABCPlan, ABCSolver, get_solver
from epicalib.calibration.codec import as_dict
from epicalib.calibration.distance import get_distance
from epicalib.calibration.harness import EvaluationContext, SimulationEvaluator
from epicalib.calibration.priors import UniformPrior
from epicalib.calibration.schema import build_schema, validate_schema
from epicalib.config import CalibrationConfig, ConfigError, load_config
from epicalib.io.metadata import build_run_metadata
from epicalib.io.plots import plot_fit, plot_posterior_marginals
from epicalib.model import date_range, init_model

# Fixed prior bounds for every theta axis
PRIOR_LOW = 0.0
PRIOR_HIGH = 0.05

QUANTILES: Tuple[Tuple[str, float], ...] = (
    ("p025", 0.025),
    ("p25", 0.25),
    ("p50", 0.5),
    ("p75", 0.75),
    ("p975", 0.975),
)

RESULT_FILE = "trained_params.tsv"


def construct_params(
    paramsfile: Optional[str | Path],
    demographics_params: Mapping[str, float],
) -> Dict[str, float]:
    """Load ``name,value`` rows and overlay demographic parameters on top."""
    params: Dict[str, float] = {}
    if paramsfile is not None:
        table = pd.read_csv(paramsfile)
        params.update({str(k): float(v) for k, v in zip(table["name"], table["value"])})
    params.update({k: float(v) for k, v in demographics_params.items()})
    return params


def prepare_observed_series(
    training_data: str | Path | pd.DataFrame,
    firstday: date,
    lastday: date,
) -> np.ndarray:
    """
    Daily new positives for each date in [firstday, lastday).

    Dates missing from the training data count as zero new cases.
    """
    if isinstance(training_data, pd.DataFrame):
        frame = training_data
    else:
        frame = pd.read_csv(training_data)
    dates = pd.to_datetime(frame["date"]).dt.date
    date2y = dict(zip(dates, frame["newpositives"]))
    days = date_range(firstday, lastday - timedelta(days=1))
    return np.array([int(date2y.get(d, 0)) for d in days], dtype=np.int64)


def split_solver_options(solver_options: Mapping[str, Any]) -> Tuple[float, Dict[str, Any]]:
    """Separate the convergence tolerance from the options passed to the solver."""
    opts = dict(solver_options)
    if "etarget" not in opts:
        raise ConfigError("solver_options must include etarget (the convergence tolerance)")
    etarget = float(opts.pop("etarget"))
    return etarget, opts


def check_solver_options(solver: ABCSolver, options: Mapping[str, Any]) -> None:
    """Raise ConfigError if ``options`` names keywords the solver does not take."""
    params = list(inspect.signature(solver).parameters.values())[2:]
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params):
        return
    accepted = {p.name for p in params}
    unsupported = sorted(set(options) - accepted)
    if unsupported:
        name = getattr(solver, "__name__", type(solver).__name__)
        raise ConfigError(
            f"solver_options not supported by {name}: {', '.join(unsupported)} "
            f"(accepted: {', '.join(sorted(accepted))})"
        )


def construct_result(
    particles: np.ndarray,
    n_unknowns: int,
    names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """One row of posterior quantiles per theta axis."""
    particles = np.asarray(particles, dtype=float)
    if len(particles) == 0:
        raise ValueError("solver returned an empty particle population")
    rows: List[Dict[str, Any]] = []
    for i in range(n_unknowns):
        values = np.quantile(particles[:, i], [q for _, q in QUANTILES])
        row: Dict[str, Any] = {"name": names[i] if names is not None else f"x{i + 1}"}
        row.update({col: float(v) for (col, _), v in zip(QUANTILES, values)})
        rows.append(row)
    return pd.DataFrame(rows, columns=["name"] + [col for col, _ in QUANTILES])


def train(
    config: CalibrationConfig | str | Path,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    logger = logger or logging.getLogger(__name__)

    logger.info("Configuring model")
    cfg = config if isinstance(config, CalibrationConfig) else load_config(config)
    schema, n_unknowns = build_schema(cfg.unknowns)
    etarget, opts = split_solver_options(cfg.solver_options)
    solver = get_solver(cfg.solver)
    opts.setdefault("seed", cfg.seed)
    check_solver_options(solver, opts)
    loss = get_distance(cfg.loss)
    if cfg.training_data is None:
        raise ConfigError("training_data is required for calibration")
    logger.info("Calibrating %d unknowns: %s", n_unknowns, ", ".join(schema.slot_names()))

    logger.info("Preparing training data")
    observed = prepare_observed_series(cfg.training_data, cfg.firstday, cfg.lastday)

    logger.info("Initialising model")
    params = construct_params(cfg.paramsfile, cfg.demographics.params)
    model = init_model(params, cfg)
    validate_schema(schema, model.params, cfg)

    logger.info("Training model")
    context = EvaluationContext(model=model, cfg=cfg, metrics=model.metrics, schema=schema)
    evaluator = SimulationEvaluator(context, seed=cfg.seed)
    prior = UniformPrior(n_unknowns, PRIOR_LOW, PRIOR_HIGH)
    plan = ABCPlan(prior=prior, simulate_fn=evaluator, observed=observed, distance_fn=loss)
    res = solver(plan, etarget, **opts)
    logger.info(
        "Solver finished: %d simulations, %d generations, final threshold %.4g",
        res.n_simulations,
        res.n_generations,
        res.final_threshold,
    )
    if not res.converged:
        logger.warning("Solver did not converge to etarget=%.4g", etarget)

    logger.info("Extracting result")
    names = schema.slot_names() if cfg.output.descriptive_names else None
    result = construct_result(res.particles, n_unknowns, names)
    median_theta = np.median(res.particles, axis=0)
    logger.info("Posterior median: %s", as_dict(schema, median_theta))

    out_dir = Path(cfg.output_directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    result.to_csv(out_dir / RESULT_FILE, sep="\t", index=False)
    with (out_dir / "run_metadata.json").open("w") as f:
        json.dump(build_run_metadata(cfg, n_unknowns), f, indent=2)

    if cfg.output.save_plots:
        plots_dir = out_dir / "plots"
        plots_dir.mkdir(exist_ok=True)
        if n_unknowns:
            plot_posterior_marginals(res.particles, result["name"].tolist(), plots_dir)
        days = date_range(cfg.firstday, cfg.lastday - timedelta(days=1))
        plot_fit(days, observed, evaluator(median_theta), plots_dir)

    logger.info("Finished")
    return result
