from __future__ import annotations

import re
from datetime import date
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from epicalib.policies import (
    DistancingPolicy,
    QuarantinePolicy,
    TestingPolicy,
    TracingPolicy,
)

SCENARIO_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


class DemographicsConfig(BaseModel):
    population: int = Field(default=10000, gt=0)
    params: Dict[str, float] = Field(default_factory=dict)


class OutputConfig(BaseModel):
    save_plots: bool = False
    descriptive_names: bool = False


class ScenarioConfig(BaseModel):
    """Dated policies that override or extend the base policy maps for one scenario."""

    distancing_policy: Dict[date, DistancingPolicy] = Field(default_factory=dict)
    testing_policy: Dict[date, TestingPolicy] = Field(default_factory=dict)
    tracing_policy: Dict[date, TracingPolicy] = Field(default_factory=dict)
    quarantine_policy: Dict[date, QuarantinePolicy] = Field(default_factory=dict)


class CalibrationConfig(BaseModel):
    output_directory: Path = Path("output")
    training_data: Optional[Path] = None
    paramsfile: Optional[Path] = None
    demographics: DemographicsConfig = DemographicsConfig()
    firstday: date
    lastday: date
    seed: int = 42
    nruns: int = Field(default=1, gt=0)
    forcing: Dict[date, int] = Field(default_factory=dict)
    distancing_policy: Dict[date, DistancingPolicy] = Field(default_factory=dict)
    testing_policy: Dict[date, TestingPolicy] = Field(default_factory=dict)
    tracing_policy: Dict[date, TracingPolicy] = Field(default_factory=dict)
    quarantine_policy: Dict[date, QuarantinePolicy] = Field(default_factory=dict)
    unknowns: Dict[str, Any] = Field(default_factory=dict)
    solver: Literal["abcde", "rejection"] = "abcde"
    loss: Literal["rmse", "poisson"] = "rmse"
    solver_options: Dict[str, Any] = Field(default_factory=dict)
    scenarios: Dict[str, ScenarioConfig] = Field(default_factory=dict)
    output: OutputConfig = OutputConfig()

    @field_validator("scenarios")
    @classmethod
    def _check_scenario_names(cls, value: Dict[str, ScenarioConfig]) -> Dict[str, ScenarioConfig]:
        for name in value:
            if not SCENARIO_NAME.match(name):
                raise ValueError(f"scenario name {name!r} must use only letters, digits, _ . -")
        return value

    @model_validator(mode="after")
    def _check_date_range(self) -> "CalibrationConfig":
        if self.lastday <= self.firstday:
            raise ValueError(f"lastday ({self.lastday}) must be after firstday ({self.firstday})")
        return self


class ConfigError(Exception):
    pass


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_paths(data: Dict[str, Any], root: Path) -> None:
    for key in ("output_directory", "training_data", "paramsfile"):
        value = data.get(key)
        if value is None:
            continue
        value = Path(value)
        if not value.is_absolute():
            data[key] = root / value


def load_config(path: str | Path) -> CalibrationConfig:
    path = Path(path)
    data = yaml.safe_load(path.read_text()) or {}
    _resolve_paths(data, path.parent)
    base_path = data.pop("base", None)
    if base_path:
        base_file = (path.parent / base_path).resolve()
        base_data = yaml.safe_load(base_file.read_text()) or {}
        # Paths in the base file are relative to the base file
        _resolve_paths(base_data, base_file.parent)
        data = deep_merge(base_data, data)
    try:
        return CalibrationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def dump_config(cfg: CalibrationConfig, path: str | Path) -> None:
    path = Path(path)
    path.write_text(yaml.safe_dump(cfg.model_dump(mode="json"), sort_keys=False))
