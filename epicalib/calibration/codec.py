"""
Theta Codec
===========
Flattens simulator state into a theta vector and writes a theta vector
back into simulator state, following ``CalibrationSchema.slots()``.
"""

from __future__ import annotations

from typing import Dict, MutableMapping, Sequence

import numpy as np

from epicalib.calibration.schema import CalibrationSchema, ParamSlot
from epicalib.config import CalibrationConfig


def encode(
    schema: CalibrationSchema,
    params: MutableMapping[str, float],
    cfg: CalibrationConfig,
) -> np.ndarray:
    """Read the current value behind every slot, in schema order."""
    theta = []
    for slot in schema.slots():
        if isinstance(slot, ParamSlot):
            theta.append(params[slot.name])
        else:
            policy = getattr(cfg, slot.policy)[slot.date]
            theta.append(getattr(policy, slot.field))
    return np.asarray(theta, dtype=float)


def decode(
    theta: Sequence[float],
    schema: CalibrationSchema,
    params: MutableMapping[str, float],
    cfg: CalibrationConfig,
) -> None:
    """Write theta into ``params`` and the policy records of ``cfg`` in place."""
    n = schema.dimension_count
    if len(theta) != n:
        raise ValueError(f"theta has length {len(theta)}, schema has {n} dimensions")
    for value, slot in zip(theta, schema.slots()):
        if isinstance(slot, ParamSlot):
            params[slot.name] = float(value)
        else:
            policy = getattr(cfg, slot.policy)[slot.date]
            setattr(policy, slot.field, float(value))


def as_dict(schema: CalibrationSchema, theta: Sequence[float]) -> Dict[str, float]:
    """Label a theta vector with the schema's slot names."""
    return {name: float(v) for name, v in zip(schema.slot_names(), theta)}
