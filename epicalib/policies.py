from __future__ import annotations

from typing import Dict, Tuple, Type

from pydantic import BaseModel


class DistancingPolicy(BaseModel):
    # Fractional reduction in daily contacts
    strength: float = 0.0


class TestingPolicy(BaseModel):
    test_probability: float = 0.1
    sensitivity: float = 0.9


class TracingPolicy(BaseModel):
    coverage: float = 0.0


class QuarantinePolicy(BaseModel):
    compliance: float = 0.0


POLICY_KINDS: Tuple[str, ...] = (
    "distancing_policy",
    "testing_policy",
    "tracing_policy",
    "quarantine_policy",
)

POLICY_TYPES: Dict[str, Type[BaseModel]] = {
    "distancing_policy": DistancingPolicy,
    "testing_policy": TestingPolicy,
    "tracing_policy": TracingPolicy,
    "quarantine_policy": QuarantinePolicy,
}


def policy_fields(kind: str) -> Tuple[str, ...]:
    return tuple(POLICY_TYPES[kind].model_fields)
