"""
Calibration Schema
==================
Declares which scalar parameters and which date-indexed policy fields
are free variables, and fixes the order in which they map onto the
positions of a theta vector.

The order is:
1. ``params`` in declared order
2. ``distancing_policy``, ``testing_policy``, ``tracing_policy``,
   ``quarantine_policy``; within each, dates ascending and fields in
   declared order

Every consumer walks ``CalibrationSchema.slots()``, so encoding and
decoding can never disagree on positions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Mapping, Tuple, Union

from epicalib.config import CalibrationConfig, ConfigError
from epicalib.policies import POLICY_KINDS, policy_fields

SECTIONS: Tuple[str, ...] = ("params",) + POLICY_KINDS


@dataclass(frozen=True)
class ParamSlot:
    """A scalar entry of the simulator parameter map."""

    name: str

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class PolicyFieldSlot:
    """One field of the policy record of a given kind dated ``date``."""

    policy: str
    date: date
    field: str

    @property
    def label(self) -> str:
        return f"{self.policy}[{self.date.isoformat()}].{self.field}"


Slot = Union[ParamSlot, PolicyFieldSlot]


@dataclass(frozen=True)
class PolicyUnknowns:
    date: date
    fields: Tuple[str, ...]


@dataclass(frozen=True)
class CalibrationSchema:
    params: Tuple[str, ...] = ()
    distancing_policy: Tuple[PolicyUnknowns, ...] = ()
    testing_policy: Tuple[PolicyUnknowns, ...] = ()
    tracing_policy: Tuple[PolicyUnknowns, ...] = ()
    quarantine_policy: Tuple[PolicyUnknowns, ...] = ()

    def slots(self) -> Iterator[Slot]:
        for name in self.params:
            yield ParamSlot(name)
        for kind in POLICY_KINDS:
            for entry in getattr(self, kind):
                for fld in entry.fields:
                    yield PolicyFieldSlot(kind, entry.date, fld)

    @property
    def dimension_count(self) -> int:
        return sum(1 for _ in self.slots())

    def slot_names(self) -> List[str]:
        return [slot.label for slot in self.slots()]


def _names(value: Any, section: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(x, str) for x in value):
        return list(value)
    if section == "params":
        raise ConfigError("unknown params must be a single name or list of names")
    raise ConfigError(f"unknown {section} fields must be a single name or list of names")


def _parse_date(key: Any, section: str) -> date:
    if isinstance(key, datetime):
        return key.date()
    if isinstance(key, date):
        return key
    if isinstance(key, str):
        try:
            return date.fromisoformat(key)
        except ValueError:
            pass
    raise ConfigError(f"unknown {section} has an invalid date key: {key!r}")


def _policy_unknowns(section: str, spec: Any) -> Tuple[PolicyUnknowns, ...]:
    if not isinstance(spec, Mapping):
        raise ConfigError(f"unknown {section} must map dates to field names")
    valid = policy_fields(section)
    entries: Dict[date, PolicyUnknowns] = {}
    for key, value in spec.items():
        dt = _parse_date(key, section)
        if dt in entries:
            raise ConfigError(f"unknown {section} lists {dt.isoformat()} more than once")
        fields = _names(value, section)
        for fld in fields:
            if fld not in valid:
                raise ConfigError(
                    f"unknown {section} field {fld!r} is not one of: {', '.join(valid)}"
                )
        entries[dt] = PolicyUnknowns(dt, tuple(fields))
    return tuple(entries[dt] for dt in sorted(entries))


def build_schema(unknowns: Mapping[str, Any] | None) -> Tuple[CalibrationSchema, int]:
    """
    Build the calibration schema from the ``unknowns`` configuration.

    Returns the schema and the number of free dimensions, which is the
    length of every theta vector.

    Raises ConfigError for malformed declarations before any simulation
    work begins.
    """
    unknowns = unknowns or {}
    extra = sorted(set(unknowns) - set(SECTIONS))
    if extra:
        raise ConfigError(
            f"unrecognised unknowns sections: {', '.join(map(str, extra))} "
            f"(expected any of: {', '.join(SECTIONS)})"
        )

    sections: Dict[str, Any] = {}
    if "params" in unknowns:
        sections["params"] = tuple(_names(unknowns["params"], "params"))
    for kind in POLICY_KINDS:
        spec = unknowns.get(kind)
        if spec is None or (isinstance(spec, Mapping) and not spec):
            continue
        sections[kind] = _policy_unknowns(kind, spec)

    schema = CalibrationSchema(**sections)
    return schema, schema.dimension_count


def validate_schema(
    schema: CalibrationSchema,
    params: Mapping[str, float],
    cfg: CalibrationConfig,
) -> None:
    """Check every slot points at state that exists in ``params`` and ``cfg``."""
    missing: List[str] = []
    for slot in schema.slots():
        if isinstance(slot, ParamSlot):
            if slot.name not in params:
                missing.append(f"parameter {slot.name!r}")
        elif slot.date not in getattr(cfg, slot.policy):
            missing.append(f"{slot.policy} dated {slot.date.isoformat()}")
    if missing:
        # Keep each target once, in schema order
        unique = list(dict.fromkeys(missing))
        raise ConfigError(f"unknowns refer to missing simulator state: {'; '.join(unique)}")
