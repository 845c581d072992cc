from datetime import date

import numpy as np
import pytest

from epicalib.calibration.codec import as_dict, decode, encode
from epicalib.calibration.schema import build_schema
from epicalib.config import CalibrationConfig
from epicalib.policies import DistancingPolicy, TestingPolicy


def _config(**overrides) -> CalibrationConfig:
    return CalibrationConfig(
        firstday=date(2020, 3, 1),
        lastday=date(2020, 4, 1),
        distancing_policy={
            date(2020, 3, 1): DistancingPolicy(strength=0.2),
            date(2020, 3, 15): DistancingPolicy(strength=0.6),
        },
        testing_policy={date(2020, 3, 1): TestingPolicy(test_probability=0.15, sensitivity=0.8)},
        **overrides,
    )


UNKNOWNS = {
    "params": ["beta", "contacts_per_day"],
    "distancing_policy": {"2020-03-15": "strength", "2020-03-01": "strength"},
    "testing_policy": {"2020-03-01": ["sensitivity", "test_probability"]},
}


def test_decode_end_to_end_scenario():
    cfg = _config()
    schema, n = build_schema({"params": ["beta"], "distancing_policy": {"2020-03-01": ["strength"]}})
    params = {"beta": 0.1}
    assert n == 2
    decode([0.03, 0.5], schema, params, cfg)
    assert params["beta"] == 0.03
    assert cfg.distancing_policy[date(2020, 3, 1)].strength == 0.5
    assert cfg.distancing_policy[date(2020, 3, 15)].strength == 0.6


def test_encode_follows_schema_order():
    cfg = _config()
    schema, n = build_schema(UNKNOWNS)
    theta = encode(schema, {"beta": 0.03, "contacts_per_day": 12.0}, cfg)
    assert len(theta) == n
    np.testing.assert_allclose(theta, [0.03, 12.0, 0.2, 0.6, 0.8, 0.15])


def test_encode_then_decode_leaves_state_unchanged():
    cfg = _config()
    schema, _ = build_schema(UNKNOWNS)
    params = {"beta": 0.03, "contacts_per_day": 12.0, "infectious_days": 7.0}
    before_params = dict(params)
    before_cfg = cfg.model_dump()
    decode(encode(schema, params, cfg), schema, params, cfg)
    assert params == before_params
    assert cfg.model_dump() == before_cfg


def test_round_trip_into_other_state():
    source = _config()
    target = _config()
    target.distancing_policy[date(2020, 3, 15)].strength = 0.0
    target.testing_policy[date(2020, 3, 1)].sensitivity = 0.0
    schema, _ = build_schema(UNKNOWNS)
    source_params = {"beta": 0.04, "contacts_per_day": 9.0}
    target_params = {"beta": 0.0, "contacts_per_day": 0.0}

    decode(encode(schema, source_params, source), schema, target_params, target)

    assert target_params == source_params
    np.testing.assert_allclose(encode(schema, target_params, target), encode(schema, source_params, source))


def test_decode_rejects_wrong_length():
    cfg = _config()
    schema, _ = build_schema(UNKNOWNS)
    with pytest.raises(ValueError, match="length 2"):
        decode([0.1, 0.2], schema, {"beta": 0.0, "contacts_per_day": 0.0}, cfg)


def test_as_dict_labels_theta():
    schema, _ = build_schema({"params": "beta", "distancing_policy": {"2020-03-01": "strength"}})
    assert as_dict(schema, [0.01, 0.3]) == {
        "beta": 0.01,
        "distancing_policy[2020-03-01].strength": 0.3,
    }
