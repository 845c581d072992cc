from datetime import date

import pytest

from epicalib.calibration.schema import (
    ParamSlot,
    PolicyFieldSlot,
    build_schema,
    validate_schema,
)
from epicalib.config import ConfigError
from epicalib.model import init_model


def test_single_param_name():
    schema, n = build_schema({"params": "beta"})
    assert n == 1
    assert schema.params == ("beta",)


def test_param_list_preserves_order():
    schema, n = build_schema({"params": ["gamma", "beta", "alpha"]})
    assert n == 3
    assert schema.slot_names() == ["gamma", "beta", "alpha"]


@pytest.mark.parametrize("bad", [True, 3, 0.5, {"beta": 1}, ["beta", 2]])
def test_params_must_be_name_or_list_of_names(bad):
    with pytest.raises(ConfigError, match="unknown params must be a single name or list of names"):
        build_schema({"params": bad})


def test_policy_field_type_error_names_section():
    with pytest.raises(ConfigError, match="testing_policy"):
        build_schema({"testing_policy": {"2020-03-01": 1.0}})


def test_policy_and_params_dimension_count():
    schema, n = build_schema(
        {"params": ["beta"], "distancing_policy": {"2020-03-01": ["strength"]}}
    )
    assert n == 2
    assert schema.dimension_count == 2
    assert list(schema.slots()) == [
        ParamSlot("beta"),
        PolicyFieldSlot("distancing_policy", date(2020, 3, 1), "strength"),
    ]


def test_dimension_count_is_sum_of_sections():
    _, n = build_schema(
        {
            "params": ["beta", "contacts_per_day"],
            "testing_policy": {"2020-03-01": ["test_probability", "sensitivity"], "2020-04-01": "sensitivity"},
            "quarantine_policy": {date(2020, 3, 10): "compliance"},
        }
    )
    assert n == 2 + 3 + 1


def test_ordering_ignores_key_order():
    a = {
        "params": ["beta"],
        "quarantine_policy": {"2020-03-10": "compliance"},
        "distancing_policy": {"2020-04-01": "strength", "2020-03-01": "strength"},
        "testing_policy": {"2020-03-05": ["sensitivity", "test_probability"]},
    }
    b = {
        "testing_policy": {"2020-03-05": ["sensitivity", "test_probability"]},
        "distancing_policy": {"2020-03-01": "strength", "2020-04-01": "strength"},
        "quarantine_policy": {"2020-03-10": "compliance"},
        "params": ["beta"],
    }
    schema_a, _ = build_schema(a)
    schema_b, _ = build_schema(b)
    assert schema_a == schema_b
    assert schema_a.slot_names() == [
        "beta",
        "distancing_policy[2020-03-01].strength",
        "distancing_policy[2020-04-01].strength",
        "testing_policy[2020-03-05].sensitivity",
        "testing_policy[2020-03-05].test_probability",
        "quarantine_policy[2020-03-10].compliance",
    ]


def test_policy_dates_sorted_ascending():
    schema, _ = build_schema(
        {"tracing_policy": {"2020-05-01": "coverage", "2020-03-01": "coverage", "2020-04-01": "coverage"}}
    )
    assert [entry.date for entry in schema.tracing_policy] == [
        date(2020, 3, 1),
        date(2020, 4, 1),
        date(2020, 5, 1),
    ]


def test_empty_and_missing_sections():
    schema, n = build_schema({"distancing_policy": {}})
    assert n == 0
    assert schema.distancing_policy == ()
    assert build_schema(None)[1] == 0
    assert build_schema({"testing_policy": None})[1] == 0


@pytest.mark.parametrize("bad", [0, False, "", []])
def test_falsy_policy_declaration_rejected(bad):
    with pytest.raises(ConfigError, match="must map dates to field names"):
        build_schema({"distancing_policy": bad})


def test_unknown_policy_field_rejected():
    with pytest.raises(ConfigError, match="strenght"):
        build_schema({"distancing_policy": {"2020-03-01": "strenght"}})


def test_unknown_section_rejected():
    with pytest.raises(ConfigError, match="lockdown_policy"):
        build_schema({"lockdown_policy": {"2020-03-01": "strength"}})


def test_invalid_date_key_rejected():
    with pytest.raises(ConfigError, match="invalid date"):
        build_schema({"distancing_policy": {"March 1st": "strength"}})


def test_duplicate_dates_rejected():
    with pytest.raises(ConfigError, match="more than once"):
        build_schema({"distancing_policy": {"2020-03-01": "strength", date(2020, 3, 1): "strength"}})


def test_validate_schema_accepts_existing_state(cfg):
    schema, _ = build_schema(cfg.unknowns)
    model = init_model({}, cfg)
    validate_schema(schema, model.params, cfg)


def test_validate_schema_reports_missing_state(cfg):
    schema, _ = build_schema(
        {"params": ["not_a_param"], "testing_policy": {"2021-01-01": "sensitivity"}}
    )
    model = init_model({}, cfg)
    with pytest.raises(ConfigError) as excinfo:
        validate_schema(schema, model.params, cfg)
    assert "not_a_param" in str(excinfo.value)
    assert "testing_policy dated 2021-01-01" in str(excinfo.value)
