from datetime import date

import pandas as pd
import pytest

from epicalib.config import CalibrationConfig
from epicalib.policies import DistancingPolicy, QuarantinePolicy, TestingPolicy


@pytest.fixture
def cfg(tmp_path) -> CalibrationConfig:
    return CalibrationConfig(
        output_directory=tmp_path / "out",
        firstday=date(2020, 3, 1),
        lastday=date(2020, 3, 11),
        seed=7,
        demographics={"population": 500, "params": {"initial_infections": 5}},
        distancing_policy={
            date(2020, 3, 1): DistancingPolicy(strength=0.1),
            date(2020, 3, 5): DistancingPolicy(strength=0.4),
        },
        testing_policy={date(2020, 3, 1): TestingPolicy(test_probability=0.3, sensitivity=0.9)},
        quarantine_policy={date(2020, 3, 3): QuarantinePolicy(compliance=0.5)},
        unknowns={"params": ["beta"], "distancing_policy": {"2020-03-05": "strength"}},
        solver_options={"etarget": 1e6, "nparticles": 4, "generations": 1},
    )


@pytest.fixture
def training_csv(tmp_path):
    path = tmp_path / "training_data.csv"
    pd.DataFrame(
        {
            "date": ["2020-03-02", "2020-03-04", "2020-03-08"],
            "newpositives": [1, 3, 6],
            "positives": [1, 4, 10],
        }
    ).to_csv(path, index=False)
    return path
