"""
ABC Calibration
===============
Calibrates free simulator parameters and date-indexed policy fields
against an observed daily new-case series.

Key components:
1. Schema: which parameters and policy fields are free, and their order
2. Codec: theta vector <-> simulator state
3. Harness: theta -> simulated daily new cases
4. Distances: RMSE and Poisson log-likelihood
5. Solvers: ABC-DE and rejection ABC
6. Driver: end-to-end training and posterior quantile summaries
"""

from epicalib.calibration.schema import (
    CalibrationSchema,
    ParamSlot,
    PolicyFieldSlot,
    PolicyUnknowns,
    build_schema,
    validate_schema,
)

from epicalib.calibration.codec import (
    as_dict,
    decode,
    encode,
)

from epicalib.calibration.harness import (
    EvaluationContext,
    SimulationEvaluator,
    run_one,
)

from epicalib.calibration.distance import (
    get_distance,
    negative_poisson_loglikelihood,
    poisson_loglikelihood,
    rmse,
)

from epicalib.calibration.priors import UniformPrior

from epicalib.calibration.abc import (
    ABCPlan,
    ABCResult,
    get_solver,
    run_abc_de,
    run_abc_rejection,
)

from epicalib.calibration.driver import (
    check_solver_options,
    construct_params,
    construct_result,
    prepare_observed_series,
    split_solver_options,
    train,
)

__all__ = [
    "CalibrationSchema",
    "ParamSlot",
    "PolicyFieldSlot",
    "PolicyUnknowns",
    "build_schema",
    "validate_schema",
    "as_dict",
    "decode",
    "encode",
    "EvaluationContext",
    "SimulationEvaluator",
    "run_one",
    "get_distance",
    "negative_poisson_loglikelihood",
    "poisson_loglikelihood",
    "rmse",
    "UniformPrior",
    "ABCPlan",
    "ABCResult",
    "get_solver",
    "run_abc_de",
    "run_abc_rejection",
    "check_solver_options",
    "construct_params",
    "construct_result",
    "prepare_observed_series",
    "split_solver_options",
    "train",
]
