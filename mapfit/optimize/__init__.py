"""Point-estimation algorithms: Newton's method, BFGS and L-BFGS.

Example
-------
>>> import numpy as np
>>> from mapfit.optimize import Model, evaluate_log_density
>>> model = Model(
...     log_density=lambda x: -float((x[0] - 3.0) ** 2),
...     grad=lambda x: np.array([-2.0 * (x[0] - 3.0)]),
...     names=["mu"],
... )
>>> evaluate_log_density(model, np.array([2.0])).value
-1.0
"""

from .core import (
    LOG_DENSITY_NAME,
    NEWTON_RELATIVE_TOL,
    ConvergencePolicy,
    IterationRecord,
    LogDensityResult,
    StepDiagnostics,
    StepResult,
    TerminationStatus,
    relative_improvement,
)
from .driver import build_stepper, quasi_newton_optimize, run_stepper
from .line_search import LineSearchResult, wolfe_line_search
from .model import LogDensityModel, Model, TorchModel, evaluate_log_density
from .newton import ModelEvaluationError, newton_optimize, newton_step
from .quasi_newton import BFGSLineSearch, BFGSUpdate, LBFGSUpdate, Stepper
from .utils import approx_grad, finite_diff_hessian, make_negative_definite_and_solve

__all__ = [
    "BFGSLineSearch",
    "BFGSUpdate",
    "ConvergencePolicy",
    "IterationRecord",
    "LBFGSUpdate",
    "LOG_DENSITY_NAME",
    "LineSearchResult",
    "LogDensityModel",
    "LogDensityResult",
    "Model",
    "ModelEvaluationError",
    "NEWTON_RELATIVE_TOL",
    "StepDiagnostics",
    "StepResult",
    "Stepper",
    "TerminationStatus",
    "TorchModel",
    "approx_grad",
    "build_stepper",
    "evaluate_log_density",
    "finite_diff_hessian",
    "make_negative_definite_and_solve",
    "newton_optimize",
    "newton_step",
    "quasi_newton_optimize",
    "relative_improvement",
    "run_stepper",
    "wolfe_line_search",
]
