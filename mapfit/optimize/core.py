"""Core types shared by the Newton and quasi-Newton drivers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

Array = np.ndarray
Interrupt = Callable[[], bool]

# Name of the synthetic log-density column that leads every header.
LOG_DENSITY_NAME = "lp__"

# Newton's method stops once the relative improvement falls below this.
NEWTON_RELATIVE_TOL = 1e-8

EPS = float(np.finfo(float).eps)


class TerminationStatus(Enum):
    """Terminal outcome of a single optimization run."""

    OK = "ok"
    MAX_ITERATIONS = "max_iterations"
    GRADIENT_CONVERGED = "gradient_converged"
    OBJECTIVE_CONVERGED = "objective_converged"
    PARAM_CONVERGED = "param_converged"
    LINE_SEARCH_FAILED = "line_search_failed"
    INTERRUPTED = "interrupted"
    USAGE_ERROR = "usage_error"

    @property
    def is_error(self) -> bool:
        return self in (TerminationStatus.LINE_SEARCH_FAILED, TerminationStatus.USAGE_ERROR)

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    TerminationStatus.OK: "Convergence detected: relative improvement below tolerance",
    TerminationStatus.MAX_ITERATIONS: "Maximum number of iterations hit, may not be at an optima",
    TerminationStatus.GRADIENT_CONVERGED: "Convergence detected: gradient norm is below tolerance",
    TerminationStatus.OBJECTIVE_CONVERGED: "Convergence detected: change in objective function was below tolerance",
    TerminationStatus.PARAM_CONVERGED: "Convergence detected: absolute parameter change was below tolerance",
    TerminationStatus.LINE_SEARCH_FAILED: "Line search failed to achieve a sufficient decrease, no more progress can be made",
    TerminationStatus.INTERRUPTED: "Optimization interrupted by request",
    TerminationStatus.USAGE_ERROR: "Invalid optimization settings",
}


@dataclass(frozen=True)
class LogDensityResult:
    """Outcome of one model evaluation.

    A failed evaluation carries ``value == -inf``, no gradient and the
    failure message in ``error``.
    """

    value: float
    gradient: Optional[Array] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str) -> "LogDensityResult":
        return cls(value=-math.inf, gradient=None, error=message)


@dataclass(frozen=True)
class IterationRecord:
    """Snapshot of one iterate handed to an output sink."""

    index: int
    log_density: float
    params: Array

    def values(self) -> list[float]:
        """Row values in header order: log density first, then parameters."""
        return [float(self.log_density), *(float(v) for v in self.params)]


@dataclass(frozen=True)
class ConvergencePolicy:
    """Tolerances governing when a quasi-Newton run stops.

    Attributes:
        max_iterations: Iteration cap.
        tol_obj: Absolute change in the objective.
        tol_rel_obj: Relative change in the objective, in units of machine
            epsilon.
        tol_grad: Gradient norm.
        tol_rel_grad: Relative gradient magnitude, in units of machine
            epsilon.
        tol_param: Norm of the parameter change.
        init_alpha: First trial step length of the line search.
        history_size: Number of correction pairs kept by L-BFGS.
    """

    max_iterations: int = 2000
    tol_obj: float = 1e-12
    tol_rel_obj: float = 1e4
    tol_grad: float = 1e-8
    tol_rel_grad: float = 1e7
    tol_param: float = 1e-8
    init_alpha: float = 1e-3
    history_size: int = 5

    def __post_init__(self) -> None:
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        for name in ("tol_obj", "tol_rel_obj", "tol_grad", "tol_rel_grad", "tol_param", "init_alpha"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        if self.history_size < 0:
            raise ValueError("history_size must be non-negative")


@dataclass
class StepDiagnostics:
    """Internal counters a stepper exposes for progress reporting."""

    step_size: float
    grad_norm: float
    alpha: float
    alpha0: float
    evaluations: int
    note: str = ""


@dataclass
class StepResult:
    """Result of one stepper advance; ``status is None`` means keep going."""

    status: Optional[TerminationStatus]
    params: Array
    log_density: float
    message: str = ""
    diagnostics: Optional[StepDiagnostics] = None


def relative_improvement(value: float, last: float) -> float:
    """Return ``(value - last) / |value|`` with IEEE semantics.

    Division by zero yields ``inf`` or ``nan`` instead of raising, and
    ``-inf - (-inf)`` yields ``nan``; ``nan`` compares false against any
    tolerance.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(value - last) / np.abs(np.float64(value)))


__all__ = [
    "Array",
    "ConvergencePolicy",
    "EPS",
    "Interrupt",
    "IterationRecord",
    "LOG_DENSITY_NAME",
    "LogDensityResult",
    "NEWTON_RELATIVE_TOL",
    "StepDiagnostics",
    "StepResult",
    "TerminationStatus",
    "relative_improvement",
]
