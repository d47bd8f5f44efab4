"""Newton's method for maximizing a log density."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from mapfit.logging import get_logger

from .core import (
    NEWTON_RELATIVE_TOL,
    Array,
    Interrupt,
    IterationRecord,
    TerminationStatus,
    relative_improvement,
)
from .model import LogDensityModel, evaluate_log_density
from .utils import finite_diff_hessian, make_negative_definite_and_solve

if TYPE_CHECKING:
    from mapfit.services.config import NewtonConfig
    from mapfit.services.writers import Writers

logger = get_logger(__name__)

MIN_STEP_SIZE = 1e-50


class ModelEvaluationError(RuntimeError):
    """Raised when the gradient cannot be evaluated while building a Hessian."""


def _gradient(model: LogDensityModel, x: Array) -> Array:
    result = evaluate_log_density(model, x)
    if not result.ok:
        raise ModelEvaluationError(result.error)
    return result.gradient


def _compute_hessian(model: LogDensityModel, x: Array) -> Array:
    hessian = getattr(model, "hessian", None)
    if hessian is None:
        return finite_diff_hessian(lambda point: _gradient(model, point), x)
    try:
        hess = hessian(x)
    except Exception as exc:  # the model may fail in arbitrary ways
        raise ModelEvaluationError(
            f"Error evaluating model Hessian: {str(exc) or type(exc).__name__}"
        ) from exc
    if hess is None:
        return finite_diff_hessian(lambda point: _gradient(model, point), x)
    hess = np.asarray(hess, dtype=float)
    if not np.all(np.isfinite(hess)):
        raise ModelEvaluationError("Error evaluating model Hessian: Non-finite Hessian.")
    return hess


def newton_step(
    model: LogDensityModel,
    params: Array,
    on_error: Optional[Callable[[str], None]] = None,
) -> tuple[Array, float]:
    """Take one Newton step uphill and return the new point and log density.

    The step solves against the Hessian with every eigenvalue made negative,
    then halves the step size until the log density does not decrease. When
    no such step exists the current point is returned unchanged.
    """
    params = np.asarray(params, dtype=float)
    current = evaluate_log_density(model, params)
    if not current.ok:
        if on_error is not None:
            on_error(current.error)
        return params.copy(), -math.inf
    try:
        hess = _compute_hessian(model, params)
    except ModelEvaluationError as exc:
        if on_error is not None:
            on_error(str(exc))
        return params.copy(), current.value

    direction = make_negative_definite_and_solve(hess, current.gradient)
    step_size = 2.0
    while True:
        step_size *= 0.5
        if step_size < MIN_STEP_SIZE:
            return params.copy(), current.value
        candidate = params + step_size * direction
        trial = evaluate_log_density(model, candidate)
        if not trial.ok:
            logger.debug("Rejected Newton candidate at step size %g: %s", step_size, trial.error)
            continue
        if trial.value >= current.value:
            return candidate, trial.value


def newton_optimize(
    model: LogDensityModel,
    params: Array,
    config: "NewtonConfig",
    writers: "Writers",
    interrupt: Optional[Interrupt] = None,
) -> TerminationStatus:
    """Run Newton's method until the relative improvement vanishes.

    Args:
        model: Model whose log density is maximized.
        params: Initial point; not modified.
        config: Newton settings (iteration cap, iterate recording).
        writers: Output, info and error sinks.
        interrupt: Called once per iteration; returning True stops the run.

    Returns:
        ``OK`` on convergence, ``MAX_ITERATIONS`` when the iteration cap is
        reached, ``INTERRUPTED`` when the interrupt hook asks to stop.
    """
    x = np.array(params, dtype=float)
    initial = evaluate_log_density(model, x)
    if not initial.ok:
        writers.error(initial.error)
    lp = initial.value

    writers.info(f"initial log joint probability = {lp:g}")
    if config.save_iterations:
        writers.output.write_record(IterationRecord(0, lp, x.copy()))

    # Emulates starting from last = 1.1 * lp, which is undefined for lp in {0, -inf}
    logger.debug("(lp - lastlp) / lp > 1e-8: %g", relative_improvement(lp, lp * 1.1))

    status = TerminationStatus.OK
    last = lp
    iteration = 0
    while iteration == 0 or relative_improvement(lp, last) > NEWTON_RELATIVE_TOL:
        if iteration >= config.iter:
            status = TerminationStatus.MAX_ITERATIONS
            break
        last = lp
        x, lp = newton_step(model, x, on_error=writers.error)
        iteration += 1
        writers.info(
            f"Iteration {iteration:2d}. Log joint probability = {lp:10g}. "
            f"Improved by {lp - last:g}."
        )
        if config.save_iterations:
            writers.output.write_record(IterationRecord(iteration, lp, x.copy()))
        if interrupt is not None and interrupt():
            writers.info(f"Optimization interrupted after {iteration} iterations.")
            status = TerminationStatus.INTERRUPTED
            break

    if not config.save_iterations:
        writers.output.write_record(IterationRecord(iteration, lp, x.copy()))
    return status


__all__ = ["MIN_STEP_SIZE", "ModelEvaluationError", "newton_optimize", "newton_step"]
