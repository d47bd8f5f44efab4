"""Iteration loop shared by the BFGS and L-BFGS algorithms.

The loop only relies on the :class:`~mapfit.optimize.quasi_newton.Stepper`
contract, so any stepper with ``advance()`` and ``drain_messages()`` can be
driven by :func:`run_stepper`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional

from mapfit.logging import get_logger

from .core import Array, Interrupt, IterationRecord, StepResult, TerminationStatus
from .model import LogDensityModel
from .quasi_newton import BFGSLineSearch, BFGSUpdate, LBFGSUpdate, Stepper

if TYPE_CHECKING:
    from mapfit.services.config import QuasiNewtonConfig
    from mapfit.services.writers import Writers

logger = get_logger(__name__)

PROGRESS_HEADER = (
    "    Iter      log prob        ||dx||      ||grad||       alpha      alpha0  # evals  Notes "
)


def build_stepper(
    model: LogDensityModel,
    params: Array,
    config: "QuasiNewtonConfig",
    on_error: Optional[Callable[[str], None]] = None,
) -> BFGSLineSearch:
    """Create the stepper matching ``config``: dense BFGS or L-BFGS."""
    policy = config.policy()
    if config.algorithm == "lbfgs":
        update = LBFGSUpdate(policy.history_size)
    else:
        update = BFGSUpdate()
    return BFGSLineSearch(model, params, update=update, policy=policy, on_error=on_error)


def _progress_line(iteration: int, result: StepResult) -> str:
    diag = result.diagnostics
    if diag is None:
        return f" {iteration:7d}  {result.log_density:12.6g} "
    return (
        f" {iteration:7d}  {result.log_density:12.6g}  {diag.step_size:12.6g}  "
        f"{diag.grad_norm:12.6g}  {diag.alpha:10.4g}  {diag.alpha0:10.4g}  "
        f"{diag.evaluations:7d}  {diag.note} "
    )


def _forward_messages(stepper: Stepper, writers: "Writers") -> None:
    for message in stepper.drain_messages():
        if message:
            writers.info(message)


def run_stepper(
    stepper: Stepper,
    writers: "Writers",
    save_iterations: bool = False,
    refresh: int = 100,
    interrupt: Optional[Interrupt] = None,
) -> TerminationStatus:
    """Advance ``stepper`` until it reports a terminal status.

    Progress rows are written every ``refresh`` iterations (never when
    ``refresh`` is 0), iterates are recorded every iteration when
    ``save_iterations`` is set, and ``interrupt`` is checked after every
    advance. Terminal stepper statuses are returned unchanged.
    """
    result: Optional[StepResult] = None
    status: Optional[TerminationStatus] = None
    while status is None:
        result = stepper.advance()
        iteration = stepper.iteration
        on_cadence = refresh > 0 and (iteration == 1 or iteration % refresh == 0)
        if on_cadence:
            writers.info(PROGRESS_HEADER)
        note = result.diagnostics.note if result.diagnostics is not None else ""
        if refresh > 0 and (on_cadence or result.status is not None or note):
            writers.info(_progress_line(iteration, result))
        if save_iterations:
            writers.output.write_record(
                IterationRecord(iteration, result.log_density, result.params.copy())
            )
        if interrupt is not None and interrupt():
            logger.debug("Interrupt requested after iteration %d", iteration)
            writers.info(f"Optimization interrupted after {iteration} iterations.")
            return _finish(stepper, writers, result, TerminationStatus.INTERRUPTED, save_iterations)
        status = result.status
    return _finish(stepper, writers, result, status, save_iterations)


def _finish(
    stepper: Stepper,
    writers: "Writers",
    result: StepResult,
    status: TerminationStatus,
    save_iterations: bool,
) -> TerminationStatus:
    _forward_messages(stepper, writers)
    if not save_iterations:
        writers.output.write_record(
            IterationRecord(stepper.iteration, result.log_density, result.params.copy())
        )
    if status is TerminationStatus.INTERRUPTED:
        return status
    if status.is_error:
        writers.info("Optimization terminated with error: ")
    else:
        writers.info("Optimization terminated normally: ")
    writers.info("  " + (result.message or status.description))
    return status


def quasi_newton_optimize(
    model: LogDensityModel,
    params: Array,
    config: "QuasiNewtonConfig",
    writers: "Writers",
    interrupt: Optional[Interrupt] = None,
) -> TerminationStatus:
    """Run BFGS or L-BFGS from ``params`` as selected by ``config``."""
    stepper = build_stepper(model, params, config, on_error=writers.error)
    _forward_messages(stepper, writers)
    writers.info(f"initial log joint probability = {stepper.log_density:g}")
    return run_stepper(
        stepper,
        writers,
        save_iterations=config.save_iterations,
        refresh=config.refresh,
        interrupt=interrupt,
    )


__all__ = ["PROGRESS_HEADER", "build_stepper", "quasi_newton_optimize", "run_stepper"]
