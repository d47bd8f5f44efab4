"""Quasi-Newton stepper (BFGS and L-BFGS) driven one iteration at a time.

The stepper maximizes the log density by minimizing ``f = -log_density``.
Each call to :meth:`BFGSLineSearch.advance` performs one line search along
the current quasi-Newton direction, checks the convergence policy and
updates the curvature approximation.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Callable, Deque, Optional, Protocol

import numpy as np

from mapfit.logging import get_logger

from .core import (
    EPS,
    Array,
    ConvergencePolicy,
    StepDiagnostics,
    StepResult,
    TerminationStatus,
)
from .line_search import wolfe_line_search
from .model import LogDensityModel, evaluate_log_density

logger = get_logger(__name__)

ErrorSink = Callable[[str], None]


class Stepper(Protocol):
    """What the quasi-Newton driver needs from a stepper."""

    iteration: int

    @property
    def params(self) -> Array: ...

    @property
    def log_density(self) -> float: ...

    def advance(self) -> StepResult: ...

    def drain_messages(self) -> list[str]: ...


class BFGSUpdate:
    """Dense BFGS update of the inverse Hessian approximation."""

    def __init__(self) -> None:
        self._inv_hessian: Optional[Array] = None

    def update(self, s: Array, y: Array, reset: bool) -> None:
        ys = float(np.dot(y, s))
        n = s.size
        identity = np.eye(n)
        if reset or self._inv_hessian is None:
            # Nocedal & Wright (6.20) scaling of the initial approximation
            self._inv_hessian = (ys / float(np.dot(y, y))) * identity
        rho = 1.0 / ys
        outer_sy = np.outer(s, y)
        self._inv_hessian = (
            (identity - rho * outer_sy)
            @ self._inv_hessian
            @ (identity - rho * outer_sy.T)
            + rho * np.outer(s, s)
        )

    def search_direction(self, grad: Array) -> Array:
        if self._inv_hessian is None:
            return -grad
        return -self._inv_hessian @ grad


class LBFGSUpdate:
    """Limited-memory BFGS update using two-loop recursion.

    Args:
        history_size: Number of correction pairs ``(s, y)`` retained. Zero
            keeps none, leaving scaled steepest descent.
    """

    def __init__(self, history_size: int = 5) -> None:
        if history_size < 0:
            raise ValueError("history_size must be non-negative.")
        self.history_size = history_size
        self._s_history: Deque[Array] = deque(maxlen=history_size)
        self._y_history: Deque[Array] = deque(maxlen=history_size)
        self._gamma = 1.0

    def update(self, s: Array, y: Array, reset: bool) -> None:
        if reset:
            self._s_history.clear()
            self._y_history.clear()
        self._s_history.append(s)
        self._y_history.append(y)
        self._gamma = float(np.dot(s, y) / np.dot(y, y))

    def search_direction(self, grad: Array) -> Array:
        q = grad.copy()
        alpha_vals = []
        for s, y in reversed(list(zip(self._s_history, self._y_history))):
            rho = 1.0 / float(np.dot(y, s))
            alpha_i = rho * float(np.dot(s, q))
            q = q - alpha_i * y
            alpha_vals.append((rho, alpha_i, s, y))
        r = self._gamma * q
        for rho, alpha_i, s, y in reversed(alpha_vals):
            beta = rho * float(np.dot(y, r))
            r = r + s * (alpha_i - beta)
        return -r


class BFGSLineSearch:
    """Quasi-Newton stepper with a strong Wolfe line search.

    Args:
        model: Model whose log density is maximized.
        params: Initial point; copied.
        update: Curvature update rule, :class:`BFGSUpdate` or
            :class:`LBFGSUpdate`.
        policy: Convergence tolerances, iteration cap and initial step scale.
        on_error: Receives the message of every failed model evaluation.
    """

    def __init__(
        self,
        model: LogDensityModel,
        params: Array,
        update: BFGSUpdate | LBFGSUpdate | None = None,
        policy: Optional[ConvergencePolicy] = None,
        on_error: Optional[ErrorSink] = None,
        c1: float = 1e-4,
        c2: float = 0.9,
        min_alpha: float = 1e-12,
        max_line_search_iterations: int = 40,
    ) -> None:
        self.model = model
        self.update = update if update is not None else BFGSUpdate()
        self.policy = policy if policy is not None else ConvergencePolicy()
        self.c1 = c1
        self.c2 = c2
        self.min_alpha = min_alpha
        self.max_line_search_iterations = max_line_search_iterations
        self._on_error = on_error
        self._messages: list[str] = []

        self.iteration = 0
        self.evaluations = 0
        self.alpha = 0.0
        self.alpha0 = self.policy.init_alpha
        self.step_size = 0.0
        self.note = ""

        self._x = np.array(params, dtype=float)
        self._f, self._g = self._func(self._x)
        self.evaluations = 1
        self._f_prev = self._f
        self._g_prev_dot_p = math.nan
        self._p = -self._g if self._g is not None else np.zeros_like(self._x)
        if self._g is None:
            self._messages.append(
                "Initial log density could not be evaluated; no optimization step is possible."
            )

    @property
    def params(self) -> Array:
        return self._x.copy()

    @property
    def log_density(self) -> float:
        return -self._f

    @property
    def grad_norm(self) -> float:
        if self._g is None:
            return math.nan
        return float(np.linalg.norm(self._g))

    def drain_messages(self) -> list[str]:
        messages, self._messages = self._messages, []
        return messages

    def _func(self, x: Array) -> tuple[float, Optional[Array]]:
        result = evaluate_log_density(self.model, x)
        if not result.ok:
            if self._on_error is not None:
                self._on_error(result.error)
            return math.inf, None
        return -result.value, -result.gradient

    def _initial_alpha(self, reset: bool) -> float:
        if reset or self.iteration <= 1:
            return self.policy.init_alpha
        # Nocedal & Wright (3.60): interpolate from the previous decrease
        der = float(np.dot(self._g, self._p))
        guess = 1.01 * 2.0 * (self._f - self._f_prev) / der
        if not (math.isfinite(guess) and guess > 0):
            return 1.0
        return min(1.0, guess)

    def _result(self, status: Optional[TerminationStatus], message: str = "") -> StepResult:
        diagnostics = StepDiagnostics(
            step_size=self.step_size,
            grad_norm=self.grad_norm,
            alpha=self.alpha,
            alpha0=self.alpha0,
            evaluations=self.evaluations,
            note=self.note,
        )
        return StepResult(status, self.params, self.log_density, message, diagnostics)

    def advance(self) -> StepResult:
        """Take one quasi-Newton step and report whether to keep going."""
        self.iteration += 1
        self.note = ""
        if self._g is None:
            return self._result(
                TerminationStatus.LINE_SEARCH_FAILED,
                "Cannot start optimization from a point where the log density fails",
            )

        reset = self.iteration == 1
        while True:
            if reset:
                self._p = -self._g
            self.alpha0 = self._initial_alpha(reset)
            search = wolfe_line_search(
                self._func,
                self._x,
                self._f,
                self._g,
                self._p,
                alpha0=self.alpha0,
                c1=self.c1,
                c2=self.c2,
                min_alpha=self.min_alpha,
                max_iter=self.max_line_search_iterations,
            )
            self.evaluations += search.nfev
            if search.success:
                break
            if reset:
                self.alpha = 0.0
                self.step_size = 0.0
                return self._result(
                    TerminationStatus.LINE_SEARCH_FAILED,
                    TerminationStatus.LINE_SEARCH_FAILED.description,
                )
            logger.debug("Line search failed at iteration %d; resetting", self.iteration)
            self._messages.append(
                f"Iteration {self.iteration}: line search failed, resetting Hessian approximation"
            )
            self.note = "LS failed, Hessian reset"
            reset = True

        s = search.x - self._x
        y = search.grad - self._g
        self._f_prev = self._f
        self._x, self._f, self._g = search.x, search.f, search.grad
        self.alpha = search.alpha
        self.step_size = float(np.linalg.norm(s))

        if float(np.dot(s, y)) > 0:
            self.update.update(s, y, reset)
        else:
            self.note = (self.note + "; " if self.note else "") + "curvature condition failed, update skipped"
        self._p = self.update.search_direction(self._g)

        status, message = self._check_convergence()
        return self._result(status, message)

    def _check_convergence(self) -> tuple[Optional[TerminationStatus], str]:
        policy = self.policy
        f, f_prev = self._f, self._f_prev
        if abs(f_prev - f) < policy.tol_obj:
            return (
                TerminationStatus.OBJECTIVE_CONVERGED,
                "Convergence detected: absolute change in objective function was below tolerance",
            )
        if self.grad_norm < policy.tol_grad:
            return (
                TerminationStatus.GRADIENT_CONVERGED,
                "Convergence detected: gradient norm is below tolerance",
            )
        if self.iteration >= policy.max_iterations:
            return TerminationStatus.MAX_ITERATIONS, TerminationStatus.MAX_ITERATIONS.description
        if (f_prev - f) / max(abs(f_prev), abs(f), 1.0) < policy.tol_rel_obj * EPS:
            return (
                TerminationStatus.OBJECTIVE_CONVERGED,
                "Convergence detected: relative change in objective function was below tolerance",
            )
        if self.step_size < policy.tol_param:
            return TerminationStatus.PARAM_CONVERGED, TerminationStatus.PARAM_CONVERGED.description
        rel_grad = -float(np.dot(self._g, self._p)) / max(abs(f), 1.0)
        if rel_grad < policy.tol_rel_grad * EPS:
            return (
                TerminationStatus.GRADIENT_CONVERGED,
                "Convergence detected: relative gradient magnitude is below tolerance",
            )
        return None, ""


__all__ = ["BFGSLineSearch", "BFGSUpdate", "LBFGSUpdate", "Stepper"]
