"""Strong Wolfe line search following Nocedal & Wright, Algorithms 3.5 and 3.6.

The search minimizes ``f`` along a direction ``p``. ``func`` returns the
objective and its gradient together; a failed evaluation is reported as
``(inf, None)`` so that the trial point simply fails the sufficient-decrease
test and the step shrinks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .core import Array

ValueAndGradient = Callable[[Array], tuple[float, Optional[Array]]]


@dataclass
class LineSearchResult:
    """Accepted point of a line search, or the start point on failure."""

    alpha: float
    x: Array
    f: float
    grad: Optional[Array]
    nfev: int
    success: bool


@dataclass
class _Trial:
    alpha: float
    x: Array
    f: float
    grad: Optional[Array]
    der: float


def wolfe_line_search(
    func: ValueAndGradient,
    x: Array,
    fx: float,
    gx: Array,
    p: Array,
    alpha0: float = 1.0,
    c1: float = 1e-4,
    c2: float = 0.9,
    min_alpha: float = 1e-12,
    max_iter: int = 40,
) -> LineSearchResult:
    """Perform a strong Wolfe line search using bracketing and zoom."""
    if not (0 < c1 < c2 < 1):
        raise ValueError("Require 0 < c1 < c2 < 1 for Wolfe conditions.")

    nfev = 0

    def phi(alpha: float) -> _Trial:
        nonlocal nfev
        nfev += 1
        point = x + alpha * p
        f, g = func(point)
        der = float(np.dot(g, p)) if g is not None else np.nan
        return _Trial(alpha, point, f, g, der)

    start = _Trial(0.0, x, fx, gx, float(np.dot(gx, p)))

    def finish(trial: Optional[_Trial]) -> LineSearchResult:
        if trial is None:
            return LineSearchResult(0.0, x, fx, gx, nfev, False)
        return LineSearchResult(trial.alpha, trial.x, trial.f, trial.grad, nfev, True)

    if not start.der < 0:
        return finish(None)

    prev = start
    alpha = float(alpha0)
    for iteration in range(max_iter):
        trial = phi(alpha)
        if trial.f > fx + c1 * alpha * start.der or (iteration > 0 and trial.f >= prev.f):
            return finish(_zoom(phi, prev, trial, start, c1, c2, min_alpha))
        if abs(trial.der) <= -c2 * start.der:
            return finish(trial)
        if trial.der >= 0:
            return finish(_zoom(phi, trial, prev, start, c1, c2, min_alpha))
        prev = trial
        alpha *= 2.0
    return finish(None)


def _zoom(
    phi: Callable[[float], _Trial],
    lo: _Trial,
    hi: _Trial,
    start: _Trial,
    c1: float,
    c2: float,
    min_alpha: float,
    max_iter: int = 60,
) -> Optional[_Trial]:
    """Zoom stage enforcing strong Wolfe conditions.

    Returns the best sufficient-decrease point when the bracket collapses
    before the curvature condition holds, or None if there is none.
    """
    for _ in range(max_iter):
        if abs(hi.alpha - lo.alpha) < min_alpha:
            break
        trial = phi(0.5 * (lo.alpha + hi.alpha))
        if trial.f > start.f + c1 * trial.alpha * start.der or trial.f >= lo.f:
            hi = trial
        else:
            if abs(trial.der) <= -c2 * start.der:
                return trial
            if trial.der * (hi.alpha - lo.alpha) >= 0:
                hi = lo
            lo = trial
    return lo if lo.alpha > 0 else None


__all__ = ["LineSearchResult", "wolfe_line_search"]
