"""Finite-difference and linear algebra helpers for the optimizers.

Pure NumPy implementations suitable for the small to medium parameter
vectors of point-estimation problems.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

Array = np.ndarray
Objective = Callable[[Array], float]
Gradient = Callable[[Array], Array]


def approx_grad(fun: Objective, x: Array, eps: float = 1e-6) -> Array:
    """Compute a central-difference gradient approximation.

    Parameters
    ----------
    fun:
        Scalar function of x.
    x:
        Point where the gradient is approximated.
    eps:
        Perturbation size for finite differences.
    """
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    grad = np.zeros_like(x, dtype=float)
    for i in range(x.size):
        ei = np.zeros_like(x)
        ei[i] = eps
        grad[i] = (fun(x + ei) - fun(x - ei)) / (2.0 * eps)
    return grad


def finite_diff_hessian(grad: Gradient, x: Array, eps: float = 1e-5) -> Array:
    """Approximate the Hessian by central differences of the gradient.

    The result is symmetrized.
    """
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    n = x.size
    hess = np.zeros((n, n), dtype=float)
    for i in range(n):
        ei = np.zeros_like(x)
        ei[i] = eps
        hess[:, i] = (np.asarray(grad(x + ei)) - np.asarray(grad(x - ei))) / (2.0 * eps)
    return 0.5 * (hess + hess.T)


def make_negative_definite_and_solve(hess: Array, grad: Array, floor: float = 1e-12) -> Array:
    """Return the ascent direction ``V |L|^-1 V^T g`` for a Hessian ``V L V^T``.

    Flipping the sign of every eigenvalue to negative turns the Newton system
    into one whose solution always increases the objective. Eigenvalue
    magnitudes below ``floor`` are clamped to it.
    """
    sym = 0.5 * (hess + hess.T)
    eigvals, eigvecs = np.linalg.eigh(sym)
    projections = eigvecs.T @ grad
    projections = projections / np.maximum(np.abs(eigvals), floor)
    return eigvecs @ projections


__all__ = [
    "Array",
    "Gradient",
    "Objective",
    "approx_grad",
    "finite_diff_hessian",
    "make_negative_definite_and_solve",
]
