"""Pytest configuration and shared fixtures for mapfit tests.

This module provides:
- Deterministic RNG fixtures for numpy and torch
- Small log-density models reused across the optimizer tests
"""

import os

import numpy as np
import pytest
import torch

from mapfit.optimize import Model


def _seed() -> int:
    return int(os.environ.get("TEST_RNG_SEED", "0"))


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).
    """
    return np.random.default_rng(_seed())


@pytest.fixture(scope="function", autouse=True)
def set_random_seeds() -> None:
    """Auto-use fixture to set global random seeds for reproducibility."""
    np.random.seed(_seed())
    torch.manual_seed(_seed())


class CountingModel:
    """Wraps a model and counts calls to ``evaluate``."""

    def __init__(self, model, fail_on=()):
        self._model = model
        self.calls = 0
        self._fail_on = set(fail_on)

    def parameter_names(self):
        return self._model.parameter_names()

    def evaluate(self, params):
        self.calls += 1
        if self.calls in self._fail_on:
            raise RuntimeError(f"evaluation {self.calls} failed on purpose")
        return self._model.evaluate(params)


def _quadratic_model(center, precision=None, names=None) -> Model:
    """Concave quadratic ``-0.5 (x - c)^T P (x - c)`` with its derivatives."""
    center = np.asarray(center, dtype=float)
    precision = np.eye(center.size) if precision is None else np.asarray(precision, dtype=float)

    def log_density(x):
        diff = x - center
        return -0.5 * float(diff @ precision @ diff)

    def grad(x):
        return -precision @ (x - center)

    def hess(_):
        return -precision

    return Model(log_density=log_density, grad=grad, hess=hess, names=names, dim=center.size)


def _rosenbrock_model() -> Model:
    """Negated Rosenbrock function; maximum 0 at (1, 1)."""

    def log_density(x):
        return -((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2)

    def grad(x):
        return -np.array(
            [
                -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
                200 * (x[1] - x[0] ** 2),
            ]
        )

    return Model(log_density=log_density, grad=grad, names=["x", "y"])


@pytest.fixture
def parabola() -> Model:
    """One-dimensional ``-(x - 3)^2``."""
    return Model(
        log_density=lambda x: -float((x[0] - 3.0) ** 2),
        grad=lambda x: np.array([-2.0 * (x[0] - 3.0)]),
        names=["x"],
    )


@pytest.fixture
def quadratic():
    """Factory for concave quadratic models."""
    return _quadratic_model


@pytest.fixture
def rosenbrock() -> Model:
    return _rosenbrock_model()


@pytest.fixture
def counting():
    """Factory wrapping a model in a :class:`CountingModel`."""
    return CountingModel
