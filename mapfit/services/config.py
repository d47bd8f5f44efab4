"""Typed optimization settings resolved once at the dispatcher boundary.

Each algorithm gets its own frozen dataclass, so a driver always receives
settings that have already been validated:

- ``NewtonConfig``: ``iter``, ``save_iterations``, ``refresh``
- ``BFGSConfig``: the above plus ``init_alpha`` and the five tolerances
- ``LBFGSConfig``: the BFGS settings plus ``history_size``
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, fields, replace
from typing import Any, ClassVar, Mapping, Optional, Union

import numpy as np

from mapfit.optimize.core import ConvergencePolicy


class ConfigError(ValueError):
    """Raised for malformed optimization settings."""


class UnknownAlgorithmError(ConfigError):
    """Raised when the requested algorithm name is not recognized."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Unknown optimization algorithm '{name}'. Supported algorithms: {sorted(ALGORITHMS)}"
        )


def _check_int(name: str, value: Any, minimum: int) -> int:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Integral):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        qualifier = "positive" if minimum == 1 else f">= {minimum}"
        raise ConfigError(f"{name} must be {qualifier}, got {value}")
    return int(value)


def _check_positive_real(name: str, value: Any) -> float:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Real):
        raise ConfigError(f"{name} must be a real number, got {value!r}")
    if not (math.isfinite(value) and value > 0):
        raise ConfigError(f"{name} must be a positive finite number, got {value}")
    return float(value)


@dataclass(frozen=True)
class RunConfig:
    """Settings every algorithm accepts.

    Args:
        iter: Maximum number of iterations.
        save_iterations: Emit every iterate, not just the final one.
        refresh: Progress reporting interval; 0 disables it.
    """

    algorithm: ClassVar[str] = ""

    iter: int = 2000
    save_iterations: bool = False
    refresh: int = 100

    def __post_init__(self) -> None:
        object.__setattr__(self, "iter", _check_int("iter", self.iter, 1))
        object.__setattr__(self, "refresh", _check_int("refresh", self.refresh, 0))
        if not isinstance(self.save_iterations, (bool, np.bool_)):
            raise ConfigError(f"save_iterations must be a bool, got {self.save_iterations!r}")
        object.__setattr__(self, "save_iterations", bool(self.save_iterations))


@dataclass(frozen=True)
class NewtonConfig(RunConfig):
    """Settings for Newton's method."""

    algorithm: ClassVar[str] = "newton"


@dataclass(frozen=True)
class QuasiNewtonConfig(RunConfig):
    """Settings shared by BFGS and L-BFGS."""

    init_alpha: float = 1e-3
    tol_obj: float = 1e-12
    tol_rel_obj: float = 1e4
    tol_grad: float = 1e-8
    tol_rel_grad: float = 1e7
    tol_param: float = 1e-8

    def __post_init__(self) -> None:
        super().__post_init__()
        for name in ("init_alpha", "tol_obj", "tol_rel_obj", "tol_grad", "tol_rel_grad", "tol_param"):
            object.__setattr__(self, name, _check_positive_real(name, getattr(self, name)))

    def policy(self) -> ConvergencePolicy:
        return ConvergencePolicy(
            max_iterations=self.iter,
            tol_obj=self.tol_obj,
            tol_rel_obj=self.tol_rel_obj,
            tol_grad=self.tol_grad,
            tol_rel_grad=self.tol_rel_grad,
            tol_param=self.tol_param,
            init_alpha=self.init_alpha,
        )


@dataclass(frozen=True)
class BFGSConfig(QuasiNewtonConfig):
    """Settings for dense BFGS."""

    algorithm: ClassVar[str] = "bfgs"


@dataclass(frozen=True)
class LBFGSConfig(QuasiNewtonConfig):
    """Settings for L-BFGS; ``history_size`` correction pairs are kept."""

    algorithm: ClassVar[str] = "lbfgs"

    history_size: int = 5

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "history_size", _check_int("history_size", self.history_size, 1))

    def policy(self) -> ConvergencePolicy:
        return replace(super().policy(), history_size=self.history_size)


OptimizeConfig = Union[NewtonConfig, BFGSConfig, LBFGSConfig]

ALGORITHMS: dict[str, type[RunConfig]] = {
    "newton": NewtonConfig,
    "bfgs": BFGSConfig,
    "lbfgs": LBFGSConfig,
}


def parse_config(
    algorithm: Optional[str] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> OptimizeConfig:
    """Build the typed settings for ``algorithm`` from a flat option mapping.

    The algorithm may be given directly or as the ``algorithm`` option;
    it defaults to ``lbfgs``.

    Raises:
        UnknownAlgorithmError: If the algorithm name is not recognized.
        ConfigError: If an option is unknown for the algorithm or invalid.
    """
    opts = dict(options or {})
    named = opts.pop("algorithm", None)
    if algorithm is not None and named is not None and str(named).lower() != algorithm.lower():
        raise ConfigError(
            f"Conflicting algorithm settings: '{algorithm}' and option algorithm='{named}'"
        )
    name = algorithm if algorithm is not None else (named if named is not None else "lbfgs")
    config_cls = ALGORITHMS.get(str(name).lower())
    if config_cls is None:
        raise UnknownAlgorithmError(str(name))

    allowed = {f.name for f in fields(config_cls)}
    unknown = sorted(set(opts) - allowed)
    if unknown:
        raise ConfigError(
            f"Option(s) {unknown} not recognized for algorithm '{config_cls.algorithm}'"
        )
    return config_cls(**opts)


__all__ = [
    "ALGORITHMS",
    "BFGSConfig",
    "ConfigError",
    "LBFGSConfig",
    "NewtonConfig",
    "OptimizeConfig",
    "QuasiNewtonConfig",
    "RunConfig",
    "UnknownAlgorithmError",
    "parse_config",
]
