"""Entry point that selects and runs one of the point-estimation algorithms."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

import numpy as np

from mapfit.logging import get_logger
from mapfit.optimize.core import LOG_DENSITY_NAME, Array, Interrupt, TerminationStatus
from mapfit.optimize.driver import quasi_newton_optimize
from mapfit.optimize.model import LogDensityModel
from mapfit.optimize.newton import newton_optimize

from .config import (
    ConfigError,
    NewtonConfig,
    QuasiNewtonConfig,
    RunConfig,
    UnknownAlgorithmError,
    parse_config,
)
from .writers import Writers

logger = get_logger(__name__)


def optimize(
    model: LogDensityModel,
    initial_params: Array,
    algorithm: Union[str, RunConfig, None] = None,
    options: Optional[Mapping[str, Any]] = None,
    *,
    writers: Optional[Writers] = None,
    interrupt: Optional[Interrupt] = None,
) -> TerminationStatus:
    """Find a local maximum of the model's log density.

    Args:
        model: Model exposing ``parameter_names()`` and ``evaluate(params)``.
        initial_params: Starting point, one value per parameter name. It is
            copied and never modified.
        algorithm: ``"newton"``, ``"bfgs"`` or ``"lbfgs"`` (default, unless
            ``options`` names one), or an already
            built :class:`~mapfit.services.config.NewtonConfig`,
            :class:`~mapfit.services.config.BFGSConfig` or
            :class:`~mapfit.services.config.LBFGSConfig`.
        options: Flat option mapping (``iter``, ``save_iterations``,
            ``refresh``, ``init_alpha``, ``tol_*``, ``history_size``). Not
            allowed together with a config instance.
        writers: Output, info and error sinks; defaults log messages and
            discard iterates.
        interrupt: Called once per iteration; returning True stops the run
            with ``INTERRUPTED``.

    Returns:
        The run's termination status. An unknown algorithm name yields
        ``USAGE_ERROR`` without evaluating the model.

    Raises:
        ConfigError: If the options are malformed.
        ValueError: If ``initial_params`` does not match the model.
    """
    writers = writers if writers is not None else Writers()
    names = list(model.parameter_names())
    params = np.array(initial_params, dtype=float)
    if params.ndim != 1 or params.size != len(names):
        raise ValueError(
            f"initial_params must be a 1D vector of length {len(names)}, got shape {params.shape}"
        )

    writers.output.write_header([LOG_DENSITY_NAME, *names])

    if isinstance(algorithm, RunConfig):
        if options:
            raise ConfigError("options cannot be combined with a config instance")
        config = algorithm
    else:
        try:
            config = parse_config(algorithm, options)
        except UnknownAlgorithmError as exc:
            writers.error(str(exc))
            return TerminationStatus.USAGE_ERROR

    logger.debug("Dispatching %s from %s", config.algorithm, params)
    if isinstance(config, NewtonConfig):
        return newton_optimize(model, params, config, writers, interrupt)
    if isinstance(config, QuasiNewtonConfig):
        return quasi_newton_optimize(model, params, config, writers, interrupt)
    writers.error(f"Unsupported configuration type {type(config).__name__}")
    return TerminationStatus.USAGE_ERROR


__all__ = ["optimize"]
