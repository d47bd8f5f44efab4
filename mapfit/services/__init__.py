"""Configuration, output sinks and the algorithm dispatcher."""

from .config import (
    BFGSConfig,
    ConfigError,
    LBFGSConfig,
    NewtonConfig,
    OptimizeConfig,
    QuasiNewtonConfig,
    RunConfig,
    UnknownAlgorithmError,
    parse_config,
)
from .optimize import optimize
from .writers import MemoryOutputWriter, NullOutputWriter, OutputWriter, Writers, log_writer

__all__ = [
    "BFGSConfig",
    "ConfigError",
    "LBFGSConfig",
    "MemoryOutputWriter",
    "NewtonConfig",
    "NullOutputWriter",
    "OptimizeConfig",
    "OutputWriter",
    "QuasiNewtonConfig",
    "RunConfig",
    "UnknownAlgorithmError",
    "Writers",
    "log_writer",
    "optimize",
    "parse_config",
]
