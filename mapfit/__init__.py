"""mapfit - MAP and maximum-likelihood point estimates for differentiable models."""

__version__ = "0.1.0"

from .logging import configure_logging, get_logger, set_log_level
from .optimize import (
    ConvergencePolicy,
    IterationRecord,
    LogDensityModel,
    LogDensityResult,
    Model,
    TerminationStatus,
    TorchModel,
    evaluate_log_density,
)
from .services import (
    BFGSConfig,
    ConfigError,
    LBFGSConfig,
    MemoryOutputWriter,
    NewtonConfig,
    UnknownAlgorithmError,
    Writers,
    optimize,
    parse_config,
)

__all__ = [
    "__version__",
    "BFGSConfig",
    "ConfigError",
    "ConvergencePolicy",
    "IterationRecord",
    "LBFGSConfig",
    "LogDensityModel",
    "LogDensityResult",
    "MemoryOutputWriter",
    "Model",
    "NewtonConfig",
    "TerminationStatus",
    "TorchModel",
    "UnknownAlgorithmError",
    "Writers",
    "configure_logging",
    "get_logger",
    "optimize",
    "parse_config",
    "set_log_level",
]
