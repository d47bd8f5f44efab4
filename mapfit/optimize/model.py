"""Model adapters exposing a log density and its gradient."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import torch

from .core import Array, LogDensityResult
from .utils import approx_grad


@runtime_checkable
class LogDensityModel(Protocol):
    """What the drivers need from a probabilistic model.

    ``evaluate`` returns the log density and its gradient at ``params`` and
    may raise when the density cannot be computed there. Models may also
    provide ``hessian(params)``; Newton's method uses it when it returns an
    array and falls back to finite differences of the gradient otherwise.
    """

    def parameter_names(self) -> list[str]: ...

    def evaluate(self, params: Array) -> tuple[float, Array]: ...


@dataclass(frozen=True)
class Model:
    """Log-density model built from plain NumPy callables."""

    log_density: Callable[[Array], float]
    grad: Optional[Callable[[Array], Array]] = None
    hess: Optional[Callable[[Array], Array]] = None
    names: Optional[Sequence[str]] = None
    dim: Optional[int] = None

    def __post_init__(self) -> None:
        if self.names is None and self.dim is None:
            raise ValueError("Model needs either parameter names or a dimension.")
        if self.names is not None and self.dim is not None and len(self.names) != self.dim:
            raise ValueError(f"Got {len(self.names)} parameter names for dimension {self.dim}.")

    def parameter_names(self) -> list[str]:
        if self.names is not None:
            return list(self.names)
        return [f"theta[{i + 1}]" for i in range(self.dim)]

    def evaluate(self, params: Array) -> tuple[float, Array]:
        value = float(self.log_density(params))
        if self.grad is not None:
            return value, np.asarray(self.grad(params), dtype=float)
        return value, approx_grad(self.log_density, params)

    def hessian(self, params: Array) -> Optional[Array]:
        if self.hess is None:
            return None
        return np.asarray(self.hess(params), dtype=float)


class TorchModel:
    """Log-density model differentiated with PyTorch autograd.

    Args:
        log_density: Callable taking a 1D float64 tensor and returning a
            scalar tensor.
        names: Parameter names, one per element of the parameter vector.
    """

    def __init__(
        self,
        log_density: Callable[[torch.Tensor], torch.Tensor],
        names: Sequence[str],
        dtype: torch.dtype = torch.float64,
    ) -> None:
        self._log_density = log_density
        self._names = list(names)
        self._dtype = dtype

    def parameter_names(self) -> list[str]:
        return list(self._names)

    def _as_tensor(self, params: Array) -> torch.Tensor:
        return torch.as_tensor(np.asarray(params, dtype=float), dtype=self._dtype)

    def evaluate(self, params: Array) -> tuple[float, Array]:
        params_local = self._as_tensor(params).clone().detach().requires_grad_(True)
        value = self._log_density(params_local)
        if value.ndim != 0:
            raise ValueError(
                f"log density must return a scalar tensor (0D), got shape {tuple(value.shape)}"
            )
        (grad,) = torch.autograd.grad(value, params_local, allow_unused=True)
        if grad is None:
            grad = torch.zeros_like(params_local)
        return float(value.detach()), grad.detach().cpu().numpy().astype(float)

    def hessian(self, params: Array) -> Array:
        hess = torch.autograd.functional.hessian(self._log_density, self._as_tensor(params))
        return hess.detach().cpu().numpy().astype(float)


def evaluate_log_density(model: LogDensityModel, params: Array) -> LogDensityResult:
    """Evaluate ``model`` at ``params`` without letting a failure escape.

    Exceptions raised by the model and non-finite values or gradients become
    a failed :class:`LogDensityResult` carrying ``-inf`` and the message.
    """
    try:
        value, grad = model.evaluate(params)
    except Exception as exc:  # the model may fail in arbitrary ways
        return LogDensityResult.failure(_format_failure(exc))
    value = float(value)
    grad = np.asarray(grad, dtype=float)
    if grad.shape != np.shape(params):
        raise ValueError(
            f"Model gradient has shape {grad.shape}, expected {np.shape(params)}."
        )
    if not np.isfinite(value):
        return LogDensityResult.failure(
            f"Error evaluating model log probability: Non-finite function evaluation ({value})."
        )
    if not np.all(np.isfinite(grad)):
        return LogDensityResult.failure(
            "Error evaluating model log probability: Non-finite gradient."
        )
    return LogDensityResult(value=value, gradient=grad)


def _format_failure(exc: BaseException) -> str:
    detail = str(exc) or type(exc).__name__
    return f"Error evaluating model log probability: {detail}"


__all__ = ["LogDensityModel", "Model", "TorchModel", "evaluate_log_density"]
