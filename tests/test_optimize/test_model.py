import math

import numpy as np
import pytest
import torch

from mapfit.optimize import LogDensityModel, Model, TorchModel, evaluate_log_density


def test_model_default_names_follow_dimension():
    model = Model(log_density=lambda x: 0.0, dim=3)
    assert model.parameter_names() == ["theta[1]", "theta[2]", "theta[3]"]


def test_model_requires_names_or_dimension():
    with pytest.raises(ValueError):
        Model(log_density=lambda x: 0.0)
    with pytest.raises(ValueError):
        Model(log_density=lambda x: 0.0, names=["a"], dim=2)


def test_model_falls_back_to_finite_difference_gradient():
    model = Model(log_density=lambda x: -float(np.sum((x - 1.0) ** 2)), names=["a", "b"])
    value, grad = model.evaluate(np.array([0.0, 3.0]))
    assert value == pytest.approx(-5.0)
    assert np.allclose(grad, np.array([2.0, -4.0]), atol=1e-6)
    assert model.hessian(np.zeros(2)) is None


def test_models_satisfy_protocol(quadratic):
    assert isinstance(quadratic([0.0]), LogDensityModel)
    assert isinstance(TorchModel(lambda t: -t.pow(2).sum(), names=["a"]), LogDensityModel)


def test_evaluate_log_density_success(quadratic):
    result = evaluate_log_density(quadratic([1.0, 2.0]), np.array([0.0, 0.0]))
    assert result.ok
    assert result.value == pytest.approx(-2.5)
    assert np.allclose(result.gradient, np.array([1.0, 2.0]))


def test_evaluate_log_density_captures_exceptions():
    def log_density(x):
        raise ValueError("scale parameter must be positive")

    model = Model(log_density=log_density, grad=lambda x: x, names=["sigma"])
    result = evaluate_log_density(model, np.array([-1.0]))
    assert not result.ok
    assert result.value == -math.inf
    assert result.gradient is None
    assert "scale parameter must be positive" in result.error


def test_evaluate_log_density_rejects_non_finite_values():
    model = Model(log_density=lambda x: float("nan"), grad=lambda x: x, names=["a"])
    result = evaluate_log_density(model, np.array([1.0]))
    assert not result.ok
    assert "Non-finite function evaluation" in result.error

    model = Model(log_density=lambda x: 0.0, grad=lambda x: np.array([np.inf]), names=["a"])
    result = evaluate_log_density(model, np.array([1.0]))
    assert not result.ok
    assert "Non-finite gradient" in result.error


def test_evaluate_log_density_wrong_gradient_shape_raises():
    model = Model(log_density=lambda x: 0.0, grad=lambda x: np.zeros(3), names=["a", "b"])
    with pytest.raises(ValueError, match="gradient has shape"):
        evaluate_log_density(model, np.zeros(2))


def test_torch_model_gradient_and_hessian():
    mu = torch.tensor([1.0, -2.0], dtype=torch.float64)
    sigma = torch.tensor([0.5, 2.0], dtype=torch.float64)

    def log_density(theta: torch.Tensor) -> torch.Tensor:
        return -0.5 * (((theta - mu) / sigma) ** 2).sum()

    model = TorchModel(log_density, names=["mu1", "mu2"])
    value, grad = model.evaluate(np.array([0.0, 0.0]))
    assert value == pytest.approx(-0.5 * (4.0 + 1.0))
    assert np.allclose(grad, np.array([4.0, -0.5]))
    hess = model.hessian(np.array([0.0, 0.0]))
    assert np.allclose(hess, np.diag([-4.0, -0.25]))


def test_torch_model_unused_parameter_has_zero_gradient():
    model = TorchModel(lambda theta: -(theta[0] ** 2), names=["used", "unused"])
    _, grad = model.evaluate(np.array([1.0, 5.0]))
    assert np.allclose(grad, np.array([-2.0, 0.0]))


def test_torch_model_rejects_non_scalar_output():
    model = TorchModel(lambda theta: theta * 2.0, names=["a", "b"])
    with pytest.raises(ValueError, match="scalar"):
        model.evaluate(np.array([1.0, 2.0]))
    result = evaluate_log_density(model, np.array([1.0, 2.0]))
    assert not result.ok
