import math

import numpy as np
import pytest

from mapfit.optimize import (
    BFGSLineSearch,
    BFGSUpdate,
    ConvergencePolicy,
    LBFGSUpdate,
    Model,
    TerminationStatus,
)

CONVERGED = {
    TerminationStatus.GRADIENT_CONVERGED,
    TerminationStatus.OBJECTIVE_CONVERGED,
    TerminationStatus.PARAM_CONVERGED,
}


def run_to_completion(stepper, limit=5000):
    for _ in range(limit):
        result = stepper.advance()
        if result.status is not None:
            return result
    raise AssertionError("stepper did not terminate")


def test_bfgs_update_satisfies_secant_equation():
    update = BFGSUpdate()
    s = np.array([0.5, -0.25])
    y = np.array([1.0, 0.2])
    update.update(s, y, reset=True)
    grad = np.array([0.3, -0.7])
    direction = update.search_direction(grad)
    # H y = s, so the direction for gradient y is -s
    assert np.allclose(update.search_direction(y), -s)
    assert direction @ grad < 0


def test_bfgs_update_without_history_is_steepest_descent():
    grad = np.array([1.0, -2.0])
    assert np.allclose(BFGSUpdate().search_direction(grad), -grad)


def test_lbfgs_update_matches_bfgs_for_single_pair():
    s = np.array([0.5, -0.25])
    y = np.array([1.0, 0.2])
    dense = BFGSUpdate()
    limited = LBFGSUpdate(history_size=3)
    dense.update(s, y, reset=True)
    limited.update(s, y, reset=True)
    grad = np.array([0.3, -0.7])
    assert np.allclose(limited.search_direction(grad), dense.search_direction(grad))


def test_lbfgs_zero_history_gives_scaled_steepest_descent():
    update = LBFGSUpdate(history_size=0)
    s = np.array([1.0, 0.0])
    y = np.array([2.0, 0.0])
    update.update(s, y, reset=False)
    assert np.allclose(update.search_direction(np.array([1.0, 1.0])), -0.5 * np.ones(2))


def test_lbfgs_history_is_bounded():
    update = LBFGSUpdate(history_size=2)
    for k in range(5):
        update.update(np.array([1.0 + k, 0.0]), np.array([1.0, 0.5]), reset=False)
    assert len(update._s_history) == 2


def test_lbfgs_negative_history_rejected():
    with pytest.raises(ValueError):
        LBFGSUpdate(history_size=-1)


@pytest.mark.parametrize("update", [BFGSUpdate(), LBFGSUpdate(5)], ids=["bfgs", "lbfgs"])
def test_stepper_converges_on_concave_quadratic(quadratic, update):
    A = np.array([[3.0, 0.5], [0.5, 2.0]])
    model = quadratic([1.0, -2.0], precision=A)
    stepper = BFGSLineSearch(model, np.array([4.0, 4.0]), update=update)
    result = run_to_completion(stepper)
    assert result.status in CONVERGED
    assert np.allclose(result.params, [1.0, -2.0], atol=1e-4)
    assert result.log_density == pytest.approx(0.0, abs=1e-8)
    assert stepper.iteration < 50


@pytest.mark.parametrize("update", [BFGSUpdate(), LBFGSUpdate(7)], ids=["bfgs", "lbfgs"])
def test_stepper_reaches_rosenbrock_maximum(rosenbrock, update):
    stepper = BFGSLineSearch(rosenbrock, np.array([-1.2, 1.0]), update=update)
    result = run_to_completion(stepper)
    assert result.status in CONVERGED
    assert np.allclose(result.params, [1.0, 1.0], atol=1e-3)
    assert result.log_density > -1e-6


def test_stepper_log_density_never_decreases(rosenbrock):
    stepper = BFGSLineSearch(rosenbrock, np.array([-1.2, 1.0]), update=LBFGSUpdate(5))
    previous = stepper.log_density
    for _ in range(20):
        result = stepper.advance()
        assert result.log_density >= previous
        previous = result.log_density
        if result.status is not None:
            break


def test_stepper_reports_diagnostics(quadratic):
    stepper = BFGSLineSearch(quadratic([1.0]), np.array([0.0]))
    result = stepper.advance()
    diag = result.diagnostics
    assert diag is not None
    assert diag.alpha0 == pytest.approx(1e-3)
    assert diag.alpha > 0
    assert diag.step_size == pytest.approx(abs(result.params[0]))
    assert diag.evaluations >= 2
    assert stepper.iteration == 1


def test_stepper_iteration_cap(rosenbrock):
    stepper = BFGSLineSearch(
        rosenbrock, np.array([-1.2, 1.0]), policy=ConvergencePolicy(max_iterations=3)
    )
    result = run_to_completion(stepper)
    assert result.status is TerminationStatus.MAX_ITERATIONS
    assert stepper.iteration == 3
    assert result.message == TerminationStatus.MAX_ITERATIONS.description


def test_stepper_loose_gradient_tolerance(quadratic):
    policy = ConvergencePolicy(tol_grad=10.0)
    stepper = BFGSLineSearch(quadratic([1.0, 1.0]), np.zeros(2), policy=policy)
    result = stepper.advance()
    assert result.status is TerminationStatus.GRADIENT_CONVERGED
    assert "gradient norm" in result.message


def test_stepper_initial_failure_stops_with_line_search_failure():
    def log_density(x):
        raise ValueError("cannot evaluate")

    errors = []
    model = Model(log_density=log_density, grad=lambda x: x, names=["a"])
    stepper = BFGSLineSearch(model, np.array([1.0]), on_error=errors.append)
    assert len(errors) == 1
    assert stepper.log_density == -math.inf
    assert stepper.drain_messages()
    assert stepper.drain_messages() == []
    result = stepper.advance()
    assert result.status is TerminationStatus.LINE_SEARCH_FAILED
    assert np.array_equal(result.params, np.array([1.0]))


def test_stepper_line_search_failure_is_terminal():
    # Only the starting point can be evaluated
    def log_density(x):
        if x[0] != 0.0:
            raise ValueError("outside support")
        return -1.0

    errors = []
    model = Model(log_density=log_density, grad=lambda x: np.array([1.0]), names=["a"])
    stepper = BFGSLineSearch(model, np.array([0.0]), on_error=errors.append)
    result = stepper.advance()
    assert result.status is TerminationStatus.LINE_SEARCH_FAILED
    assert result.status.is_error
    assert result.log_density == -1.0
    assert errors
    assert all("outside support" in message for message in errors)


def test_stepper_does_not_modify_initial_params(quadratic):
    x0 = np.array([3.0, 3.0])
    stepper = BFGSLineSearch(quadratic([0.0, 0.0]), x0)
    run_to_completion(stepper)
    assert np.array_equal(x0, np.array([3.0, 3.0]))


@pytest.mark.parametrize("fail_on", [(), (3, 4)])
def test_stepper_evaluation_count_matches_model_calls(rosenbrock, counting, fail_on):
    model = counting(rosenbrock, fail_on=fail_on)
    stepper = BFGSLineSearch(model, np.array([-1.2, 1.0]))
    assert stepper.evaluations == model.calls == 1
    for _ in range(5):
        result = stepper.advance()
        assert result.diagnostics.evaluations == model.calls
        if result.status is not None:
            break
