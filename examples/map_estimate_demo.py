"""
Example: MAP Estimation with mapfit

Fits the mean and log standard deviation of a normal model to a small data
set with each of the three algorithms, then shows how to keep every iterate
and how an interrupt hook stops a run early.
"""

import numpy as np
import torch

from mapfit import (
    MemoryOutputWriter,
    Model,
    TorchModel,
    Writers,
    optimize,
)

DATA = torch.tensor([2.1, 1.7, 2.6, 1.9, 2.4, 2.2, 1.8, 2.3], dtype=torch.float64)


def normal_log_density(theta: torch.Tensor) -> torch.Tensor:
    """Normal likelihood with a N(0, 10^2) prior on the mean."""
    mu, log_sigma = theta[0], theta[1]
    sigma = torch.exp(log_sigma)
    log_lik = -DATA.numel() * log_sigma - 0.5 * (((DATA - mu) / sigma) ** 2).sum()
    return log_lik - 0.5 * (mu / 10.0) ** 2


def quiet_writers(output):
    """Collect iterates in ``output`` and drop progress messages."""
    return Writers(output=output, info=lambda message: None, error=print)


def example_all_algorithms():
    print("=" * 60)
    print("Example 1: Newton, BFGS and L-BFGS on a normal model")
    print("=" * 60)

    model = TorchModel(normal_log_density, names=["mu", "log_sigma"])
    for algorithm in ("newton", "bfgs", "lbfgs"):
        output = MemoryOutputWriter()
        status = optimize(model, np.array([0.0, 0.0]), algorithm, writers=quiet_writers(output))
        final = output.last
        mu, log_sigma = final.params
        print(f"{algorithm:>7}: status={status.name}, iterations={final.index}")
        print(f"         MAP estimate mu={mu:.4f}, sigma={np.exp(log_sigma):.4f}, lp={final.log_density:.4f}")
    print()


def example_save_iterations():
    print("=" * 60)
    print("Example 2: Recording every iterate")
    print("=" * 60)

    model = Model(
        log_density=lambda x: -float((x[0] - 1.0) ** 2 + 10.0 * (x[1] + 2.0) ** 2),
        grad=lambda x: np.array([-2.0 * (x[0] - 1.0), -20.0 * (x[1] + 2.0)]),
        names=["a", "b"],
    )
    output = MemoryOutputWriter()
    status = optimize(
        model,
        np.array([5.0, 5.0]),
        "bfgs",
        {"save_iterations": True, "tol_grad": 1e-10},
        writers=quiet_writers(output),
    )
    print(f"Status: {status.description}")
    print("Header: " + ", ".join(output.headers[0]))
    for record in output.records:
        print("  " + ", ".join(f"{value:.6g}" for value in record.values()))
    print()


def example_interrupt():
    print("=" * 60)
    print("Example 3: Stopping a run from an interrupt hook")
    print("=" * 60)

    calls = []

    def stop_after_five():
        calls.append(1)
        return len(calls) >= 5

    model = TorchModel(
        lambda x: -((1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2),
        names=["x", "y"],
    )
    output = MemoryOutputWriter()
    status = optimize(
        model,
        np.array([-1.2, 1.0]),
        "lbfgs",
        writers=quiet_writers(output),
        interrupt=stop_after_five,
    )
    print(f"Status: {status.name} after {output.last.index} iterations")
    print(f"Last iterate: {output.last.params}")
    print()


if __name__ == "__main__":
    example_all_algorithms()
    example_save_iterations()
    example_interrupt()

    print("=" * 60)
    print("All examples completed successfully!")
    print("=" * 60)
