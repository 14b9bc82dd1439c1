# rosenbrock.py
# Bound-constrained Rosenbrock and a box-constrained quadratic solved with TRON,
# with the exact Hessian, L-BFGS and L-SR1 models.

import logging

import numpy as np

from boxtron.problem import FunctionProblem, QuadraticProblem
from boxtron.tron import tron

# ---------------------------
# Test problems
# ---------------------------

def rosenbrock(x: np.ndarray, a: float = 1.0, b: float = 100.0) -> float:
    """
    Rosenbrock function in 2D:
        f(x, y) = (a - x)^2 + b (y - x^2)^2
    Global min at (x, y) = (a, a^2), f = 0
    """
    x1, x2 = x
    return (a - x1) ** 2 + b * (x2 - x1 ** 2) ** 2


def rosenbrock_grad(x: np.ndarray, a: float = 1.0, b: float = 100.0) -> np.ndarray:
    x1, x2 = x
    return np.array([-2.0 * (a - x1) - 4.0 * b * x1 * (x2 - x1 ** 2), 2.0 * b * (x2 - x1 ** 2)])


def rosenbrock_hess(x: np.ndarray, b: float = 100.0) -> np.ndarray:
    x1, x2 = x
    return np.array(
        [[2.0 - 4.0 * b * x2 + 12.0 * b * x1 ** 2, -4.0 * b * x1], [-4.0 * b * x1, 2.0 * b]]
    )


def random_box_qp(n: int, seed: int = 0) -> QuadraticProblem:
    rng = np.random.default_rng(seed)
    A = rng.normal(size=(n, n))
    Q = A @ A.T + 0.1 * np.eye(n)
    c = rng.normal(scale=5.0, size=n)
    return QuadraticProblem(Q, c, np.zeros(n), lvar=-np.ones(n), uvar=np.ones(n), name="box-qp")


# ---------------------------
# Utility to run a single solve
# ---------------------------

def run(nlp, variant: str = "Newton", **options) -> None:
    nlp.reset()
    stats = tron(nlp, variant, **options)
    print(f"{nlp.meta.name:>12} [{variant:>6}]  {stats}")
    print(f"{'':>12}  iter={stats.iter}  f={stats.objective:.6e}  π={stats.dual_feas:.2e}"
          f"  #f={nlp.neval_obj()}  t={stats.elapsed_time:.3f}s")
    print(f"{'':>12}  x* = {np.array2string(stats.solution, precision=6)}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    rb = FunctionProblem(
        rosenbrock, rosenbrock_grad, [-1.2, 1.0],
        lvar=[-2.0, -2.0], uvar=[0.8, 2.0], hess=rosenbrock_hess, name="rosenbrock",
    )
    run(rb, verbose=5)
    for variant in ("LBFGS", "LSR1"):
        run(rb, variant, max_iter=500)

    qp = random_box_qp(20)
    run(qp)
    run(qp, "LBFGS", max_iter=500)
