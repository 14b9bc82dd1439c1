import numpy as np
from numpy.linalg import norm
from numpy.testing import assert_allclose, assert_equal, assert_
from scipy.sparse.linalg import LinearOperator

from boxtron.blocks.cauchy import cauchy, compute_Hs_slope_qs


def get_sample_problem(n=6):
    rng = np.random.default_rng(1234)
    A = rng.normal(size=(n, n))
    H = A @ A.T + np.eye(n)
    x = rng.uniform(-0.5, 0.5, n)
    g = rng.normal(scale=5.0, size=n)
    return H, x, g


def test_compute_Hs_slope_qs():
    H = np.diag([1.0, 2.0])
    g = np.array([1.0, -1.0])
    s = np.array([2.0, 1.0])
    Hs, slope, qs = compute_Hs_slope_qs(H, g, s)
    assert_allclose(Hs, [2.0, 2.0])
    assert_allclose(slope, 1.0)
    assert_allclose(qs, 0.5 * 6.0 + 1.0)


def test_cauchy_step_within_radius_with_sufficient_decrease():
    H, x, g = get_sample_problem()
    lb, ub = -np.ones(x.size), np.ones(x.size)
    for delta in (1e-3, 0.1, 1.0, 10.0):
        for alpha in (1e-2, 1.0, 100.0):
            a, s, status = cauchy(x, H, g, delta, alpha, lb, ub)
            assert_equal(status, "success")
            assert_(a > 0.0)
            assert_(norm(s) <= delta * (1.0 + 1e-12))
            _, slope, qs = compute_Hs_slope_qs(H, g, s)
            assert_(qs <= 1e-2 * slope + 1e-12)
            assert_(np.all(x + s >= lb - 1e-14))
            assert_(np.all(x + s <= ub + 1e-14))


def test_cauchy_respects_mu1():
    H, x, g = get_sample_problem()
    lb, ub = np.full(x.size, -np.inf), np.full(x.size, np.inf)
    _, s, status = cauchy(x, H, g, 1.0, 1.0, lb, ub, mu1=0.1)
    assert_equal(status, "success")
    assert_(norm(s) <= 0.1 * (1.0 + 1e-12))


def test_cauchy_extends_short_warm_start():
    H = np.eye(2)
    g = np.array([1.0, 0.0])
    x = np.zeros(2)
    lb, ub = np.full(2, -np.inf), np.full(2, np.inf)
    alpha, s, status = cauchy(x, H, g, 1.5, 1e-3, lb, ub)
    assert_equal(status, "success")
    assert_allclose(alpha, 1.0)
    assert_allclose(s, [-1.0, 0.0])


def test_cauchy_extension_stops_at_last_breakpoint():
    H = np.eye(2)
    g = np.array([1.0, 1.0])
    x = np.array([0.5, 0.5])
    lb, ub = np.zeros(2), np.ones(2)
    alpha, s, status = cauchy(x, H, g, 10.0, 1e-3, lb, ub)
    assert_equal(status, "success")
    assert_allclose(x + s, [0.0, 0.0])


def test_cauchy_small_step_without_descent():
    H, x, _ = get_sample_problem()
    lb, ub = -np.ones(x.size), np.ones(x.size)
    _, _, status = cauchy(x, H, np.zeros(x.size), 1.0, 1.0, lb, ub)
    assert_equal(status, "small_step")


def test_cauchy_skips_model_outside_radius():
    calls = []

    def matvec(v):
        calls.append(1)
        return np.asarray(v, dtype=float).copy()

    H = LinearOperator((2, 2), matvec=matvec, dtype=np.float64)
    g = np.array([1.0, 0.0])
    lb, ub = np.full(2, -np.inf), np.full(2, np.inf)
    # α = 1 overshoots the radius, α = 0.1 is accepted
    alpha, s, status = cauchy(np.zeros(2), H, g, 0.5, 1.0, lb, ub)
    assert_equal(status, "success")
    assert_allclose(alpha, 0.1)
    assert_allclose(s, [-0.1, 0.0])
    assert_equal(len(calls), 1)
