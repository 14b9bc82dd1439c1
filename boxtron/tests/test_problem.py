import numpy as np
import scipy.sparse as sp
from numpy.testing import assert_allclose, assert_array_equal, assert_equal, assert_
from pytest import raises as assert_raises

from boxtron.problem import FunctionProblem, QuadraticProblem


def rosenbrock(x):
    return (1.0 - x[0]) ** 2 + 100.0 * (x[1] - x[0] ** 2) ** 2


def rosenbrock_grad(x):
    return np.array(
        [-2.0 * (1.0 - x[0]) - 400.0 * x[0] * (x[1] - x[0] ** 2), 200.0 * (x[1] - x[0] ** 2)]
    )


def rosenbrock_hess(x):
    return np.array(
        [[2.0 - 400.0 * x[1] + 1200.0 * x[0] ** 2, -400.0 * x[0]], [-400.0 * x[0], 200.0]]
    )


def test_counters():
    nlp = FunctionProblem(rosenbrock, rosenbrock_grad, [-1.2, 1.0])
    x = nlp.meta.x0
    nlp.obj(x)
    nlp.grad(x)
    nlp.objgrad(x)
    assert_equal(nlp.counters.neval_obj, 1)
    assert_equal(nlp.counters.neval_grad, 1)
    assert_equal(nlp.counters.neval_objgrad, 1)
    assert_equal(nlp.neval_obj(), 2)
    nlp.reset()
    assert_equal(nlp.neval_obj(), 0)


def test_grad_in_place():
    nlp = FunctionProblem(rosenbrock, rosenbrock_grad, [-1.2, 1.0])
    out = np.zeros(2)
    res = nlp.grad(nlp.meta.x0, out=out)
    assert_(res is out)
    assert_allclose(out, rosenbrock_grad(nlp.meta.x0))
    f, g = nlp.objgrad(nlp.meta.x0, out=out)
    assert_allclose(f, 24.2)
    assert_(g is out)


def test_hess_op_from_dense_hessian():
    nlp = FunctionProblem(rosenbrock, rosenbrock_grad, [-1.2, 1.0], hess=rosenbrock_hess)
    x = nlp.meta.x0
    v = np.array([0.3, -1.0])
    assert_allclose(nlp.hess_op(x) @ v, rosenbrock_hess(x) @ v)
    assert_allclose(nlp.hprod(x, v), rosenbrock_hess(x) @ v)
    assert_equal(nlp.counters.neval_hess_op, 1)


def test_hess_op_from_hprod():
    nlp = FunctionProblem(
        rosenbrock, rosenbrock_grad, [-1.2, 1.0], hprod=lambda x, v: rosenbrock_hess(x) @ v
    )
    x = nlp.meta.x0
    H = nlp.hess_op(x)
    v = np.array([1.0, 2.0])
    assert_allclose(H @ v, rosenbrock_hess(x) @ v)
    assert_equal(nlp.counters.neval_hprod, 1)


def test_hess_op_by_finite_differences():
    nlp = FunctionProblem(rosenbrock, rosenbrock_grad, [-1.2, 1.0])
    x = nlp.meta.x0
    H = nlp.hess_op(x)
    for v in (np.array([1.0, 0.0]), np.array([0.0, 1.0]), np.array([0.7, -0.2])):
        assert_allclose(H @ v, rosenbrock_hess(x) @ v, rtol=1e-5, atol=1e-5)
    assert_allclose(H @ np.zeros(2), np.zeros(2))


def test_hess_op_is_bound_to_its_point():
    nlp = FunctionProblem(rosenbrock, rosenbrock_grad, [-1.2, 1.0], hess=rosenbrock_hess)
    x = nlp.meta.x0.copy()
    H = nlp.hess_op(x)
    x[:] = 0.0
    v = np.array([1.0, 1.0])
    assert_allclose(H @ v, rosenbrock_hess(nlp.meta.x0) @ v)


def test_quadratic_problem():
    Q = np.array([[2.0, 1.0], [1.0, 3.0]])
    c = np.array([-1.0, 0.5])
    nlp = QuadraticProblem(Q, c, np.zeros(2), lvar=[0.0, 0.0], uvar=[1.0, 1.0])
    x = np.array([1.0, -1.0])
    assert_allclose(nlp.obj(x), 0.5 * x @ Q @ x + c @ x)
    assert_allclose(nlp.grad(x), Q @ x + c)
    f, g = nlp.objgrad(x)
    assert_allclose(f, nlp.obj(x))
    assert_allclose(nlp.hess_op(x) @ x, Q @ x)


def test_quadratic_problem_sparse():
    Q = sp.diags([1.0, 2.0, 3.0]).tocsr()
    nlp = QuadraticProblem(Q, np.ones(3), np.ones(3))
    x = np.array([1.0, 2.0, 3.0])
    assert_allclose(nlp.grad(x), [2.0, 5.0, 10.0])
    assert_allclose(nlp.hess_op(x) @ x, [1.0, 4.0, 9.0])
    assert_allclose(nlp.hprod(x, x), [1.0, 4.0, 9.0])


def test_problem_shape():
    free = FunctionProblem(rosenbrock, rosenbrock_grad, [0.0, 0.0])
    assert_(free.unconstrained())
    assert_(not free.bound_constrained())
    boxed = FunctionProblem(rosenbrock, rosenbrock_grad, [0.0, 0.0], lvar=[-1.0, -np.inf])
    assert_(boxed.bound_constrained())
    assert_array_equal(boxed.meta.uvar, [np.inf, np.inf])
    constrained = FunctionProblem(rosenbrock, rosenbrock_grad, [0.0, 0.0], ncon=1)
    assert_(not constrained.unconstrained())
    assert_(not constrained.bound_constrained())


def test_invalid_problems():
    with assert_raises(ValueError):
        FunctionProblem(rosenbrock, rosenbrock_grad, [0.0, 0.0], lvar=[1.0, 1.0], uvar=[0.0, 2.0])
    with assert_raises(ValueError):
        FunctionProblem(rosenbrock, rosenbrock_grad, [0.0, 0.0], lvar=[1.0])
    with assert_raises(ValueError):
        FunctionProblem("f", rosenbrock_grad, [0.0, 0.0])
    with assert_raises(ValueError):
        QuadraticProblem(np.eye(3), np.ones(2), np.zeros(2))
