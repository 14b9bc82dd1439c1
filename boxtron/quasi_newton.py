from __future__ import annotations

import logging
from collections import deque
from typing import Optional

import numpy as np
import scipy.sparse.linalg as spla

from .problem import BoundConstrainedProblem

logger = logging.getLogger(__name__)

_EPS = float(np.finfo(np.float64).eps)


# ---------------------------- Operators ---------------------------- #
class QuasiNewtonOperator(spla.LinearOperator):
    """
    Limited-memory Hessian approximation B as a LinearOperator.

    Attributes
    ----------
    mem : int
        maximum number of stored pairs
    s_list, y_list : deque of ndarray
        steps s_k = x_{k+1} - x_k and gradient changes y_k = g_{k+1} - g_k
    """

    def __init__(self, n: int, mem: int = 5):
        if n <= 0:
            raise ValueError(f"n must be positive, got {n}")
        if mem < 1:
            raise ValueError(f"mem must be at least 1, got {mem}")
        self.mem = int(mem)
        self.s_list: deque = deque(maxlen=self.mem)
        self.y_list: deque = deque(maxlen=self.mem)
        self.nskipped = 0
        super().__init__(dtype=np.float64, shape=(n, n))

    def _accept(self, s: np.ndarray, y: np.ndarray) -> bool:
        raise NotImplementedError

    def _rebuild(self) -> None:
        raise NotImplementedError

    def push(self, s: np.ndarray, y: np.ndarray) -> bool:
        """Add the pair (s, y), dropping the oldest one when full; returns False if skipped."""
        s = np.array(s, dtype=np.float64).reshape(-1)
        y = np.array(y, dtype=np.float64).reshape(-1)
        if not self._accept(s, y):
            self.nskipped += 1
            logger.debug("quasi-Newton: pair skipped by curvature safeguard")
            return False
        self.s_list.append(s)
        self.y_list.append(y)
        self._rebuild()
        return True

    def reset(self) -> None:
        self.s_list.clear()
        self.y_list.clear()
        self.nskipped = 0
        self._rebuild()

    def _rmatvec(self, v):
        return self._matvec(v)

    def _adjoint(self):
        return self


class LBFGSOperator(QuasiNewtonOperator):
    """
    Direct limited-memory BFGS approximation in unrolled form

        B v = γ v + Σ_i (b_iᵀv) b_i - (a_iᵀv) a_i,

    with b_i = y_i / √(y_iᵀs_i), a_i = B_i s_i / √(s_iᵀB_i s_i) and
    γ = yᵀy / sᵀy of the newest pair when ``scaling`` is on, else 1.
    """

    def __init__(self, n: int, mem: int = 5, scaling: bool = True):
        self.scaling = bool(scaling)
        self.gamma = 1.0
        self._a: list = []
        self._b: list = []
        super().__init__(n, mem)

    def _accept(self, s, y) -> bool:
        ys = float(y @ s)
        return ys > np.sqrt(_EPS) * float(np.linalg.norm(s)) * float(np.linalg.norm(y))

    def _rebuild(self) -> None:
        self._a, self._b = [], []
        self.gamma = 1.0
        if not self.s_list:
            return
        if self.scaling:
            s, y = self.s_list[-1], self.y_list[-1]
            self.gamma = float(y @ y) / float(y @ s)
        for s, y in zip(self.s_list, self.y_list):
            Bs = self._apply(s)
            self._b.append(y / np.sqrt(float(y @ s)))
            self._a.append(Bs / np.sqrt(float(s @ Bs)))

    def _apply(self, v: np.ndarray) -> np.ndarray:
        out = self.gamma * v
        for a, b in zip(self._a, self._b):
            out += float(b @ v) * b - float(a @ v) * a
        return out

    def _matvec(self, v):
        return self._apply(np.asarray(v, dtype=np.float64).reshape(-1))


class LSR1Operator(QuasiNewtonOperator):
    """
    Limited-memory symmetric rank-one approximation

        B v = v + Σ_i (u_iᵀv / u_iᵀs_i) u_i,   u_i = y_i - B_i s_i,

    skipping pairs with |u_iᵀs_i| < r ‖s_i‖ ‖u_i‖ (r = 1e-8).
    """

    def __init__(self, n: int, mem: int = 5, skip_tol: float = 1e-8):
        self.skip_tol = float(skip_tol)
        self._u: list = []
        self._d: list = []
        super().__init__(n, mem)

    def _ok(self, s, u) -> bool:
        us = float(u @ s)
        return abs(us) >= self.skip_tol * float(np.linalg.norm(s)) * float(np.linalg.norm(u)) and us != 0.0

    def _accept(self, s, y) -> bool:
        return self._ok(s, y - self._apply(s))

    def _rebuild(self) -> None:
        self._u, self._d = [], []
        for s, y in zip(self.s_list, self.y_list):
            u = y - self._apply(s)
            if self._ok(s, u):
                self._u.append(u)
                self._d.append(float(u @ s))

    def _apply(self, v: np.ndarray) -> np.ndarray:
        out = v.copy()
        for u, d in zip(self._u, self._d):
            out += (float(u @ v) / d) * u
        return out

    def _matvec(self, v):
        return self._apply(np.asarray(v, dtype=np.float64).reshape(-1))


# ---------------------------- Models ---------------------------- #
class QuasiNewtonModel(BoundConstrainedProblem):
    """
    Wraps an oracle and replaces its Hessian by a quasi-Newton approximation.

    Objective and gradient calls go to the wrapped problem; ``counters`` is
    shared with it.
    """

    def __init__(self, problem: BoundConstrainedProblem, op: QuasiNewtonOperator):
        if op.shape != (problem.meta.nvar, problem.meta.nvar):
            raise ValueError(f"operator shape {op.shape} does not match nvar={problem.meta.nvar}")
        super().__init__(problem.meta)
        self.model = problem
        self.counters = problem.counters
        self.op = op

    def obj(self, x):
        return self.model.obj(x)

    def grad(self, x, out: Optional[np.ndarray] = None):
        return self.model.grad(x, out=out)

    def objgrad(self, x, out: Optional[np.ndarray] = None):
        return self.model.objgrad(x, out=out)

    def hprod(self, x, v):
        self.counters.neval_hprod += 1
        return self.op @ np.asarray(v, dtype=np.float64)

    def hess_op(self, x) -> spla.LinearOperator:
        self.counters.neval_hess_op += 1
        return self.op

    def push(self, s: np.ndarray, y: np.ndarray) -> bool:
        return self.op.push(s, y)

    def reset_data(self) -> None:
        self.op.reset()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model!r}, mem={self.op.mem})"


class LBFGSModel(QuasiNewtonModel):
    def __init__(self, problem: BoundConstrainedProblem, mem: int = 5, scaling: bool = True):
        super().__init__(problem, LBFGSOperator(problem.meta.nvar, mem=mem, scaling=scaling))


class LSR1Model(QuasiNewtonModel):
    def __init__(self, problem: BoundConstrainedProblem, mem: int = 5):
        super().__init__(problem, LSR1Operator(problem.meta.nvar, mem=mem))
