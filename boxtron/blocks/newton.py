from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

import numpy as np
import scipy.sparse.linalg as spla

from .box import free, project
from .linesearch import ProjectedLineSearcher
from .tr import CGStatus, safe_norm, truncated_cg

logger = logging.getLogger(__name__)

STATIONARY = "stationary point found"
BOUNDARY = "on trust-region boundary"
MAX_ITER = "maximum number of iterations"


class ReducedOperator(spla.LinearOperator):
    """
    ZᵀHZ for the 0/1 selection Z of the ordered index set ``idx``.

    Products scatter v into a zero n-vector, apply H, and gather the result
    back on ``idx``.
    """

    def __init__(self, H, idx: np.ndarray, n: int):
        self.op = H
        self.idx = np.asarray(idx, dtype=np.intp)
        self.n = int(n)
        self._full = np.zeros(self.n, dtype=np.float64)
        m = self.idx.size
        super().__init__(dtype=np.float64, shape=(m, m))

    def _matvec(self, v):
        v = np.asarray(v, dtype=np.float64).reshape(-1)
        self._full.fill(0.0)
        self._full[self.idx] = v
        Hv = np.asarray(self.op @ self._full, dtype=np.float64).reshape(-1)
        return Hv[self.idx]

    def _rmatvec(self, v):
        # H is symmetric
        return self._matvec(v)

    def _adjoint(self):
        return self


def projected_newton(
    x: np.ndarray,
    H,
    g: np.ndarray,
    delta: float,
    cgtol: float,
    s: np.ndarray,
    lb: np.ndarray,
    ub: np.ndarray,
    max_cgiter: int = 50,
    cg_solver: Callable = truncated_cg,
    mu0: float = 1e-2,
    Hs: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray, int, str]:
    """
    Active-set refinement of the step ``s`` (typically the Cauchy step).

    ``x`` is moved to P(x + s) and then, on the free variables of the current
    point, repeatedly: solve ZᵀHZ w = -Zᵀ(Hs + g) with truncated CG inside the
    radius, take a projected line search along w, and accumulate it into s.
    ``x`` and ``s`` are updated in place.

    Returns (s, Hs, iters, status) with status one of
    "stationary point found", "on trust-region boundary",
    "maximum number of iterations".
    """
    n = x.size
    if Hs is None:
        Hs = np.empty(n, dtype=np.float64)
    Hs[:] = np.asarray(H @ s, dtype=np.float64)

    x += s
    project(x, lb, ub, out=x)

    searcher = ProjectedLineSearcher(mu0)
    exit_optimal = exit_boundary = exit_itmax = False
    iters = 0
    while not (exit_optimal or exit_boundary or exit_itmax):
        # only variables strictly inside the box are refined
        ifree = free(x, lb, ub)
        if ifree.size == 0:
            exit_optimal = True
            continue

        gfree = Hs[ifree] + g[ifree]
        gfnorm = safe_norm(g[ifree])

        ZHZ = ReducedOperator(H, ifree, n)
        st, stats = cg_solver(ZHZ, -gfree, radius=delta, rtol=cgtol, atol=0.0)
        iters += 1

        xfree = x[ifree]
        w = searcher.search(xfree, ZHZ, gfree, st, lb[ifree], ub[ifree])
        x[ifree] = xfree
        s[ifree] += w
        Hs[:] = np.asarray(H @ s, dtype=np.float64)

        rnorm = safe_norm(Hs[ifree] + g[ifree])
        logger.debug(
            "newton: it=%d nfree=%d cg=%s |r|=%.3e", iters, ifree.size, stats.status.name, rnorm
        )
        if rnorm <= cgtol * gfnorm:
            exit_optimal = True
        elif stats.status is CGStatus.BOUNDARY:
            exit_boundary = True
        elif iters >= max_cgiter:
            exit_itmax = True

    if exit_optimal:
        status = STATIONARY
    elif exit_boundary:
        status = BOUNDARY
    else:
        status = MAX_ITER
    return s, Hs, iters, status
