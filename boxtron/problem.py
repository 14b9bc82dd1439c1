# problem.py
# Objective oracles for bound-constrained minimisation.

from __future__ import annotations

# =========================
# Standard library
# =========================
from dataclasses import dataclass, fields
from typing import Callable, Optional

# =========================
# Third-party
# =========================
import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .blocks.box import as_bounds

_EPS = float(np.finfo(np.float64).eps)


def _as_float_array(a, n: Optional[int] = None) -> np.ndarray:
    out = np.asarray(a, dtype=float).reshape(-1)
    if n is not None and out.size != n:
        raise ValueError(f"expected a vector of size {n}, got shape {np.shape(a)}")
    return out


# ======================================
# Metadata / counters
# ======================================
@dataclass
class ProblemMeta:
    nvar: int
    x0: np.ndarray
    lvar: np.ndarray
    uvar: np.ndarray
    minimize: bool = True
    ncon: int = 0
    name: str = "Generic"

    def __post_init__(self) -> None:
        if self.nvar <= 0:
            raise ValueError(f"Number of variables nvar must be positive, got {self.nvar}")
        self.x0 = _as_float_array(self.x0, self.nvar)
        self.lvar, self.uvar = as_bounds(self.lvar, self.uvar, self.nvar)
        if self.ncon < 0:
            raise ValueError(f"ncon must be nonnegative, got {self.ncon}")


@dataclass
class Counters:
    neval_obj: int = 0
    neval_grad: int = 0
    neval_objgrad: int = 0
    neval_hprod: int = 0
    neval_hess_op: int = 0

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, 0)


# ======================================
# Oracle interface
# ======================================
class BoundConstrainedProblem:
    """
    min f(x) s.t. lvar ≤ x ≤ uvar.

    Subclasses implement ``_obj``, ``_grad`` and ``_hprod`` (and may override
    ``_objgrad`` / ``_hess`` when a fused or explicit form is cheaper). The
    public methods count evaluations in ``counters``.
    """

    def __init__(self, meta: ProblemMeta):
        self.meta = meta
        self.counters = Counters()

    # ---------- hooks ----------
    def _obj(self, x: np.ndarray) -> float:
        raise NotImplementedError

    def _grad(self, x: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _objgrad(self, x: np.ndarray):
        return self._obj(x), self._grad(x)

    def _hprod(self, x: np.ndarray, v: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _hess(self, x: np.ndarray):
        """Explicit Hessian (matrix or operator) at x, or None for matrix-free products."""
        return None

    # ---------- public API ----------
    def obj(self, x: np.ndarray) -> float:
        self.counters.neval_obj += 1
        return float(self._obj(x))

    def grad(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        self.counters.neval_grad += 1
        gx = _as_float_array(self._grad(x), self.meta.nvar)
        if out is None:
            return gx.copy()
        out[:] = gx
        return out

    def objgrad(self, x: np.ndarray, out: Optional[np.ndarray] = None):
        self.counters.neval_objgrad += 1
        f, gx = self._objgrad(x)
        gx = _as_float_array(gx, self.meta.nvar)
        if out is None:
            return float(f), gx.copy()
        out[:] = gx
        return float(f), out

    def hprod(self, x: np.ndarray, v: np.ndarray) -> np.ndarray:
        self.counters.neval_hprod += 1
        return _as_float_array(self._hprod(x, v), self.meta.nvar)

    def hess_op(self, x: np.ndarray) -> spla.LinearOperator:
        """Hessian at x as a LinearOperator; x is copied, later changes to it do not leak in."""
        self.counters.neval_hess_op += 1
        n = self.meta.nvar
        xk = np.array(x, dtype=float, copy=True)
        H = self._hess(xk)
        if H is not None:
            return spla.aslinearoperator(H)
        return spla.LinearOperator(
            (n, n), matvec=lambda v: self.hprod(xk, np.ravel(v)), dtype=float
        )

    def neval_obj(self) -> int:
        """Objective evaluations, counting fused objective+gradient calls."""
        return self.counters.neval_obj + self.counters.neval_objgrad

    def reset(self) -> None:
        self.counters.reset()

    # ---------- shape ----------
    def has_bounds(self) -> bool:
        return bool(np.any(np.isfinite(self.meta.lvar)) or np.any(np.isfinite(self.meta.uvar)))

    def unconstrained(self) -> bool:
        return self.meta.ncon == 0 and not self.has_bounds()

    def bound_constrained(self) -> bool:
        return self.meta.ncon == 0 and self.has_bounds()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.meta.name!r}, nvar={self.meta.nvar})"


# ======================================
# Concrete oracles
# ======================================
class FunctionProblem(BoundConstrainedProblem):
    """
    Oracle from Python callables.

    Second-order information, first match wins:
      • ``hess(x)``: dense array, scipy sparse matrix or LinearOperator;
      • ``hprod(x, v)``: Hessian-vector product;
      • otherwise a central difference of ``grad`` along v.
    """

    def __init__(
        self,
        f: Callable[[np.ndarray], float],
        grad: Callable[[np.ndarray], np.ndarray],
        x0,
        lvar=None,
        uvar=None,
        hess: Optional[Callable] = None,
        hprod: Optional[Callable] = None,
        objgrad: Optional[Callable] = None,
        *,
        minimize: bool = True,
        ncon: int = 0,
        name: str = "Generic",
    ):
        if not callable(f):
            raise ValueError("Objective function f must be callable")
        if not callable(grad):
            raise ValueError("Gradient grad must be callable")
        for label, fn in (("hess", hess), ("hprod", hprod), ("objgrad", objgrad)):
            if fn is not None and not callable(fn):
                raise ValueError(f"{label} must be callable")
        x0 = _as_float_array(x0)
        super().__init__(
            ProblemMeta(
                nvar=x0.size, x0=x0, lvar=lvar, uvar=uvar,
                minimize=minimize, ncon=ncon, name=name,
            )
        )
        self.f = f
        self.g = grad
        self.hess = hess
        self.hv = hprod
        self.fg = objgrad

    def _obj(self, x):
        return self.f(x)

    def _grad(self, x):
        return self.g(x)

    def _objgrad(self, x):
        if self.fg is not None:
            return self.fg(x)
        return self.f(x), self.g(x)

    def _hess(self, x):
        if self.hess is None:
            return None
        H = self.hess(x)
        if isinstance(H, spla.LinearOperator) or sp.issparse(H):
            return H
        return np.atleast_2d(np.asarray(H, dtype=float))

    def _hprod(self, x, v):
        if self.hess is not None:
            return spla.aslinearoperator(self._hess(x)) @ v
        if self.hv is not None:
            return self.hv(x, v)
        return self._fd_hprod(x, v)

    def _fd_hprod(self, x, v):
        vnorm = float(np.linalg.norm(v))
        if vnorm == 0.0:
            return np.zeros_like(x, dtype=float)
        h = np.sqrt(_EPS) * (1.0 + float(np.linalg.norm(x))) / vnorm
        gp = _as_float_array(self.g(x + h * v))
        gm = _as_float_array(self.g(x - h * v))
        return (gp - gm) / (2.0 * h)


class QuadraticProblem(BoundConstrainedProblem):
    """f(x) = ½ xᵀQx + cᵀx with Q symmetric (dense array or scipy sparse)."""

    def __init__(self, Q, c, x0, lvar=None, uvar=None, name: str = "Quadratic"):
        x0 = _as_float_array(x0)
        n = x0.size
        self.Q = Q if sp.issparse(Q) else np.atleast_2d(np.asarray(Q, dtype=float))
        if self.Q.shape != (n, n):
            raise ValueError(f"Q must be {n}x{n}, got {self.Q.shape}")
        self.c = _as_float_array(c, n)
        super().__init__(ProblemMeta(nvar=n, x0=x0, lvar=lvar, uvar=uvar, name=name))

    def _obj(self, x):
        return 0.5 * float(x @ (self.Q @ x)) + float(self.c @ x)

    def _grad(self, x):
        return np.asarray(self.Q @ x, dtype=float).reshape(-1) + self.c

    def _objgrad(self, x):
        Qx = np.asarray(self.Q @ x, dtype=float).reshape(-1)
        return 0.5 * float(x @ Qx) + float(self.c @ x), Qx + self.c

    def _hess(self, x):
        return self.Q

    def _hprod(self, x, v):
        return self.Q @ v
