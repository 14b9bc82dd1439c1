from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

MatLike = Union[np.ndarray, sp.spmatrix, spla.LinearOperator, Callable[[np.ndarray], np.ndarray]]
Vec = np.ndarray

_EPS = float(np.finfo(np.float64).eps)
_TINY = float(np.finfo(np.float64).tiny)

logger = logging.getLogger(__name__)


# ---------------------------- Status codes ---------------------------- #
class CGStatus(Enum):
    SOLVED = "solution good enough given atol and rtol"
    ZERO_RHS = "x = 0 is a zero-residual solution"
    BOUNDARY = "on trust-region boundary"
    NEG_CURV = "nonpositive curvature detected"
    MAX_ITER = "maximum number of iterations exceeded"


@dataclass
class CGStats:
    status: CGStatus
    niter: int
    residual_norm: float

    @property
    def on_boundary(self) -> bool:
        return self.status is CGStatus.BOUNDARY


# ---------------------------- Utilities ---------------------------- #
def safe_norm(x: Vec) -> float:
    return float(np.linalg.norm(x)) if x.size > 0 else 0.0


def make_operator(A: MatLike, n: int) -> spla.LinearOperator:
    if isinstance(A, spla.LinearOperator):
        return A
    if callable(A):
        return spla.LinearOperator((n, n), matvec=A, dtype=float)
    return spla.aslinearoperator(A)


def _boundary_tau_euclid(p: Vec, d: Vec, Delta: float) -> float:
    """Largest tau >= 0 with ||p + tau d|| = Delta (p inside the ball)."""
    pTp, pTd, dTd = float(p @ p), float(p @ d), float(d @ d)
    if dTd <= 1e-32:
        return 0.0
    disc = max(0.0, pTd * pTd - dTd * (pTp - Delta * Delta))
    return (-pTd + np.sqrt(disc)) / dTd


# ---------------------------- Steihaug–Toint CG ---------------------------- #
def truncated_cg(
    A: MatLike,
    b: Vec,
    radius: float = np.inf,
    rtol: float = 1e-6,
    atol: float = 0.0,
    itmax: Optional[int] = None,
) -> Tuple[Vec, CGStats]:
    """
    Conjugate gradient for A x = b, i.e. min ½xᵀAx - bᵀx, truncated at ||x|| = radius.

    Stops when ||b - A x|| <= atol + rtol * ||b||, when the iterate would
    leave the ball (the step is cut on the sphere), or after ``itmax``
    iterations (default 2 * dim). Nonpositive curvature moves to the sphere
    along the current direction; with an infinite radius the current iterate
    is returned with ``CGStatus.NEG_CURV``.
    """
    if not radius > 0.0:
        raise ValueError(f"radius must be positive, got {radius}")
    b = np.asarray(b, dtype=np.float64)
    n = b.size
    A_op = make_operator(A, n)
    x = np.zeros(n, dtype=np.float64)

    bnorm = safe_norm(b)
    if bnorm == 0.0:
        return x, CGStats(CGStatus.ZERO_RHS, 0, 0.0)

    if itmax is None or itmax <= 0:
        itmax = 2 * n
    bounded = np.isfinite(radius)
    tol = atol + rtol * bnorm

    r = b.copy()
    p = r.copy()
    rr = float(r @ r)
    rnorm = np.sqrt(rr)
    if rnorm <= tol:
        return x, CGStats(CGStatus.SOLVED, 0, rnorm)

    for k in range(itmax):
        Ap = np.asarray(A_op @ p, dtype=np.float64)
        pAp = float(p @ Ap)

        if pAp <= 0.0:
            if not bounded:
                logger.debug("CG: nonpositive curvature pAp=%.3e at iteration %d", pAp, k)
                return x, CGStats(CGStatus.NEG_CURV, k, rnorm)
            tau = _boundary_tau_euclid(x, p, radius)
            x += tau * p
            r -= tau * Ap
            logger.debug("CG: nonpositive curvature, moving to the boundary (tau=%.3e)", tau)
            return x, CGStats(CGStatus.BOUNDARY, k + 1, safe_norm(r))

        alpha = rr / pAp
        if bounded:
            x_trial = x + alpha * p
            if safe_norm(x_trial) >= radius:
                tau = _boundary_tau_euclid(x, p, radius)
                x += tau * p
                r -= tau * Ap
                return x, CGStats(CGStatus.BOUNDARY, k + 1, safe_norm(r))
            x = x_trial
        else:
            x += alpha * p
        r -= alpha * Ap

        rr_next = float(r @ r)
        rnorm = np.sqrt(rr_next)
        if rnorm <= tol:
            return x, CGStats(CGStatus.SOLVED, k + 1, rnorm)

        beta = rr_next / rr
        p = r + beta * p
        rr = rr_next

    return x, CGStats(CGStatus.MAX_ITER, itmax, rnorm)


# ---------------------------- Trust region ---------------------------- #
class TRONTrustRegion:
    """
    Trust-region state of TRON: radius, last ratio ρ, the quadratic
    interpolation minimiser used by the radius update, and a gradient buffer
    ``gt`` whose content is valid when ``good_grad`` is set.

    Radius update (Lin & Moré, 1999), with α = quad_min:
      ρ < η₀        : Δ = min(max(α, σ₁) ‖s‖, σ₂ Δ)
      η₀ ≤ ρ < η₁   : Δ = max(σ₁ Δ, min(α ‖s‖, σ₂ Δ))
      η₁ ≤ ρ < η₂   : Δ = max(σ₁ Δ, min(α ‖s‖, σ₃ Δ))
      ρ ≥ η₂        : Δ = min(Δmax, max(Δ, min(α ‖s‖, σ₃ Δ)))
    """

    def __init__(
        self,
        gt: Vec,
        initial_radius: float,
        max_radius: float = 1.0 / np.sqrt(_EPS),
        acceptance_threshold: float = 1e-4,
        decrease_threshold: float = 0.25,
        increase_threshold: float = 0.75,
        large_decrease_factor: float = 0.25,
        small_decrease_factor: float = 0.5,
        increase_factor: float = 4.0,
    ):
        if not initial_radius > 0.0:
            raise ValueError(f"initial radius must be positive, got {initial_radius}")
        if not max_radius > 0.0:
            raise ValueError(f"max radius must be positive, got {max_radius}")
        self.gt = gt
        self.max_radius = float(max_radius)
        self.initial_radius = min(float(initial_radius), self.max_radius)
        self.radius = self.initial_radius
        self.acceptance_threshold = float(acceptance_threshold)
        self.decrease_threshold = float(decrease_threshold)
        self.increase_threshold = float(increase_threshold)
        self.large_decrease_factor = float(large_decrease_factor)
        self.small_decrease_factor = float(small_decrease_factor)
        self.increase_factor = float(increase_factor)
        self.ratio = 0.0
        self.quad_min = 0.0
        self.good_grad = False

    def reset(self) -> "TRONTrustRegion":
        self.good_grad = False
        self.radius = self.initial_radius
        self.ratio = 0.0
        return self

    def aredpred(
        self,
        problem,
        f: float,
        f_trial: float,
        qs: float,
        x_trial: Vec,
        step: Vec,
        slope: float,
    ) -> Tuple[float, float]:
        """
        Actual and predicted reductions (both negative on a decrease), guarded
        against round-off. When either is at noise level, the actual reduction
        is recomputed from the gradient at ``x_trial``, which is kept in ``gt``.
        """
        absf = abs(f)
        guard = max(1.0, absf) * 10.0 * _EPS
        pred = qs - guard
        ared = f_trial - f + guard
        self.good_grad = False
        if abs(qs) < 1e4 * _EPS or abs(ared) < 1e4 * _EPS * absf:
            problem.grad(x_trial, out=self.gt)
            self.good_grad = True
            ared = (float(self.gt @ step) + slope) / 2.0

        gamma = f_trial - f - slope
        if gamma <= 0.0:
            self.quad_min = self.increase_factor
        else:
            self.quad_min = max(self.large_decrease_factor, -slope / gamma / 2.0)
        return ared, pred

    def acceptable(self) -> bool:
        return bool(self.ratio >= self.acceptance_threshold)

    def update(self, step_norm: float) -> float:
        a = self.quad_min
        s1 = self.large_decrease_factor
        s2 = self.small_decrease_factor
        s3 = self.increase_factor
        radius = self.radius
        rho = self.ratio

        if not rho >= self.acceptance_threshold:
            radius = min(max(a, s1) * step_norm, s2 * radius)
        elif rho < self.decrease_threshold:
            radius = max(s1 * radius, min(a * step_norm, s2 * radius))
        elif rho < self.increase_threshold:
            radius = max(s1 * radius, min(a * step_norm, s3 * radius))
        else:
            radius = max(radius, min(a * step_norm, s3 * radius))

        self.radius = float(np.clip(radius, _TINY, self.max_radius))
        return self.radius
