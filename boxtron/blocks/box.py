from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

Vec = np.ndarray


# ---------------------------- Utilities ---------------------------- #
def as_bounds(lb, ub, n: int) -> Tuple[Vec, Vec]:
    """Return float copies of the bounds, filling ``None`` with ∓inf."""
    lo = np.full(n, -np.inf) if lb is None else np.asarray(lb, float).reshape(-1).copy()
    hi = np.full(n, np.inf) if ub is None else np.asarray(ub, float).reshape(-1).copy()
    if lo.size != n or hi.size != n:
        raise ValueError(f"expected bounds of shape ({n},), got {lo.shape} and {hi.shape}")
    if np.any(lo > hi):
        raise ValueError("lb > ub")
    return lo, hi


def project(x: Vec, lb: Vec, ub: Vec, out: Optional[Vec] = None) -> Vec:
    """P(x): clamp every coordinate into [lb, ub]."""
    return np.minimum(np.maximum(x, lb, out=out), ub, out=out)


def project_step(
    x: Vec, d: Vec, lb: Vec, ub: Vec, alpha: float = 1.0, out: Optional[Vec] = None
) -> Vec:
    """s = P(x + alpha * d) - x, feasible by construction."""
    if out is None:
        out = np.empty_like(x, dtype=float)
    np.multiply(d, alpha, out=out)
    out += x
    project(out, lb, ub, out=out)
    out -= x
    return out


def breakpoints(x: Vec, d: Vec, lb: Vec, ub: Vec) -> Tuple[int, float, float]:
    """
    Step lengths at which x + t d meets the bounds.

    Only coordinates that can still move are counted: d_i > 0 with x_i < u_i,
    or d_i < 0 with x_i > l_i. Returns (nbrk, brkmin, brkmax), with
    (0, 0.0, 0.0) when no coordinate has a breakpoint.
    """
    pos = (d > 0) & (x < ub)
    neg = (d < 0) & (x > lb)
    nbrk = int(np.count_nonzero(pos) + np.count_nonzero(neg))
    if nbrk == 0:
        return 0, 0.0, 0.0

    brkmin = np.inf
    brkmax = 0.0
    if np.any(pos):
        steps = (ub[pos] - x[pos]) / d[pos]
        brkmin = min(brkmin, float(np.min(steps)))
        brkmax = max(brkmax, float(np.max(steps)))
    if np.any(neg):
        steps = (lb[neg] - x[neg]) / d[neg]
        brkmin = min(brkmin, float(np.min(steps)))
        brkmax = max(brkmax, float(np.max(steps)))
    return nbrk, brkmin, brkmax


def active(
    x: Vec,
    lb: Vec,
    ub: Vec,
    g: Optional[Vec] = None,
    rtol: float = 1e-8,
    atol: float = 1e-8,
) -> np.ndarray:
    """
    Indices of x lying on a bound (within atol + rtol * |bound|).

    With a gradient ``g`` only the binding ones are kept: on the lower bound
    with g_i > 0, on the upper bound with g_i < 0.
    """
    # infinite bounds are never active
    with np.errstate(invalid="ignore"):
        at_lb = np.isfinite(lb) & (np.abs(x - lb) <= atol + rtol * np.abs(lb))
        at_ub = np.isfinite(ub) & (np.abs(x - ub) <= atol + rtol * np.abs(ub))
    if g is None:
        return np.flatnonzero(at_lb | at_ub)
    # fixed variables stay active whatever the gradient sign
    fixed = at_lb & at_ub
    return np.flatnonzero(fixed | (at_lb & (g > 0)) | (at_ub & (g < 0)))


def free(
    x: Vec,
    lb: Vec,
    ub: Vec,
    g: Optional[Vec] = None,
    rtol: float = 1e-8,
    atol: float = 1e-8,
) -> np.ndarray:
    """Ordered complement of :func:`active`."""
    mask = np.ones(x.size, dtype=bool)
    mask[active(x, lb, ub, g, rtol=rtol, atol=atol)] = False
    return np.flatnonzero(mask)


def projected_gradient_norm(
    x: Vec, g: Vec, lb: Vec, ub: Vec, out: Optional[Vec] = None
) -> float:
    """‖P(x - g) - x‖, zero exactly at first-order stationary points."""
    gp = project_step(x, g, lb, ub, -1.0, out=out)
    return float(np.linalg.norm(gp)) if gp.size > 0 else 0.0
