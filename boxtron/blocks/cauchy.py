from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .box import breakpoints, project_step
from .tr import safe_norm

logger = logging.getLogger(__name__)

# smallest α the interpolation phase may reach
_ALPHA_FLOOR = float(np.sqrt(np.nextafter(0.0, 1.0)))


def compute_Hs_slope_qs(
    H, g: np.ndarray, s: np.ndarray, Hs: Optional[np.ndarray] = None
) -> Tuple[np.ndarray, float, float]:
    """Hs = H s, slope = gᵀs and the model value q(s) = ½ sᵀHs + gᵀs."""
    hs = np.asarray(H @ s, dtype=np.float64)
    if Hs is None:
        Hs = hs
    else:
        Hs[:] = hs
    slope = float(g @ s)
    qs = 0.5 * float(s @ Hs) + slope
    return Hs, slope, qs


def cauchy(
    x: np.ndarray,
    H,
    g: np.ndarray,
    delta: float,
    alpha: float,
    lb: np.ndarray,
    ub: np.ndarray,
    mu0: float = 1e-2,
    mu1: float = 1.0,
    sigma: float = 10.0,
    s: Optional[np.ndarray] = None,
    Hs: Optional[np.ndarray] = None,
) -> Tuple[float, np.ndarray, str]:
    """
    Generalised Cauchy step along the projected steepest-descent path.

    Searches α with s(α) = P(x - α g) - x satisfying ‖s‖ ≤ μ₁Δ and
    q(s) ≤ μ₀ gᵀs. Starting from the warm-start ``alpha``, the step is
    shrunk by σ until both hold, or grown by σ up to the last breakpoint
    while they keep holding.

    Returns (α, s, status) where status is ``"success"`` or ``"small_step"``.
    """
    n = x.size
    if s is None:
        s = np.empty(n, dtype=np.float64)
    if Hs is None:
        Hs = np.empty(n, dtype=np.float64)
    status = "success"
    radius = mu1 * delta

    _, _, brkmax = breakpoints(x, -g, lb, ub)
    project_step(x, g, lb, ub, -alpha, out=s)

    # the model is only evaluated inside the radius
    if safe_norm(s) > radius:
        interp = True
    else:
        _, slope, qs = compute_Hs_slope_qs(H, g, s, Hs)
        interp = qs >= mu0 * slope

    if interp:
        search = True
        while search:
            alpha /= sigma
            project_step(x, g, lb, ub, -alpha, out=s)
            if safe_norm(s) <= radius:
                _, slope, qs = compute_Hs_slope_qs(H, g, s, Hs)
                search = qs >= mu0 * slope
            if alpha < _ALPHA_FLOOR:
                logger.debug("Cauchy: step length underflow (alpha=%.3e)", alpha)
                search = False
                status = "small_step"
    else:
        search = True
        alphas = alpha
        while search and alpha <= brkmax:
            alpha *= sigma
            project_step(x, g, lb, ub, -alpha, out=s)
            if safe_norm(s) <= radius:
                _, slope, qs = compute_Hs_slope_qs(H, g, s, Hs)
                if qs <= mu0 * slope:
                    alphas = alpha
            else:
                search = False
        alpha = alphas
        project_step(x, g, lb, ub, -alpha, out=s)

    return alpha, s, status
