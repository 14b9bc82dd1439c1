import logging
from typing import Optional

import numpy as np

from .box import breakpoints, project, project_step
from .cauchy import compute_Hs_slope_qs

logger = logging.getLogger(__name__)


def projected_line_search(
    x: np.ndarray,
    H,
    g: np.ndarray,
    d: np.ndarray,
    lb: np.ndarray,
    ub: np.ndarray,
    mu0: float = 1e-2,
    s: Optional[np.ndarray] = None,
    Hs: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Backtracking along P(x + α d) from α = 1; updates ``x`` in place and returns the step."""
    searcher = ProjectedLineSearcher(mu0)
    return searcher.search(x, H, g, d, lb, ub, s=s, Hs=Hs)


class ProjectedLineSearcher:
    """Projected Armijo-type search on the quadratic model q(s) = ½ sᵀHs + gᵀs.

    - `search(...)`: halve α while q(s) > μ₀ gᵀs, never below the first breakpoint
                     of d. If α ended up below it, the step snaps to the
                     breakpoint, which lies on a face of the box.
    """

    def __init__(self, mu0: float = 1e-2):
        if not (0.0 < mu0 < 0.5):
            raise ValueError(f"mu0 must lie in (0, 0.5), got {mu0}")
        self.mu0 = float(mu0)
        self.nsteps = 0
        self.alpha = 1.0

    def search(
        self,
        x: np.ndarray,
        H,
        g: np.ndarray,
        d: np.ndarray,
        lb: np.ndarray,
        ub: np.ndarray,
        s: Optional[np.ndarray] = None,
        Hs: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        n = x.size
        if s is None:
            s = np.zeros(n, dtype=np.float64)
        else:
            s.fill(0.0)
        if Hs is None:
            Hs = np.zeros(n, dtype=np.float64)

        alpha = 1.0
        _, brkmin, _ = breakpoints(x, d, lb, ub)
        nsteps = 0

        search = True
        while search and alpha > brkmin:
            nsteps += 1
            project_step(x, d, lb, ub, alpha, out=s)
            _, slope, qs = compute_Hs_slope_qs(H, g, s, Hs)
            if qs <= self.mu0 * slope:
                search = False
            else:
                alpha /= 2.0

        if alpha < 1.0 and alpha < brkmin:
            logger.debug("projected search: snapping alpha=%.3e to breakpoint %.3e", alpha, brkmin)
            alpha = brkmin

        project_step(x, d, lb, ub, alpha, out=s)
        x += s
        # x + (P(x + αd) - x) may round past a bound
        project(x, lb, ub, out=x)

        self.nsteps = nsteps
        self.alpha = alpha
        return s
