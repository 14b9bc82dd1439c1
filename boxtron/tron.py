# tron.py
# TRON: trust-region Newton method for bound-constrained minimisation
#   min f(x)  s.t.  lvar ≤ x ≤ uvar
# - Projected Cauchy step with warm-started step length (blocks/cauchy.py)
# - Active-set projected Newton refinement with truncated CG (blocks/newton.py)
# - Lin & Moré radius update with interpolation and round-off guards (blocks/tr.py)
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import numpy as np

from .blocks.aux import TronConfig
from .blocks.box import project, project_step
from .blocks.cauchy import cauchy
from .blocks.newton import projected_newton
from .blocks.tr import TRONTrustRegion, safe_norm, truncated_cg
from .problem import BoundConstrainedProblem
from .quasi_newton import LBFGSModel, LSR1Model, QuasiNewtonModel
from .stats import ExecutionStats, Status

logger = logging.getLogger(__name__)

_EPS = float(np.finfo(np.float64).eps)

HDR = f"{'iter':>5}  {'f(x)':>13} {'π':>9} {'Δ':>9} {'ratio':>10}  {'cgstatus'}"


def _row(it: int, fx: float, pix: float, radius: float, ratio=None, cgstatus: str = "") -> str:
    ratio_cell = f"{ratio:>10.2e}" if ratio is not None else f"{'':>10}"
    return f"{it:>5}  {fx:>13.6e} {pix:>9.2e} {radius:>9.2e} {ratio_cell}  {cgstatus}"


def _check_problem(problem: BoundConstrainedProblem) -> None:
    if not problem.meta.minimize:
        raise ValueError("tron only works for minimization problems")
    if problem.meta.ncon > 0:
        raise ValueError(
            "tron should only be called for unconstrained or bound-constrained problems"
        )


def _get_status(
    problem: BoundConstrainedProblem,
    cfg: TronConfig,
    elapsed_time: float,
    iters: int,
    optimal: bool,
    unbounded: bool,
) -> Status:
    if optimal:
        return Status.FIRST_ORDER
    if unbounded:
        return Status.UNBOUNDED
    if cfg.max_iter >= 0 and iters >= cfg.max_iter:
        return Status.MAX_ITER
    if cfg.max_eval >= 0 and problem.neval_obj() > cfg.max_eval:
        return Status.MAX_EVAL
    if elapsed_time > cfg.max_time:
        return Status.MAX_TIME
    return Status.UNKNOWN


# ---------------------------- Quasi-Newton strategies ---------------------------- #
class _NoUpdate:
    def start(self, gx: np.ndarray) -> None:
        pass

    def accepted(self, s: np.ndarray, gx: np.ndarray) -> None:
        pass


class _SecantUpdate:
    """Pushes (s, ∇f(x_{k+1}) - ∇f(x_k)) into the model after every accepted step."""

    def __init__(self, problem: QuasiNewtonModel, gn: np.ndarray):
        self.problem = problem
        self.gn = gn

    def start(self, gx: np.ndarray) -> None:
        self.gn[:] = gx

    def accepted(self, s: np.ndarray, gx: np.ndarray) -> None:
        np.subtract(gx, self.gn, out=self.gn)
        self.problem.push(s, self.gn)
        self.gn[:] = gx


# ---------------------------- Solver ---------------------------- #
class TronSolver:
    """
    Workspace and driver of TRON.

    The buffers (x, xc, temp, gx, gt, gn, gpx, Hs) are allocated once and
    reused by every call to :meth:`solve`. The callback is called as
    ``callback(problem, solver, stats)`` after every outer iteration,
    including iteration 0, and may stop the solve with
    ``stats.set_status("user")``.
    """

    def __init__(
        self,
        problem: BoundConstrainedProblem,
        cg_solver: Callable = truncated_cg,
        config: Optional[TronConfig] = None,
    ):
        _check_problem(problem)
        self.cfg = config if config is not None else TronConfig()
        self.cg_solver = cg_solver
        n = problem.meta.nvar
        self.x = np.zeros(n)
        self.xc = np.zeros(n)
        self.temp = np.zeros(n)
        self.gx = np.zeros(n)
        self.gt = np.zeros(n)
        self.gn = np.zeros(n)
        self.gpx = np.zeros(n)
        self.Hs = np.zeros(n)
        self.tr = TRONTrustRegion(
            self.gt, min(1.0, self.cfg.max_radius), **self.cfg.trust_region_options()
        )
        self._bind(problem)

    def _bind(self, problem: BoundConstrainedProblem) -> None:
        self.problem = problem
        # resolved once: only quasi-Newton models receive secant pairs
        if isinstance(problem, QuasiNewtonModel):
            self.qn = _SecantUpdate(problem, self.gn)
        else:
            self.qn = _NoUpdate()

    def reset(self, problem: Optional[BoundConstrainedProblem] = None) -> "TronSolver":
        """
        Rebind the workspace to ``problem`` (same nvar) and restore the radius
        of the stored trust region.

        The radius reset only affects ``self.tr`` as inspected between solves:
        :meth:`solve` always builds a fresh :class:`TRONTrustRegion` whose
        initial radius comes from the projected gradient at the start point.
        """
        self.tr.reset()
        if problem is not None:
            if problem.meta.nvar != self.x.size:
                raise ValueError(
                    f"problem has nvar={problem.meta.nvar}, solver was built for {self.x.size}"
                )
            _check_problem(problem)
            self._bind(problem)
        return self

    def solve(
        self,
        problem: Optional[BoundConstrainedProblem] = None,
        stats: Optional[ExecutionStats] = None,
        callback: Optional[Callable] = None,
        x: Optional[np.ndarray] = None,
        **options,
    ) -> ExecutionStats:
        if problem is not None and problem is not self.problem:
            self.reset(problem)
        problem = self.problem
        _check_problem(problem)
        cfg = TronConfig.from_options(self.cfg, **options)
        stats = ExecutionStats() if stats is None else stats.reset()

        lb, ub = problem.meta.lvar, problem.meta.uvar
        n = problem.meta.nvar
        x0 = problem.meta.x0 if x is None else np.asarray(x, dtype=float).reshape(-1)
        if x0.size != n:
            raise ValueError(f"initial point must have size {n}, got {x0.size}")

        start_time = time.perf_counter()
        stats.set_time(0.0)

        x, xc, s, gx, gt, gpx, Hs = self.x, self.xc, self.temp, self.gx, self.gt, self.gpx, self.Hs
        project(x0, lb, ub, out=x)
        fx, _ = problem.objgrad(x, out=gx)
        num_success_iters = 0
        total_cgits = 0

        pix = safe_norm(project_step(x, gx, lb, ub, -1.0, out=gpx))
        eps_opt = cfg.atol + cfg.rtol * pix
        fmin = min(-1.0, fx) / _EPS
        optimal = pix <= eps_opt
        unbounded = fx < fmin

        stats.set_iter(0)
        stats.set_objective(fx)
        stats.set_dual_residual(pix)

        self.qn.start(gx)

        alpha_c = 1.0
        tr = TRONTrustRegion(gt, min(max(1.0, pix / 10.0), cfg.max_radius), **cfg.trust_region_options())
        self.tr = tr
        if cfg.verbose > 0:
            logger.info(HDR)

        stats.set_status(_get_status(problem, cfg, stats.elapsed_time, 0, optimal, unbounded))
        if callback is not None:
            callback(problem, self, stats)

        while not stats.done:
            xc[:] = x
            fc = fx
            delta = tr.radius
            H = problem.hess_op(xc)

            alpha_c, s, cauchy_status = cauchy(
                x, H, gx, delta, alpha_c, lb, ub,
                mu0=cfg.mu0, mu1=cfg.mu1, sigma=cfg.sigma, s=s, Hs=Hs,
            )
            if cauchy_status != "success":
                logger.error("Cauchy step returned: %s", cauchy_status)
                stats.set_status(cauchy_status)
                break

            s, Hs, cgits, cginfo = projected_newton(
                x, H, gx, delta, cfg.cgtol, s, lb, ub,
                max_cgiter=cfg.max_cgiter, cg_solver=self.cg_solver, mu0=cfg.mu0, Hs=Hs,
            )
            total_cgits += cgits
            slope = float(gx @ s)
            qs = 0.5 * float(s @ Hs) + slope
            if cfg.use_only_objgrad:
                fx, _ = problem.objgrad(x, out=gt)
            else:
                fx = problem.obj(x)

            ared, pred = tr.aredpred(problem, fc, fx, qs, x, s, slope)
            if not pred < 0.0:
                logger.debug("non-negative predicted reduction pred=%.3e", pred)
                x[:] = xc
                fx = fc
                stats.set_status(Status.NEG_PRED)
                break
            tr.ratio = ared / pred
            if cfg.verbose > 0 and stats.iter % cfg.verbose == 0:
                logger.info(_row(stats.iter, fx, pix, delta, tr.ratio, cginfo))

            s_norm = safe_norm(s)
            if num_success_iters == 0:
                tr.radius = min(delta, s_norm) if s_norm > 0.0 else delta

            tr.update(s_norm)

            if tr.acceptable():
                num_success_iters += 1
                if cfg.use_only_objgrad or tr.good_grad:
                    gx[:] = gt
                else:
                    problem.grad(x, out=gx)
                pix = safe_norm(project_step(x, gx, lb, ub, -1.0, out=gpx))
                self.qn.accepted(s, gx)
            else:
                fx = fc
                x[:] = xc

            optimal = pix <= eps_opt
            unbounded = fx < fmin

            stats.set_objective(fx)
            stats.set_iter(stats.iter + 1)
            stats.set_time(time.perf_counter() - start_time)
            stats.set_dual_residual(pix)

            stats.set_status(
                _get_status(problem, cfg, stats.elapsed_time, stats.iter, optimal, unbounded)
            )
            if callback is not None:
                callback(problem, self, stats)

        stats.set_time(time.perf_counter() - start_time)
        if cfg.verbose > 0:
            logger.info(_row(stats.iter, fx, pix, tr.radius))
            logger.info("%s", stats)

        stats.set_solution(x)
        stats.set_solver_specific("radius", tr.radius)
        stats.set_solver_specific("num_success_iters", num_success_iters)
        stats.set_solver_specific("cg_iterations", total_cgits)
        return stats


# ---------------------------- Entry point ---------------------------- #
_VARIANTS = {
    "Newton": None,
    "LBFGS": LBFGSModel,
    "LSR1": LSR1Model,
}


def tron(
    problem: BoundConstrainedProblem,
    variant: str = "Newton",
    *,
    callback: Optional[Callable] = None,
    x: Optional[np.ndarray] = None,
    stats: Optional[ExecutionStats] = None,
    cg_solver: Callable = truncated_cg,
    mem: int = 5,
    **options,
) -> ExecutionStats:
    """
    Solve ``problem`` with TRON.

    ``variant`` selects the Hessian: "Newton" uses the oracle's own
    ``hess_op``; "LBFGS" and "LSR1" wrap the oracle in a limited-memory model
    with ``mem`` pairs (an oracle that is already a quasi-Newton model is
    used as is). Remaining keyword arguments are :class:`TronConfig` fields.
    """
    if variant not in _VARIANTS:
        raise ValueError(f"unknown variant {variant!r}; expected one of {sorted(_VARIANTS)}")
    wrapper = _VARIANTS[variant]
    if wrapper is not None and not isinstance(problem, QuasiNewtonModel):
        problem = wrapper(problem, mem=mem)
    config = TronConfig.from_options(**options)
    solver = TronSolver(problem, cg_solver=cg_solver, config=config)
    return solver.solve(problem, stats=stats, callback=callback, x=x)
