from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import numpy as np


class Status(Enum):
    UNKNOWN = "unknown"
    FIRST_ORDER = "first_order"
    UNBOUNDED = "unbounded"
    MAX_EVAL = "max_eval"
    MAX_TIME = "max_time"
    MAX_ITER = "max_iter"
    USER = "user"
    NEG_PRED = "neg_pred"
    SMALL_STEP = "small_step"

    @property
    def message(self) -> str:
        return STATUS_MESSAGES[self]

    @classmethod
    def parse(cls, status: Union["Status", str]) -> "Status":
        if isinstance(status, cls):
            return status
        try:
            return cls(status)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"unknown status {status!r}; expected one of: {valid}") from None


STATUS_MESSAGES: Dict[Status, str] = {
    Status.UNKNOWN: "unknown",
    Status.FIRST_ORDER: "first-order stationary",
    Status.UNBOUNDED: "objective function may be unbounded from below",
    Status.MAX_EVAL: "maximum number of function evaluations",
    Status.MAX_TIME: "maximum elapsed time",
    Status.MAX_ITER: "maximum iteration",
    Status.USER: "user-requested stop",
    Status.NEG_PRED: "negative predicted reduction",
    Status.SMALL_STEP: "step too small",
}


@dataclass
class ExecutionStats:
    """Report of one solve: status, final iterate and its measures, solver-specific data."""

    status: Status = Status.UNKNOWN
    solution: Optional[np.ndarray] = None
    objective: float = np.inf
    dual_feas: float = np.inf
    iter: int = -1
    elapsed_time: float = np.inf
    solver_specific: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.status = Status.parse(self.status)

    # ---------- setters ----------
    def set_status(self, status: Union[Status, str]) -> None:
        self.status = Status.parse(status)

    def set_solution(self, x: np.ndarray) -> None:
        x = np.asarray(x, dtype=float)
        if self.solution is None or self.solution.shape != x.shape:
            self.solution = x.copy()
        else:
            self.solution[:] = x

    def set_objective(self, f: float) -> None:
        self.objective = float(f)

    def set_dual_residual(self, dual_feas: float) -> None:
        dual_feas = float(dual_feas)
        if dual_feas < 0.0:
            raise ValueError(f"dual residual must be nonnegative, got {dual_feas}")
        self.dual_feas = dual_feas

    def set_iter(self, it: int) -> None:
        if it < 0:
            raise ValueError(f"iteration counter must be nonnegative, got {it}")
        self.iter = int(it)

    def set_time(self, t: float) -> None:
        if t < 0.0:
            raise ValueError(f"elapsed time must be nonnegative, got {t}")
        self.elapsed_time = float(t)

    def set_solver_specific(self, key: str, value: Any) -> None:
        self.solver_specific[key] = value

    # ---------- lifecycle ----------
    def reset(self) -> "ExecutionStats":
        self.status = Status.UNKNOWN
        self.solution = None
        self.objective = np.inf
        self.dual_feas = np.inf
        self.iter = -1
        self.elapsed_time = np.inf
        self.solver_specific.clear()
        return self

    @property
    def done(self) -> bool:
        return self.status is not Status.UNKNOWN

    def __str__(self) -> str:
        return f"Execution stats: {self.status.message}"
