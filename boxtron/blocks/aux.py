# aux.py
# Configuration for the TRON bound-constrained trust-region Newton solver.

from __future__ import annotations

# =========================
# Standard library
# =========================
from dataclasses import dataclass, fields
from typing import Any, Dict

# =========================
# Third-party
# =========================
import numpy as np

_EPS = float(np.finfo(np.float64).eps)


def _default_max_radius() -> float:
    return min(1.0 / np.sqrt(2.0 * _EPS), 100.0)


# ======================================
# Global configuration
# ======================================
@dataclass
class TronConfig:
    """
    Options of the TRON solver.

    Notes
    -----
    • Negative ``max_eval`` / ``max_iter`` mean "no limit".
    • The trust-region thresholds default to the values of Lin & Moré (1999).
    • ``verbose = k > 0`` logs one iteration row every ``k`` iterations.
    """

    # ---------------- Cauchy / line search ----------------
    mu0: float = 1e-2  # sufficient decrease, in (0, 0.5)
    mu1: float = 1.0  # Cauchy radius scaling, > 0
    sigma: float = 10.0  # Cauchy step scaling, > 1

    # ---------------- Budgets ----------------
    max_eval: int = -1
    max_iter: int = -1
    max_time: float = 30.0
    max_cgiter: int = 50

    # ---------------- Evaluations ----------------
    use_only_objgrad: bool = False

    # ---------------- Tolerances ----------------
    cgtol: float = 0.1
    atol: float = float(np.sqrt(_EPS))
    rtol: float = float(np.sqrt(_EPS))

    # ---------------- Reporting ----------------
    verbose: int = 0

    # ---------------- Trust region ----------------
    max_radius: float = _default_max_radius()
    acceptance_threshold: float = 1e-4  # η₀: accept iff ρ ≥ η₀
    decrease_threshold: float = 0.25  # η₁
    increase_threshold: float = 0.75  # η₂: grow if ρ ≥ η₂
    large_decrease_factor: float = 0.25  # σ₁
    small_decrease_factor: float = 0.5  # σ₂
    increase_factor: float = 4.0  # σ₃

    def __post_init__(self) -> None:
        if not (0.0 < self.mu0 < 0.5):
            raise ValueError(f"mu0 must lie in (0, 0.5), got {self.mu0}")
        if not self.mu1 > 0.0:
            raise ValueError(f"mu1 must be positive, got {self.mu1}")
        if not self.sigma > 1.0:
            raise ValueError(f"sigma must be > 1, got {self.sigma}")
        if self.max_cgiter < 1:
            raise ValueError(f"max_cgiter must be at least 1, got {self.max_cgiter}")
        if not self.cgtol > 0.0:
            raise ValueError(f"cgtol must be positive, got {self.cgtol}")
        if self.atol < 0.0 or self.rtol < 0.0:
            raise ValueError("atol and rtol must be nonnegative")
        if not self.max_radius > 0.0:
            raise ValueError(f"max_radius must be positive, got {self.max_radius}")
        if not (
            0.0 <= self.acceptance_threshold
            <= self.decrease_threshold
            <= self.increase_threshold
        ):
            raise ValueError(
                "expected 0 <= acceptance_threshold <= decrease_threshold <= increase_threshold"
            )
        if not (0.0 < self.large_decrease_factor <= self.small_decrease_factor < 1.0):
            raise ValueError(
                "expected 0 < large_decrease_factor <= small_decrease_factor < 1"
            )
        if not self.increase_factor > 1.0:
            raise ValueError(f"increase_factor must be > 1, got {self.increase_factor}")
        self.verbose = int(self.verbose)
        self.max_eval = int(self.max_eval)
        self.max_iter = int(self.max_iter)
        self.max_cgiter = int(self.max_cgiter)

    @classmethod
    def from_options(cls, base: "TronConfig | None" = None, **options: Any) -> "TronConfig":
        """Return a new config with ``options`` overriding ``base`` (or the defaults)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise TypeError(f"unknown TRON option(s): {', '.join(unknown)}")
        values: Dict[str, Any] = (
            {f.name: getattr(base, f.name) for f in fields(cls)} if base is not None else {}
        )
        values.update(options)
        return cls(**values)

    def trust_region_options(self) -> Dict[str, float]:
        return {
            "max_radius": self.max_radius,
            "acceptance_threshold": self.acceptance_threshold,
            "decrease_threshold": self.decrease_threshold,
            "increase_threshold": self.increase_threshold,
            "large_decrease_factor": self.large_decrease_factor,
            "small_decrease_factor": self.small_decrease_factor,
            "increase_factor": self.increase_factor,
        }
