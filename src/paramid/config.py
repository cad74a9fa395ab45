#########################################################################################
##
##                               SOLVER CONFIGURATION
##                                    (config.py)
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace

import numpy as np

from .errors import ConfigurationError


__all__ = ["SolverConfig"]

_METHODS = ("trf", "L-BFGS-B")
_SCALINGS = ("auto", "linear")


# CONFIG ================================================================================

@dataclass(frozen=True)
class SolverConfig:
    """Settings of one :class:`ParameterSolver` run.

    Parameters
    ----------
    method : str
        Local optimizer: ``"trf"`` (trust-region reflective least squares,
        a bounded damped Gauss-Newton) or ``"L-BFGS-B"``.
    max_nfev : int
        Residual evaluation budget over the whole run.
    time_budget : float or None
        Wall-clock budget in seconds; ``None`` disables it.
    restarts : int
        Number of Latin-hypercube restarts in addition to the default guess.
    convergence_tol : float
        Relative loss improvement below which a local run has converged
        (``ftol``).
    xtol, gtol : float
        Step and gradient tolerances of the local optimizer.
    fd_step : float
        Relative finite-difference step.
    workers : int
        Thread pool size for restarts and Jacobian probes (1 = sequential).
    seed : int
        Seed of the restart sampler.
    scaling : str
        ``"auto"`` (per-parameter declared scaling) or ``"linear"``.
    target_loss : float
        Loss at which the search stops early and below which no global
        fallback is needed.
    global_fallback : bool
        Run ``dual_annealing`` when no local run reaches ``target_loss``.
    polish : bool
        Final ``L-BFGS-B`` refinement over the full problem.
    unmet_penalty : float
        Residual per missing event occurrence.
    identifiability_threshold : float
        Relative singular value threshold for non-identifiable directions.
    participation_threshold : float
        Minimum absolute component of a weak direction to flag a parameter.
    correlation_threshold : float
        Absolute correlation above which parameter pairs are reported.
    """

    method: str = "trf"
    max_nfev: int = 2000
    time_budget: float | None = 5.0
    restarts: int = 4
    convergence_tol: float = 1e-10
    xtol: float = 1e-10
    gtol: float = 1e-10
    fd_step: float = 1e-6
    workers: int = 1
    seed: int = 0
    scaling: str = "auto"
    target_loss: float = 1e-8
    global_fallback: bool = True
    polish: bool = False
    unmet_penalty: float = 10.0
    identifiability_threshold: float = 1e-3
    participation_threshold: float = 0.3
    correlation_threshold: float = 0.9


    def __post_init__(self):
        if self.method not in _METHODS:
            raise ConfigurationError(f"method must be one of {_METHODS}, got '{self.method}'")
        if self.scaling not in _SCALINGS:
            raise ConfigurationError(f"scaling must be one of {_SCALINGS}, got '{self.scaling}'")
        if int(self.max_nfev) < 1:
            raise ConfigurationError(f"max_nfev must be at least 1, got {self.max_nfev}")
        if self.time_budget is not None and not float(self.time_budget) > 0.0:
            raise ConfigurationError(f"time_budget must be positive, got {self.time_budget}")
        if int(self.restarts) < 0:
            raise ConfigurationError(f"restarts must be non-negative, got {self.restarts}")
        if int(self.workers) < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")

        for name in ("convergence_tol", "xtol", "gtol", "fd_step", "unmet_penalty"):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value <= 0.0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if not np.isfinite(self.target_loss) or self.target_loss < 0.0:
            raise ConfigurationError(f"target_loss must be non-negative, got {self.target_loss}")
        if not 0.0 < self.identifiability_threshold < 1.0:
            raise ConfigurationError(
                "identifiability_threshold must lie in (0, 1), "
                f"got {self.identifiability_threshold}"
            )
        if not 0.0 < self.participation_threshold <= 1.0:
            raise ConfigurationError(
                f"participation_threshold must lie in (0, 1], got {self.participation_threshold}"
            )
        if not 0.0 < self.correlation_threshold <= 1.0:
            raise ConfigurationError(
                f"correlation_threshold must lie in (0, 1], got {self.correlation_threshold}"
            )


    def replace(self, **changes) -> "SolverConfig":
        """Copy with some fields changed (validated again)."""
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown SolverConfig fields: {sorted(unknown)}")
        return replace(self, **changes)


    @classmethod
    def from_dict(cls, data) -> "SolverConfig":
        """Build a config from a plain mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown SolverConfig fields: {sorted(unknown)}")
        return cls(**dict(data))


    def to_dict(self) -> dict:
        return asdict(self)
