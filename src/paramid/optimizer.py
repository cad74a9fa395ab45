#########################################################################################
##
##                               MULTI-START OPTIMIZER
##                                  (optimizer.py)
##
##         Bounded least-squares search over derived parameters with restarts,
##         evaluation and wall-clock budgets, global fallback and polishing.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import threading
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import scipy.optimize as sci_opt
from scipy.stats import qmc

from .config import SolverConfig
from .errors import ConvergenceWarning
from .jacobian import fd_jacobian
from .scaling import ParameterScaler
from .utils.logger import LoggerManager


__all__ = [
    "ConvergenceStatus",
    "RestartSummary",
    "OptimizationResult",
    "MultiStartOptimizer",
]

_log = LoggerManager().get_logger(__name__)


# STATUS ================================================================================

class ConvergenceStatus(str, Enum):
    """Outcome of an optimization run."""

    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"
    BUDGET_EXHAUSTED = "budget_exhausted"


class _BudgetExceeded(Exception):
    """Raised inside objective calls to unwind a local run."""


def _split_evenly(total, n) -> list[int]:
    """``total`` evaluations split over ``n`` runs, earlier runs get the remainder."""
    base, extra = divmod(int(total), n)
    return [base + (1 if i < extra else 0) for i in range(n)]


# RESULTS ===============================================================================

@dataclass(frozen=True, eq=False)
class RestartSummary:
    """Summary of one local run.

    ``source`` is ``"default"``, ``"lhs"``, ``"global"`` or ``"polish"``.
    ``history`` holds the loss of every objective evaluation (finite
    difference probes excluded).
    """

    index: int
    source: str
    start: np.ndarray
    x: np.ndarray
    loss: float
    nfev: int
    status: ConvergenceStatus
    message: str
    history: tuple = ()


    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "source": self.source,
            "start": [float(v) for v in self.start],
            "x": [float(v) for v in self.x],
            "loss": float(self.loss),
            "nfev": int(self.nfev),
            "status": self.status.value,
            "message": self.message,
        }


@dataclass(frozen=True, eq=False)
class OptimizationResult:
    """Best point found over all restarts, in model space."""

    x: np.ndarray
    loss: float
    status: ConvergenceStatus
    message: str
    nfev: int
    wall_time: float
    restarts: tuple = field(default_factory=tuple)
    best_index: int = 0

    @property
    def converged(self) -> bool:
        return self.status is ConvergenceStatus.CONVERGED


    def __repr__(self) -> str:
        return (
            f"OptimizationResult({self.status.value}, loss={self.loss:.4g}, "
            f"nfev={self.nfev}, x={self.x})"
        )


# SHARED STATE ==========================================================================

class _Budget:
    """Thread-safe evaluation counter and deadline."""

    def __init__(self, max_nfev, time_budget):
        self.max_nfev = int(max_nfev)
        self.deadline = None if time_budget is None else time.perf_counter() + float(time_budget)
        self.nfev = 0
        self.exhausted = False
        self._lock = threading.Lock()


    def charge(self):
        with self._lock:
            if self.nfev >= self.max_nfev or (
                self.deadline is not None and time.perf_counter() > self.deadline
            ):
                self.exhausted = True
                raise _BudgetExceeded()
            self.nfev += 1


    @property
    def remaining(self) -> int:
        with self._lock:
            return max(0, self.max_nfev - self.nfev)


class _BestState:
    """Best point seen, replaced under a lock when ``(loss, index)`` improves.

    The ordering key makes the final choice independent of the order in
    which parallel restarts complete.
    """

    def __init__(self):
        self.loss = np.inf
        self.index = np.iinfo(np.int64).max
        self.x = None
        self._lock = threading.Lock()


    def offer(self, loss, index, x) -> bool:
        with self._lock:
            if (loss, index) < (self.loss, self.index):
                self.loss, self.index, self.x = float(loss), int(index), np.array(x, dtype=float)
                return True
            return False


    def snapshot(self):
        with self._lock:
            return self.loss, self.index, None if self.x is None else self.x.copy()


class _LocalRun:
    """Objective wrapper for one local run in optimizer space.

    ``quota`` caps the evaluations of this run on top of the shared budget.
    """

    def __init__(self, owner, index, quota=None):
        self.owner = owner
        self.index = index
        self.quota = quota
        self.best_loss = np.inf
        self.best_x = None
        self.nfev = 0
        self.history = []
        self._last = None


    @property
    def remaining(self) -> int:
        if self.quota is None:
            return self.owner._budget.remaining
        return max(0, self.quota - self.nfev)


    def model_point(self, z) -> np.ndarray:
        o = self.owner
        return np.clip(o.scaler.to_model(z), o.lower, o.upper)


    def residuals(self, z, record=True) -> np.ndarray:
        o = self.owner
        if self.quota is not None and self.nfev >= self.quota:
            raise _BudgetExceeded()
        o._budget.charge()
        p = self.model_point(z)
        r = np.asarray(o.residual_fn(p), dtype=float)
        loss = float(np.dot(r, r))

        self.nfev += 1
        if record:
            self.history.append(loss)
            self._last = (np.array(z, dtype=float), r)
        if loss < self.best_loss:
            self.best_loss, self.best_x = loss, p
        o._best.offer(loss, self.index, p)
        return r


    def probe(self, z) -> np.ndarray:
        return self.residuals(z, record=False)


    def jacobian(self, z, executor=None) -> np.ndarray:
        o = self.owner
        f0 = None
        if self._last is not None and np.array_equal(self._last[0], z):
            f0 = self._last[1]
        return fd_jacobian(
            self.probe, z, f0,
            rel_step=o.config.fd_step, lower=o.z_lower, upper=o.z_upper,
            executor=executor,
        )


    def loss(self, z) -> float:
        r = self.residuals(z)
        return float(np.dot(r, r))


    def loss_and_grad(self, z, executor=None):
        r = self.residuals(z)
        J = self.jacobian(z, executor)
        return float(np.dot(r, r)), 2.0 * J.T @ r


# OPTIMIZER =============================================================================

class MultiStartOptimizer:
    """Bounded multi-start least-squares optimizer.

    Minimizes ``||residual_fn(p)||^2`` over the box ``[lower, upper]``.
    Each local run starts from the default guess or a seeded Latin
    hypercube sample and uses ``scipy.optimize.least_squares`` (``"trf"``)
    or ``scipy.optimize.minimize`` (``"L-BFGS-B"``) with finite-difference
    Jacobians. When no local run reaches ``config.target_loss`` an optional
    ``dual_annealing`` search followed by local refinement is run, and an
    optional ``L-BFGS-B`` polish refines the final point.

    Parameters
    ----------
    residual_fn : callable
        ``residual_fn(p) -> np.ndarray`` on model-space vectors.
    lower, upper : array_like
        Model-space bounds.
    config : SolverConfig, optional
        Budgets, tolerances and restart settings.
    scaler : ParameterScaler, optional
        Model/optimizer space transform (identity by default).
    names : sequence of str, optional
        Parameter names used in log messages.
    x0 : array_like, optional
        Default start; the box center (or zero) when omitted.
    """

    def __init__(self, residual_fn, lower, upper, *, config=None, scaler=None,
                 names=None, x0=None):
        self.residual_fn = residual_fn
        self.lower = np.asarray(lower, dtype=float).reshape(-1)
        self.upper = np.asarray(upper, dtype=float).reshape(-1)
        self.config = config if config is not None else SolverConfig()
        self.scaler = scaler if scaler is not None else ParameterScaler.identity(self.lower.size)

        n = self.lower.size
        self.names = tuple(names) if names is not None else tuple(f"p{i}" for i in range(n))

        if x0 is None:
            x0 = np.where(
                np.isfinite(self.lower) & np.isfinite(self.upper),
                0.5 * (self.lower + self.upper),
                np.clip(0.0, self.lower, self.upper),
            )
        self.x0 = np.clip(np.asarray(x0, dtype=float).reshape(-1), self.lower, self.upper)

        self.z_lower, self.z_upper = self.scaler.bounds_to_opt(self.lower, self.upper)

        self._budget = None
        self._best = None


    # SAMPLING --------------------------------------------------------------------------

    def _finite_box(self, z0):
        """Optimizer-space box with infinite sides replaced around ``z0``."""
        span = 10.0 * np.maximum(1.0, np.abs(z0))
        lo = np.where(np.isfinite(self.z_lower), self.z_lower, z0 - span)
        hi = np.where(np.isfinite(self.z_upper), self.z_upper, z0 + span)
        return lo, hi


    def starts(self) -> list[tuple[str, np.ndarray]]:
        """Default guess followed by ``config.restarts`` Latin hypercube samples,
        all in model space."""
        out = [("default", self.x0.copy())]
        if self.config.restarts > 0:
            z0 = self.scaler.to_opt(self.x0)
            lo, hi = self._finite_box(z0)
            sampler = qmc.LatinHypercube(d=self.x0.size, seed=self.config.seed)
            samples = qmc.scale(sampler.random(n=self.config.restarts), lo, hi)
            for z in samples:
                p = np.clip(self.scaler.to_model(z), self.lower, self.upper)
                out.append(("lhs", p))
        return out


    # LOCAL RUNS ------------------------------------------------------------------------

    def _local(self, index, source, start, executor=None, method=None,
               quota=None) -> RestartSummary:
        cfg = self.config
        method = method or cfg.method
        run = _LocalRun(self, index, quota)
        z0 = np.clip(self.scaler.to_opt(start), self.z_lower, self.z_upper)

        status = ConvergenceStatus.NOT_CONVERGED
        message = ""
        try:
            if method == "trf":
                res = sci_opt.least_squares(
                    run.residuals,
                    x0=z0,
                    jac=lambda z: run.jacobian(z, executor),
                    bounds=(self.z_lower, self.z_upper),
                    method="trf",
                    ftol=cfg.convergence_tol,
                    xtol=cfg.xtol,
                    gtol=cfg.gtol,
                    max_nfev=max(1, run.remaining),
                )
                converged = res.status > 0
            else:
                res = sci_opt.minimize(
                    lambda z: run.loss_and_grad(z, executor),
                    x0=z0,
                    jac=True,
                    method="L-BFGS-B",
                    bounds=list(zip(self.z_lower, self.z_upper)),
                    options={
                        "maxfun": max(1, run.remaining),
                        "ftol": cfg.convergence_tol,
                        "gtol": cfg.gtol,
                    },
                )
                converged = bool(res.success)
            message = str(res.message)
            if converged or run.best_loss <= cfg.target_loss:
                status = ConvergenceStatus.CONVERGED

        except _BudgetExceeded:
            status = ConvergenceStatus.BUDGET_EXHAUSTED
            message = "evaluation or time budget exhausted"

        x = run.best_x if run.best_x is not None else np.clip(start, self.lower, self.upper)
        summary = RestartSummary(
            index=index,
            source=source,
            start=np.array(start, dtype=float),
            x=np.array(x, dtype=float),
            loss=float(run.best_loss),
            nfev=run.nfev,
            status=status,
            message=message,
            history=tuple(run.history),
        )
        _log.info(
            "restart %d (%s): loss=%.6g nfev=%d status=%s",
            index, source, summary.loss, summary.nfev, status.value,
        )
        return summary


    def _global(self, index) -> RestartSummary:
        """``dual_annealing`` over the (finite) optimizer-space box."""
        cfg = self.config
        run = _LocalRun(self, index)
        _, _, best_x = self._best.snapshot()
        z0 = np.clip(self.scaler.to_opt(best_x), self.z_lower, self.z_upper)
        lo, hi = self._finite_box(z0)

        status = ConvergenceStatus.NOT_CONVERGED
        message = ""
        #half of the remaining budget, the rest is left for local refinement
        try:
            res = sci_opt.dual_annealing(
                run.loss,
                bounds=list(zip(lo, hi)),
                x0=np.clip(z0, lo, hi),
                maxfun=max(1, self._budget.remaining // 2),
                seed=cfg.seed,
                no_local_search=True,
            )
            message = " ".join(np.atleast_1d(res.message).astype(str))
        except _BudgetExceeded:
            status = ConvergenceStatus.BUDGET_EXHAUSTED
            message = "evaluation or time budget exhausted"

        x = run.best_x if run.best_x is not None else best_x
        _log.info("global fallback: loss=%.6g nfev=%d", run.best_loss, run.nfev)
        return RestartSummary(
            index, "global", np.array(best_x, dtype=float), np.array(x, dtype=float),
            float(run.best_loss), run.nfev, status, message, tuple(run.history),
        )


    # DRIVER ----------------------------------------------------------------------------

    def run(self) -> OptimizationResult:
        """Run all restarts, the optional fallback and the optional polish.

        Returns
        -------
        OptimizationResult
            Best point seen; ``BUDGET_EXHAUSTED`` when a budget cut the
            search short before the target loss was reached.
        """
        cfg = self.config
        t_start = time.perf_counter()
        self._budget = _Budget(cfg.max_nfev, cfg.time_budget)
        self._best = _BestState()

        starts = self.starts()
        summaries = []

        if cfg.workers > 1 and len(starts) > 1:
            #fixed quotas in submission order, the result does not depend on scheduling
            quotas = _split_evenly(cfg.max_nfev, len(starts))
            with ThreadPoolExecutor(max_workers=cfg.workers) as pool:
                futures = [
                    pool.submit(self._local, i, src, p, quota=q)
                    for i, ((src, p), q) in enumerate(zip(starts, quotas))
                ]
                summaries = [f.result() for f in futures]
        else:
            executor = ThreadPoolExecutor(max_workers=cfg.workers) if cfg.workers > 1 else None
            try:
                for i, (src, p) in enumerate(starts):
                    summaries.append(self._local(i, src, p, executor))
                    if self._best.loss <= cfg.target_loss or self._budget.exhausted:
                        break
            finally:
                if executor is not None:
                    executor.shutdown()

        index = len(starts)

        #global fallback and local refinement of its result
        if (cfg.global_fallback and self._best.loss > cfg.target_loss
                and not self._budget.exhausted and self._best.x is not None):
            _log.info("no restart reached target loss %.3g, running global fallback", cfg.target_loss)
            summaries.append(self._global(index))
            index += 1
            if not self._budget.exhausted:
                _, _, best_x = self._best.snapshot()
                summaries.append(self._local(index, "global", best_x))
                index += 1

        #final polish over the full problem
        if cfg.polish and not self._budget.exhausted and self._best.x is not None:
            _, _, best_x = self._best.snapshot()
            summaries.append(self._local(index, "polish", best_x, method="L-BFGS-B"))
            index += 1

        loss, best_index, x = self._best.snapshot()
        if x is None:
            x, loss = self.x0.copy(), np.inf

        owner = next((s for s in summaries if s.index == best_index), None)
        if loss <= cfg.target_loss:
            status = ConvergenceStatus.CONVERGED
            message = f"target loss {cfg.target_loss:.3g} reached"
        elif self._budget.exhausted or (
            owner is not None and owner.status is ConvergenceStatus.BUDGET_EXHAUSTED
        ):
            status = ConvergenceStatus.BUDGET_EXHAUSTED
            message = (
                f"budget exhausted after {self._budget.nfev} evaluations; "
                f"returning best point seen"
            )
        elif owner is not None and owner.status is ConvergenceStatus.CONVERGED:
            status = ConvergenceStatus.CONVERGED
            message = owner.message or "local convergence"
        else:
            status = ConvergenceStatus.NOT_CONVERGED
            message = owner.message if owner is not None else "no evaluation succeeded"

        if status is not ConvergenceStatus.CONVERGED:
            warnings.warn(f"optimizer stopped without convergence: {message}", ConvergenceWarning)
            _log.warning("optimizer status %s: %s", status.value, message)

        return OptimizationResult(
            x=np.clip(x, self.lower, self.upper),
            loss=float(loss),
            status=status,
            message=message,
            nfev=self._budget.nfev,
            wall_time=time.perf_counter() - t_start,
            restarts=tuple(summaries),
            best_index=int(best_index) if np.isfinite(loss) else 0,
        )
