#########################################################################################
##
##                         PARAMETER IDENTIFICATION DRIVER
##                                   (solver.py)
##
##         Wires model, simulator, constraints, loss, optimizer and
##         identifiability analysis into one solve call.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import numpy as np

from .config import SolverConfig
from .constraints import compile_constraints
from .errors import ConfigurationError, ConvergenceWarning
from .identifiability import IdentifiabilityAnalyzer, IdentifiabilityReport
from .jacobian import fd_jacobian
from .loss import LossBreakdown, LossComposer
from .optimizer import (
    ConvergenceStatus,
    MultiStartOptimizer,
    OptimizationResult,
    RestartSummary,
)
from .plan import SolutionPlan, build_solution_plan, jacobian_structure
from .scaling import ParameterScaler
from .simulator import TrajectorySimulator
from .utils.logger import LoggerManager


__all__ = ["SolverResult", "ParameterSolver"]

_log = LoggerManager().get_logger(__name__)

#smallest time budget handed to a sub-run, config requires a positive value
_MIN_TIME_BUDGET = 1e-9


# HELPERS ===============================================================================

def _expired(deadline) -> bool:
    return deadline is not None and time.perf_counter() >= deadline


def _renumber(summaries) -> tuple:
    """Renumber block and refinement runs into one sequence."""
    return tuple(
        RestartSummary(i, r.source, r.start, r.x, r.loss, r.nfev, r.status, r.message, r.history)
        for i, r in enumerate(summaries)
    )


# SOLVER RESULT =========================================================================

@dataclass(frozen=True, eq=False)
class SolverResult:
    """Outcome of :meth:`ParameterSolver.solve`.

    Attributes
    ----------
    params : Mapping[str, float]
        Solved derived parameters by name (read-only).
    x : np.ndarray
        Solved derived-parameter vector (model space).
    loss : LossBreakdown
        Per-component loss at ``x``, with gradients attached.
    status : ConvergenceStatus
        Optimizer outcome.
    message : str
        Optimizer message.
    nfev : int
        Number of residual evaluations spent by the optimizer.
    wall_time : float
        Seconds spent in :meth:`ParameterSolver.solve`.
    restarts : tuple[RestartSummary, ...]
        One summary per local run.
    identifiability : IdentifiabilityReport or None
        Diagnostics at ``x``.
    trajectory : Trajectory
        Simulation at ``x``.
    strategy : str
        ``"joint"`` or ``"sequential"``.
    """

    params: Any
    x: np.ndarray
    loss: LossBreakdown
    status: ConvergenceStatus
    message: str
    nfev: int
    wall_time: float
    restarts: tuple = field(default_factory=tuple)
    identifiability: IdentifiabilityReport | None = None
    trajectory: Any = None
    strategy: str = "joint"


    @property
    def converged(self) -> bool:
        return self.status is ConvergenceStatus.CONVERGED


    @property
    def satisfied(self) -> bool:
        """True when every constraint is met within its tolerance."""
        return self.loss.satisfied


    @property
    def cost(self) -> float:
        return self.loss.total


    def __repr__(self) -> str:
        return (
            f"SolverResult({self.status.value}, loss={self.loss.total:.4g}, "
            f"satisfied={self.satisfied}, nfev={self.nfev}, params={dict(self.params)})"
        )


    def to_dict(self) -> dict:
        """JSON-serializable representation."""
        return {
            "params": {k: float(v) for k, v in self.params.items()},
            "x": [float(v) for v in self.x],
            "status": self.status.value,
            "message": self.message,
            "converged": self.converged,
            "satisfied": self.satisfied,
            "nfev": int(self.nfev),
            "wall_time": float(self.wall_time),
            "strategy": self.strategy,
            "loss": self.loss.to_dict(),
            "restarts": [r.to_dict() for r in self.restarts],
            "identifiability": None if self.identifiability is None
                               else self.identifiability.to_dict(),
        }


    def display(self) -> None:
        """Print solved parameters, convergence status and loss breakdown."""
        print("=" * 72)
        print("Parameter Identification Results")
        print("=" * 72)
        print(f"  status    : {self.status.value}  ({self.message})")
        print(f"  loss      : {self.loss.total:.6g}   satisfied: {self.satisfied}")
        print(f"  nfev      : {self.nfev}   wall time: {self.wall_time:.3f} s")
        print(f"  strategy  : {self.strategy}   restarts: {len(self.restarts)}")
        print("-" * 72)
        for name, value in self.params.items():
            print(f"  {name:32s}  = {value:.6g}")
        print()
        self.loss.display()
        if self.identifiability is not None:
            print()
            self.identifiability.display()


# PARAMETER SOLVER ======================================================================

class ParameterSolver:
    """Parameter identification driver.

    Parameters
    ----------
    model : DynamicsModel
        Model whose derived parameters are solved for.
    simulator : TrajectorySimulator, optional
        Pre-built simulator. When omitted one is built from
        ``initial_state``, ``duration`` and ``simulator_options``.
    initial_state : mapping, array_like or callable, optional
        Initial state for the default simulator.
    duration : float, optional
        Horizon for the default simulator.
    constraints : sequence of GivenConstraint
        Initial constraints; more can be added later.
    config : SolverConfig, optional
        Solver settings.
    **simulator_options
        Keyword arguments for :class:`TrajectorySimulator`
        (``Solver``, ``dt``, ``max_events`` ...).

    Example
    -------
    .. code-block:: python

        solver = ParameterSolver(model, initial_state={"height": 1.0}, duration=1.5,
                                 dt=1e-3)
        solver.add_constraint(EventConstraint("bounce", event="impact",
                                              quantity="restitution", target=0.8))
        result = solver.solve()
        result.display()
    """

    def __init__(self, model, simulator=None, *, initial_state=None, duration=None,
                 constraints=(), config=None, **simulator_options):
        if simulator is None:
            if initial_state is None or duration is None:
                raise ConfigurationError(
                    "ParameterSolver needs either a simulator or initial_state and duration"
                )
            simulator = TrajectorySimulator(model, initial_state, duration, **simulator_options)
        elif simulator_options:
            raise ConfigurationError(
                f"simulator options {sorted(simulator_options)} given together with a simulator"
            )
        if simulator.model is not model:
            raise ConfigurationError("simulator was built for a different model")

        self.model = model
        self.simulator = simulator
        self.config = config if config is not None else SolverConfig()
        self._constraints = []
        self._composer = None

        self.add_constraints(constraints)


    def __repr__(self):
        return (
            f"ParameterSolver(model={self.model.name!r}, "
            f"constraints={len(self._constraints)}, method={self.config.method!r})"
        )


    # CONSTRAINTS -----------------------------------------------------------------------

    @property
    def constraints(self) -> tuple:
        return tuple(self._constraints)


    def add_constraint(self, constraint) -> "ParameterSolver":
        """Validate and add one given constraint."""
        return self.add_constraints([constraint])


    def add_constraints(self, constraints) -> "ParameterSolver":
        """Validate and add several given constraints."""
        candidate = self._constraints + list(constraints)
        compiled = compile_constraints(self.model, candidate, duration=self.simulator.duration)
        self._constraints = candidate
        self._composer = LossComposer(compiled, unmet_penalty=self.config.unmet_penalty)
        return self


    @property
    def composer(self) -> LossComposer:
        if self._composer is None or not self._constraints:
            raise ConfigurationError(f"Model '{self.model.name}': no constraints added")
        return self._composer


    # EVALUATION ------------------------------------------------------------------------

    def _vector(self, x):
        return self.model.initial_guess if x is None else np.asarray(x, dtype=float).reshape(-1)


    def simulate(self, x=None):
        """Trajectory for the derived-parameter vector ``x``."""
        return self.simulator.simulate(self._vector(x))


    def residuals(self, x=None) -> np.ndarray:
        """Weighted residual vector ``sqrt(w) * r`` at ``x``."""
        return self.composer.residual_vector(self.simulate(x))


    def evaluate(self, x=None) -> LossBreakdown:
        """Loss breakdown at ``x``."""
        return self.composer.evaluate(self.simulate(x))


    def loss(self, x=None) -> float:
        """Total weighted squared loss at ``x``."""
        r = self.residuals(x)
        return float(np.dot(r, r))


    def _executor(self):
        return ThreadPoolExecutor(max_workers=self.config.workers) if self.config.workers > 1 else None


    # DIAGNOSTICS -----------------------------------------------------------------------

    def identifiability(self, x=None, *, warn=True) -> IdentifiabilityReport:
        """Identifiability report at ``x`` (default: initial guess)."""
        lower, upper = self.model.bounds
        executor = self._executor()
        try:
            return IdentifiabilityAnalyzer.from_config(self.config).analyze(
                self.residuals, self._vector(x), self.model.parameter_names,
                lower=lower, upper=upper, executor=executor, warn=warn,
            )
        finally:
            if executor is not None:
                executor.shutdown()


    def solution_plan(self, x=None) -> SolutionPlan:
        """Block lower-triangular plan from the Jacobian structure at ``x``."""
        lower, upper = self.model.bounds
        J = fd_jacobian(
            self.residuals, self._vector(x), rel_step=self.config.fd_step,
            lower=lower, upper=upper, central=True,
        )
        return build_solution_plan(
            jacobian_structure(J), self.composer.residual_names, self.model.parameter_names
        )


    # SOLVE -----------------------------------------------------------------------------

    def _optimizer(self, residual_fn, lower, upper, x0, config, names):
        full = ParameterScaler.from_model(self.model, config.scaling)
        idx = [self.model.parameter_index(n) for n in names]
        scaler = ParameterScaler([full.kinds[i] for i in idx], full.priors[idx])
        return MultiStartOptimizer(
            residual_fn, lower, upper, config=config, scaler=scaler, names=names, x0=x0,
        )


    def _timed_config(self, deadline, **changes) -> SolverConfig:
        """Config copy whose time budget is the time left until ``deadline``."""
        if deadline is not None:
            changes["time_budget"] = max(_MIN_TIME_BUDGET, deadline - time.perf_counter())
        return self.config.replace(**changes)


    def _solve_sequential(self, x0, deadline=None):
        """Solve the blocks of the solution plan in order, then refine jointly.

        All block runs and the joint refinement draw on the single
        ``deadline`` of the enclosing solve. Once it has passed the
        remaining blocks and the refinement are skipped.
        """
        plan = self.solution_plan(x0)
        if not plan.decomposed or len(plan) < 2:
            _log.info("solution plan has a single block, solving jointly")
            return None

        cfg = self.config
        lower, upper = self.model.bounds
        names = self.model.parameter_names
        x = np.array(x0, dtype=float)
        summaries, nfev = [], 0

        share = max(1, cfg.max_nfev // (len(plan) + 1))

        for block in plan:
            if _expired(deadline):
                return self._out_of_time(x, nfev, summaries)

            eqs = list(block.equations)
            unk = list(block.unknowns)

            def sub_residuals(z, eqs=eqs, unk=unk, base=x.copy()):
                full = base.copy()
                full[unk] = z
                return self.residuals(full)[eqs]

            sub_cfg = self._timed_config(
                deadline, max_nfev=share, restarts=0, global_fallback=False, polish=False,
            )
            opt = self._optimizer(
                sub_residuals, lower[unk], upper[unk], x[unk], sub_cfg,
                [names[i] for i in unk],
            )
            res = opt.run()
            x[unk] = res.x
            nfev += res.nfev
            summaries.extend(res.restarts)
            _log.info(
                "block %d %s solved: loss=%.6g", block.index,
                [names[i] for i in unk], res.loss,
            )

        if _expired(deadline):
            return self._out_of_time(x, nfev, summaries)

        final_cfg = self._timed_config(deadline, max_nfev=max(1, cfg.max_nfev - nfev), restarts=0)
        res = self._optimizer(self.residuals, lower, upper, x, final_cfg, names).run()

        return res, nfev + res.nfev, _renumber(summaries + list(res.restarts))


    def _out_of_time(self, x, nfev, summaries):
        message = "time budget exhausted during the sequential solve; returning best point seen"
        warnings.warn(f"optimizer stopped without convergence: {message}", ConvergenceWarning)
        _log.warning("sequential solve stopped: %s", message)
        res = OptimizationResult(
            x=np.array(x, dtype=float),
            loss=np.inf,
            status=ConvergenceStatus.BUDGET_EXHAUSTED,
            message=message,
            nfev=nfev,
            wall_time=0.0,
        )
        return res, nfev, _renumber(summaries)


    def solve(self, *, x0=None, strategy="joint", identifiability=True) -> SolverResult:
        """Search the derived parameters that best satisfy the constraints.

        Parameters
        ----------
        x0 : array_like, optional
            Default start (model space); the model's initial guess otherwise.
        strategy : str
            ``"joint"`` solves the full problem with multi-start;
            ``"sequential"`` first solves the blocks of the solution plan
            one after another, then refines the full problem.
        identifiability : bool
            Run the identifiability analysis at the solution.

        Returns
        -------
        SolverResult
        """
        if strategy not in ("joint", "sequential"):
            raise ConfigurationError(f"Unknown strategy '{strategy}'")

        t_start = time.perf_counter()
        deadline = None if self.config.time_budget is None else t_start + self.config.time_budget
        composer = self.composer
        lower, upper = self.model.bounds
        names = self.model.parameter_names
        x_start = self.model.clip(self._vector(x0))
        self.model.values(x_start)

        _log.info(
            "solving %d derived parameters of '%s' against %d constraints (%s)",
            self.model.n_params, self.model.name, len(composer.constraints), strategy,
        )

        outcome = self._solve_sequential(x_start, deadline) if strategy == "sequential" else None
        if outcome is None:
            strategy = "joint"
            cfg = self._timed_config(deadline)
            res = self._optimizer(self.residuals, lower, upper, x_start, cfg, names).run()
            nfev, summaries = res.nfev, res.restarts
        else:
            res, nfev, summaries = outcome

        x = self.model.clip(res.x)
        trajectory = self.simulate(x)
        breakdown = composer.evaluate(trajectory)

        report = None
        if identifiability:
            report = self.identifiability(x)
            breakdown = breakdown.with_gradients(report.jacobian, names)

        for text in breakdown.messages:
            _log.warning("unmet constraint %s", text)
        for c in breakdown.unsatisfied:
            if not c.message:
                _log.info("constraint '%s' not satisfied (loss %.4g)", c.name, c.loss)

        status, message = res.status, res.message
        unmet = [c.name for c in breakdown if c.unmet]
        if unmet and status is ConvergenceStatus.CONVERGED:
            #an unmet event leaves the loss on a flat penalty
            status = ConvergenceStatus.NOT_CONVERGED
            message = f"event constraints {unmet} unmet at the returned point"
            warnings.warn(f"optimizer stopped without convergence: {message}", ConvergenceWarning)
            _log.warning("optimizer status %s: %s", status.value, message)

        result = SolverResult(
            params=MappingProxyType(dict(zip(names, (float(v) for v in x)))),
            x=x,
            loss=breakdown,
            status=status,
            message=message,
            nfev=nfev,
            wall_time=time.perf_counter() - t_start,
            restarts=tuple(summaries),
            identifiability=report,
            trajectory=trajectory,
            strategy=strategy,
        )
        _log.info(
            "solve finished: status=%s loss=%.6g satisfied=%s",
            result.status.value, breakdown.total, result.satisfied,
        )
        return result


    # DISPLAY ---------------------------------------------------------------------------

    def display(self) -> None:
        """Print the model schema and the registered constraints."""
        print("=" * 72)
        print(self.model.describe())
        print("-" * 72)
        print("  constraints:")
        for c in (self._composer.constraints if self._composer is not None else ()):
            group = f" [{c.group}]" if c.group else ""
            print(f"    {c.name}{group}: {c.description}  (tol={c.tolerance:g}, w={c.weight:g})")
        print("=" * 72)
