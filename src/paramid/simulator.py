#########################################################################################
##
##                                TRAJECTORY SIMULATOR
##                                  (simulator.py)
##
##         Integrates a DynamicsModel forward in time with an explicit Runge-Kutta
##         scheme, locating events by root finding along the step map.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
from scipy.optimize import brentq

from .errors import ConfigurationError
from .solvers import RK4
from .trajectory import DetectedEvent, Segment, Trajectory
from .utils.logger import LoggerManager


__all__ = ["TrajectorySimulator"]

_log = LoggerManager().get_logger(__name__)


# CLASS =================================================================================

class TrajectorySimulator:
    """Forward simulator for one model, initial state and horizon.

    Parameters
    ----------
    model : DynamicsModel
        Model to integrate.
    initial_state : mapping, array_like or callable
        Fixed initial state. A mapping of state names (missing names are
        zero), an array, or a callable ``initial_state(p)`` of the
        :class:`ParameterValues` for parameter-dependent launches.
    duration : float
        Simulation horizon, must be positive.
    Solver : type
        Explicit Runge-Kutta class from :mod:`paramid.solvers`.
    dt : float
        Step size (initial step size for adaptive schemes).
    dt_min, dt_max : float, optional
        Step size limits for adaptive schemes.
    tolerance_lte_abs, tolerance_lte_rel : float
        Local truncation error tolerances for adaptive schemes.
    max_events : int
        Cap on the number of detected events (chattering guard).
    max_steps : int
        Cap on the number of accepted steps.
    event_tolerance : float
        Absolute time tolerance of the event root finder.

    Example
    -------
    .. code-block:: python

        sim = TrajectorySimulator(model, {"height": 1.0}, duration=2.0, dt=1e-3)
        traj = sim.simulate([0.8])
        first = traj.event("impact", 1)
    """

    def __init__(
        self,
        model,
        initial_state,
        duration: float,
        *,
        Solver=RK4,
        dt: float = 1e-2,
        dt_min: float = 1e-9,
        dt_max: float | None = None,
        tolerance_lte_abs: float = 1e-8,
        tolerance_lte_rel: float = 1e-6,
        max_events: int = 100,
        max_steps: int = 1_000_000,
        event_tolerance: float = 1e-12,
    ):
        duration = float(duration)
        if not np.isfinite(duration) or duration <= 0.0:
            raise ConfigurationError(f"Simulation duration must be positive, got {duration}")
        if not dt > 0.0:
            raise ConfigurationError(f"Step size dt must be positive, got {dt}")
        if max_events < 1 or max_steps < 1:
            raise ConfigurationError("max_events and max_steps must be at least 1")

        self.model = model
        self.duration = duration
        self.Solver = Solver
        self.dt = float(dt)
        self.dt_min = float(dt_min)
        self.dt_max = float(dt_max) if dt_max is not None else duration
        self.max_events = int(max_events)
        self.max_steps = int(max_steps)
        self.event_tolerance = float(event_tolerance)

        self.solver = Solver(
            tolerance_lte_abs=tolerance_lte_abs,
            tolerance_lte_rel=tolerance_lte_rel,
        )

        #resolve fixed initial states once
        if callable(initial_state) and not isinstance(initial_state, Mapping):
            self._initial = initial_state
            self._x0 = None
        else:
            self._initial = None
            self._x0 = model.state_vector(initial_state)


    def __repr__(self):
        return (
            f"TrajectorySimulator(model={self.model.name!r}, duration={self.duration}, "
            f"solver={self.solver}, dt={self.dt})"
        )


    def initial_state(self, p) -> np.ndarray:
        """Initial state for the parameter values ``p``."""
        if self._initial is None:
            return self._x0.copy()
        return self.model.state_vector(self._initial(p))


    # HELPERS ---------------------------------------------------------------------------

    def _locate(self, event, func, p, t, x, h, g0, g1) -> float:
        """Step fraction ``tau`` in ``(0, h]`` where the event indicator crosses
        zero along the integrator's own step map."""
        if g1 == 0.0:
            return h

        def g(tau):
            if tau <= 0.0:
                return g0
            x_tau, _ = self.solver.step(func, t, x, tau)
            return self.model.indicator(event, x_tau, p, t + tau)

        return float(brentq(g, 0.0, h, xtol=self.event_tolerance))


    # SIMULATION ------------------------------------------------------------------------

    def simulate(self, vector=None) -> Trajectory:
        """Run the model with the derived-parameter vector ``vector``.

        Parameters
        ----------
        vector : array_like, optional
            Model-space derived parameters; defaults to the model's initial
            guess. Must lie within the declared bounds.

        Returns
        -------
        Trajectory
        """
        model = self.model
        p = model.values(vector)
        events = model.events

        def func(tt, xx):
            return model.derivative(xx, p, tt)

        t = 0.0
        x = self.initial_state(p)
        h = min(self.dt, self.duration)

        seg_t, seg_x = [t], [x]
        segments, detected = [], []
        counts = {e.name: 0 for e in events}
        termination = "horizon"
        steps = 0

        g_prev = [model.indicator(e, x, p, t) for e in events]

        while self.duration - t > 1e-12 * max(1.0, self.duration):

            if steps >= self.max_steps:
                termination = "max_steps"
                break

            h_try = min(h, self.duration - t)
            x_new, error_norm = self.solver.step(func, t, x, h_try)

            #adaptive step rejection
            if self.solver.is_adaptive and error_norm > 1.0 and h_try > self.dt_min:
                h = max(self.dt_min, self.solver.next_step_size(h_try, error_norm))
                continue

            steps += 1

            #event detection, earliest wins, ties in declaration order
            g_new = [model.indicator(e, x_new, p, t + h_try) for e in events]
            candidates = []
            for i, e in enumerate(events):
                if e.crossed(g_prev[i], g_new[i]):
                    tau = self._locate(e, func, p, t, x, h_try, g_prev[i], g_new[i])
                    candidates.append((tau, i))

            if candidates:
                tau, i = min(candidates)
                e = events[i]

                x_ev = x_new if tau == h_try else self.solver.step(func, t, x, tau)[0]
                t_ev = t + tau

                seg_t.append(t_ev)
                seg_x.append(x_ev)
                segments.append(
                    Segment(len(segments), _frozen(seg_t), _frozen(seg_x))
                )

                counts[e.name] += 1
                x_after = model.apply_reset(e, x_ev, p, t_ev)
                detected.append(
                    DetectedEvent(
                        name=e.name,
                        occurrence=counts[e.name],
                        time=t_ev,
                        state_before=_frozen(x_ev),
                        state_after=_frozen(x_after),
                    )
                )
                _log.debug("event '%s' #%d at t=%.6g", e.name, counts[e.name], t_ev)

                t, x = t_ev, x_after
                seg_t, seg_x = [t], [x]
                g_prev = [model.indicator(ev, x, p, t) for ev in events]

                # fired indicator sits on its root, round-off must not re-trigger it
                g_prev[i] = 0.0

                if e.terminal:
                    termination = f"terminal:{e.name}"
                    break
                if len(detected) >= self.max_events:
                    termination = "max_events"
                    _log.warning(
                        "model '%s' reached max_events=%d at t=%.6g",
                        model.name, self.max_events, t,
                    )
                    break
                continue

            t += h_try
            x = x_new
            seg_t.append(t)
            seg_x.append(x)
            g_prev = g_new

            if self.solver.is_adaptive:
                h = min(self.dt_max, max(self.dt_min, self.solver.next_step_size(h_try, error_norm)))

        segments.append(Segment(len(segments), _frozen(seg_t), _frozen(seg_x)))

        return Trajectory(
            model, p, segments, detected, self.duration, termination=termination
        )


def _frozen(values) -> np.ndarray:
    out = np.array(values, dtype=float)
    out.flags.writeable = False
    return out
