#########################################################################################
##
##                                 TRAJECTORY CONTAINER
##                                   (trajectory.py)
##
##         Immutable result of one forward simulation: continuous segments
##         split at events plus the list of detected events.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import UnmetEventError


__all__ = ["Segment", "DetectedEvent", "Trajectory"]


# HELPERS ===============================================================================

def _readonly(arr) -> np.ndarray:
    out = np.array(arr, dtype=float)
    out.flags.writeable = False
    return out


def _interp_at(tt: float, t_arr: np.ndarray, y_arr: np.ndarray) -> np.ndarray:
    """Linear interpolation of the state rows at scalar time ``tt``.

    Parameters
    ----------
    tt : float
        Query time (clamped to ``[t_arr[0], t_arr[-1]]``).
    t_arr : np.ndarray
        Non-decreasing sample times, shape ``(n,)``.
    y_arr : np.ndarray
        Sample values, shape ``(n, m)``.
    """
    idx = int(np.searchsorted(t_arr, tt, side="left"))

    if idx == 0:
        return y_arr[0, :].copy()
    if idx >= len(t_arr):
        return y_arr[-1, :].copy()

    dt = t_arr[idx] - t_arr[idx - 1]
    if dt <= 0.0:
        return y_arr[idx, :].copy()

    alpha = (tt - t_arr[idx - 1]) / dt
    return y_arr[idx - 1, :] + alpha * (y_arr[idx, :] - y_arr[idx - 1, :])


def _hermite_at(tt, t0, t1, y0, y1, d0, d1) -> np.ndarray:
    """Cubic Hermite interpolation on ``[t0, t1]`` from values and slopes."""
    h = t1 - t0
    if h <= 0.0:
        return np.array(y1, dtype=float)

    s = (tt - t0) / h
    h00 = 2*s**3 - 3*s**2 + 1
    h10 = s**3 - 2*s**2 + s
    h01 = -2*s**3 + 3*s**2
    h11 = s**3 - s**2
    return h00*y0 + h10*h*d0 + h01*y1 + h11*h*d1


# DATA ==================================================================================

@dataclass(frozen=True, eq=False)
class Segment:
    """Continuous stretch of the trajectory between two events.

    Attributes
    ----------
    index : int
        Position of the segment in the trajectory.
    time : np.ndarray
        Sample times, shape ``(n,)``, read-only.
    states : np.ndarray
        State samples, shape ``(n, n_states)``, read-only.
    """

    index: int
    time: np.ndarray
    states: np.ndarray

    @property
    def t_start(self) -> float:
        return float(self.time[0])

    @property
    def t_end(self) -> float:
        return float(self.time[-1])


@dataclass(frozen=True, eq=False)
class DetectedEvent:
    """One located event occurrence.

    Attributes
    ----------
    name : str
        Event name as declared on the model.
    occurrence : int
        1-based count of this event name.
    time : float
        Located crossing time.
    state_before : np.ndarray
        State at the crossing, before the reset map.
    state_after : np.ndarray
        State after the reset map (equal to ``state_before`` without reset).
    """

    name: str
    occurrence: int
    time: float
    state_before: np.ndarray
    state_after: np.ndarray


# CLASS =================================================================================

class Trajectory:
    """Time-indexed state history produced by exactly one model and one
    derived-parameter vector.

    Interpolation is right-continuous: at an event time the state after the
    reset is returned. Queries past the final time (e.g. after a terminal
    event) hold the last state.

    Parameters
    ----------
    model : DynamicsModel
        Model that produced the trajectory.
    params : ParameterValues
        Parameter values used for the run.
    segments : sequence of Segment
        Continuous segments in time order.
    events : sequence of DetectedEvent
        Detected events in time order.
    duration : float
        Requested simulation horizon.
    termination : str
        Why the run stopped (``"horizon"``, ``"terminal:<event>"``,
        ``"max_events"`` or ``"max_steps"``).
    """

    def __init__(self, model, params, segments, events, duration, termination="horizon"):
        if not segments:
            raise ValueError("Trajectory requires at least one segment")

        self.model = model
        self.params = params
        self.segments = tuple(segments)
        self.events = tuple(events)
        self.duration = float(duration)
        self.termination = str(termination)

        self._starts = np.array([s.t_start for s in self.segments])
        self._time = None
        self._states = None


    def __repr__(self):
        return (
            f"Trajectory(model={self.model.name!r}, segments={len(self.segments)}, "
            f"events={len(self.events)}, t_end={self.t_end:.6g}, "
            f"termination={self.termination!r})"
        )


    # PROPERTIES ------------------------------------------------------------------------

    @property
    def vector(self) -> np.ndarray:
        """Derived-parameter vector that produced this trajectory."""
        return self.params.vector


    @property
    def t_end(self) -> float:
        """Last simulated time (may be below ``duration`` after a terminal event)."""
        return self.segments[-1].t_end


    @property
    def time(self) -> np.ndarray:
        """All sample times concatenated over segments (event times repeat)."""
        if self._time is None:
            self._time = _readonly(np.concatenate([s.time for s in self.segments]))
        return self._time


    @property
    def states(self) -> np.ndarray:
        """All state samples concatenated over segments."""
        if self._states is None:
            self._states = _readonly(np.vstack([s.states for s in self.segments]))
        return self._states


    @property
    def final_state(self) -> np.ndarray:
        return self.segments[-1].states[-1].copy()


    # EVENTS ----------------------------------------------------------------------------

    def events_named(self, name: str) -> list[DetectedEvent]:
        """All occurrences of event ``name`` in time order."""
        return [e for e in self.events if e.name == name]


    def event(self, name: str, occurrence: int = 1) -> DetectedEvent:
        """The ``occurrence``-th (1-based) event named ``name``.

        Raises
        ------
        UnmetEventError
            If fewer occurrences were detected within the horizon.
        """
        found = self.events_named(name)
        if occurrence < 1 or occurrence > len(found):
            raise UnmetEventError(name, occurrence, len(found))
        return found[occurrence - 1]


    # INTERPOLATION ---------------------------------------------------------------------

    def segment_at(self, t: float) -> Segment:
        """Segment that covers time ``t`` (the later one at event boundaries)."""
        idx = int(np.searchsorted(self._starts, t, side="right")) - 1
        return self.segments[max(0, idx)]


    def state_at(self, t: float, method: str = "linear") -> np.ndarray:
        """Interpolated state at time ``t``.

        Parameters
        ----------
        t : float
            Query time.
        method : str
            ``"linear"`` or ``"hermite"`` (cubic Hermite using the model
            derivative at the bracketing samples).
        """
        if method not in ("linear", "hermite"):
            raise ValueError(f"Unknown interpolation method '{method}'")

        seg = self.segment_at(t)
        t_arr, x_arr = seg.time, seg.states

        if t >= t_arr[-1]:
            return x_arr[-1].copy()
        if t <= t_arr[0]:
            return x_arr[0].copy()
        if method == "linear":
            return _interp_at(t, t_arr, x_arr)

        idx = int(np.searchsorted(t_arr, t, side="right"))
        t0, t1 = t_arr[idx - 1], t_arr[idx]
        x0, x1 = x_arr[idx - 1], x_arr[idx]
        d0 = self.model.derivative(x0, self.params, t0)
        d1 = self.model.derivative(x1, self.params, t1)
        return _hermite_at(t, t0, t1, x0, x1, d0, d1)


    def observable_at(self, name: str, t: float, method: str = "linear") -> float:
        """Value of a state or observable at time ``t``."""
        g = self.model.observable(name)
        return g(self.state_at(t, method), self.params, t)


    def observable_series(self, name: str) -> tuple[np.ndarray, np.ndarray]:
        """``(time, values)`` of a state or observable at every sample."""
        g = self.model.observable(name)
        values = np.array(
            [g(x, self.params, t) for t, x in zip(self.time, self.states)], dtype=float
        )
        return self.time, values


    # VISUALIZATION ---------------------------------------------------------------------

    def plot(self, names=None, *, show_events=True, figsize=(8, 4)):
        """Plot states or observables over time with event markers.

        Parameters
        ----------
        names : list[str], optional
            States or observables to plot; defaults to all states.
        show_events : bool
            Draw a vertical line at every detected event.
        """
        import matplotlib.pyplot as plt

        names = list(self.model.state_names) if names is None else list(names)

        fig, ax = plt.subplots(figsize=figsize)
        for name in names:
            t, y = self.observable_series(name)
            ax.plot(t, y, label=name)

        if show_events:
            for ev in self.events:
                ax.axvline(ev.time, color="0.6", linestyle=":", linewidth=1.0)

        ax.set_xlabel("Time (s)")
        ax.set_title(f"Trajectory: {self.model.name}")
        ax.legend()
        ax.grid(True)
        fig.tight_layout()
        return fig, ax
