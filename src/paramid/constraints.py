#########################################################################################
##
##                                CONSTRAINT COMPILER
##                                 (constraints.py)
##
##         Designer-facing constraint kinds and their compilation into residual
##         functions of a Trajectory.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from .errors import ConfigurationError


__all__ = [
    "PointConstraint",
    "EventConstraint",
    "SettlingConstraint",
    "GivenConstraint",
    "CompiledConstraint",
    "compile_constraints",
    "settling_time",
    "event_gap",
]


# CONSTRAINT KINDS ======================================================================

@dataclass(frozen=True)
class PointConstraint:
    """Observable(s) at a fixed time equal a target.

    Parameters
    ----------
    name : str
        Unique constraint name.
    observable : str or sequence of str
        State or observable name(s) to read.
    time : float
        Query time, within the simulated horizon.
    target : float or array_like
        Target value(s), one per observable.
    tolerance : float
        Acceptance band and residual scale.
    weight : float
        Positive loss weight.
    group : str
        Reporting group path, e.g. ``"jump/apex"``.
    interpolation : str
        ``"linear"`` or ``"hermite"``.
    """

    name: str
    observable: Union[str, Sequence[str]]
    time: float
    target: Union[float, Sequence[float]]
    tolerance: float = 1e-3
    weight: float = 1.0
    group: str = ""
    interpolation: str = "linear"


@dataclass(frozen=True)
class EventConstraint:
    """A quantity at the Nth occurrence of an event equals a target.

    ``quantity`` is ``"time"`` (the event time), ``"restitution"`` (ratio of
    the normal velocity after and before the reset, ``-v_after / v_before``)
    or any state/observable name read ``when="before"`` or ``"after"`` the
    reset map.
    """

    name: str
    event: str
    target: float
    quantity: str = "time"
    occurrence: int = 1
    when: str = "after"
    tolerance: float = 1e-3
    weight: float = 1.0
    group: str = ""


@dataclass(frozen=True)
class SettlingConstraint:
    """``|observable|`` settles below ``threshold`` at (or by) a given time.

    ``mode="exact"`` penalizes deviation of the settling time in both
    directions, ``mode="by"`` only settling later than ``time``.
    """

    name: str
    observable: str
    threshold: float
    time: float
    mode: str = "exact"
    tolerance: float = 1e-2
    weight: float = 1.0
    group: str = ""


GivenConstraint = Union[PointConstraint, EventConstraint, SettlingConstraint]


# COMPILED ==============================================================================

class CompiledConstraint:
    """Residual function of a trajectory for one given constraint.

    :meth:`evaluate` returns ``(simulated - target) / tolerance``. The
    constraint is satisfied when every entry has magnitude ``<= 1``.
    Event constraints raise :class:`UnmetEventError` when the requested
    occurrence is missing; :meth:`shortfall` then tells how far the event
    was from firing.
    """

    def __init__(self, source, size, fn, description="", gap=None):
        self.source = source
        self.size = int(size)
        self._fn = fn
        self._gap = gap
        self.description = description


    @property
    def name(self) -> str:
        return self.source.name

    @property
    def group(self) -> str:
        return self.source.group

    @property
    def weight(self) -> float:
        return float(self.source.weight)

    @property
    def tolerance(self) -> float:
        return float(self.source.tolerance)

    @property
    def kind(self) -> str:
        return type(self.source).__name__


    def evaluate(self, trajectory) -> np.ndarray:
        r = np.atleast_1d(np.asarray(self._fn(trajectory), dtype=float))
        return r / self.tolerance


    def shortfall(self, trajectory) -> float:
        """Distance of a missing event from firing, ``0.0`` for other kinds."""
        return 0.0 if self._gap is None else float(self._gap(trajectory))


    def __repr__(self):
        return f"CompiledConstraint({self.kind}: {self.name!r}, size={self.size})"


# SETTLING TIME =========================================================================

def settling_time(time, values, threshold) -> float:
    """Continuous settling time of ``|values|`` below ``threshold``.

    The last downward crossing of the threshold is interpolated linearly.
    If the signal is still above the threshold at the end, the horizon is
    extended by ``ln(|x_end| / threshold)`` so the result keeps growing with
    the remaining excess.
    """
    t = np.asarray(time, dtype=float)
    a = np.abs(np.asarray(values, dtype=float))

    above = np.flatnonzero(a >= threshold)
    if above.size == 0:
        return float(t[0])

    i = int(above[-1])
    if i == a.size - 1:
        return float(t[-1] + np.log(a[-1] / threshold))

    frac = (a[i] - threshold) / (a[i] - a[i + 1])
    return float(t[i] + frac * (t[i + 1] - t[i]))


# EVENT GAP =============================================================================

def event_gap(trajectory, spec) -> float:
    """How far the indicator of event ``spec`` stayed from its next crossing.

    Only samples after the last detected occurrence count. The indicator
    is signed so that it decreases towards a crossing in the event's
    direction, and the smallest value after its peak is returned (``0.0``
    when it reached or passed zero).
    """
    t = trajectory.time
    found = trajectory.events_named(spec.name)
    first = int(np.searchsorted(t, found[-1].time, side="right")) if found else 0
    if first >= t.size:
        return 0.0

    p = trajectory.params
    g = np.array([
        trajectory.model.indicator(spec, x, p, ti)
        for x, ti in zip(trajectory.states[first:], t[first:])
    ], dtype=float)

    if spec.direction > 0:
        g = -g
    elif spec.direction == 0:
        g = np.abs(g)

    peak = int(np.argmax(g))
    return max(0.0, float(np.min(g[peak:])))


# COMPILERS =============================================================================

def _check_common(c, names_seen):
    if not isinstance(c.name, str) or not c.name:
        raise ConfigurationError(f"Constraint name must be a non-empty string, got {c.name!r}")
    if c.name in names_seen:
        raise ConfigurationError(f"Duplicate constraint name '{c.name}'")
    w, tol = float(c.weight), float(c.tolerance)
    if not np.isfinite(w) or w <= 0.0:
        raise ConfigurationError(f"Constraint '{c.name}': weight must be positive, got {c.weight}")
    if not np.isfinite(tol) or tol <= 0.0:
        raise ConfigurationError(
            f"Constraint '{c.name}': tolerance must be positive, got {c.tolerance}"
        )


def _compile_point(model, c, duration):
    names = [c.observable] if isinstance(c.observable, str) else list(c.observable)
    target = np.atleast_1d(np.asarray(c.target, dtype=float))

    if not names:
        raise ConfigurationError(f"Constraint '{c.name}': no observable given")
    if target.shape != (len(names),):
        raise ConfigurationError(
            f"Constraint '{c.name}': target shape {target.shape} does not match "
            f"{len(names)} observable(s)"
        )
    if not np.all(np.isfinite(target)):
        raise ConfigurationError(f"Constraint '{c.name}': target must be finite")
    if not 0.0 <= float(c.time) <= duration:
        raise ConfigurationError(
            f"Constraint '{c.name}': time {c.time} outside simulated horizon [0, {duration}]"
        )
    if c.interpolation not in ("linear", "hermite"):
        raise ConfigurationError(
            f"Constraint '{c.name}': unknown interpolation '{c.interpolation}'"
        )

    observables = [model.observable(n) for n in names]
    t = float(c.time)

    def fn(traj):
        x = traj.state_at(t, c.interpolation)
        return np.array([g(x, traj.params, t) for g in observables]) - target

    return CompiledConstraint(
        c, len(names), fn, f"{', '.join(names)} at t={t:.6g} = {target.tolist()}"
    )


def _compile_event(model, c, duration):
    spec = model.event(c.event)
    occurrence = int(c.occurrence)
    target = float(c.target)

    if occurrence < 1:
        raise ConfigurationError(f"Constraint '{c.name}': occurrence must be >= 1")
    if not np.isfinite(target):
        raise ConfigurationError(f"Constraint '{c.name}': target must be finite")
    if c.when not in ("before", "after"):
        raise ConfigurationError(
            f"Constraint '{c.name}': 'when' must be 'before' or 'after', got '{c.when}'"
        )

    if c.quantity == "time":
        def read(ev, p):
            return ev.time

    elif c.quantity == "restitution":
        if spec.normal is None:
            raise ConfigurationError(
                f"Constraint '{c.name}': event '{c.event}' declares no normal state, "
                f"restitution is undefined"
            )
        k = model.state_index(spec.normal)

        def read(ev, p):
            v_before = ev.state_before[k]
            if v_before == 0.0:
                return 0.0
            return -ev.state_after[k] / v_before

    else:
        g = model.observable(c.quantity)
        after = c.when == "after"

        def read(ev, p):
            x = ev.state_after if after else ev.state_before
            return g(x, p, ev.time)

    def fn(traj):
        ev = traj.event(c.event, occurrence)
        return read(ev, traj.params) - target

    where = "" if c.quantity in ("time", "restitution") else f" ({c.when})"
    return CompiledConstraint(
        c, 1, fn, f"{c.quantity}{where} at {c.event} #{occurrence} = {target:.6g}",
        gap=lambda traj: event_gap(traj, spec),
    )


def _compile_settling(model, c, duration):
    threshold = float(c.threshold)
    t_target = float(c.time)

    if not np.isfinite(threshold) or threshold <= 0.0:
        raise ConfigurationError(
            f"Constraint '{c.name}': settling threshold must be positive, got {c.threshold}"
        )
    if not 0.0 <= t_target <= duration:
        raise ConfigurationError(
            f"Constraint '{c.name}': time {c.time} outside simulated horizon [0, {duration}]"
        )
    if c.mode not in ("exact", "by"):
        raise ConfigurationError(
            f"Constraint '{c.name}': mode must be 'exact' or 'by', got '{c.mode}'"
        )

    model.observable(c.observable)
    hinge = c.mode == "by"

    def fn(traj):
        t, y = traj.observable_series(c.observable)
        delta = settling_time(t, y, threshold) - t_target
        return max(0.0, delta) if hinge else delta

    word = "by" if hinge else "at"
    return CompiledConstraint(
        c, 1, fn, f"|{c.observable}| < {threshold:.3g} {word} t={t_target:.6g}"
    )


_COMPILERS = {
    PointConstraint: _compile_point,
    EventConstraint: _compile_event,
    SettlingConstraint: _compile_settling,
}


def compile_constraints(model, constraints, *, duration) -> list[CompiledConstraint]:
    """Validate and compile given constraints against a model.

    Parameters
    ----------
    model : DynamicsModel
        Model whose states, observables and events are referenced.
    constraints : iterable of GivenConstraint
        Constraints to compile.
    duration : float
        Simulated horizon; point and settling times must lie inside it.

    Returns
    -------
    list[CompiledConstraint]

    Raises
    ------
    ConfigurationError
        On any invalid constraint.
    """
    compiled, seen = [], set()
    for c in constraints:
        compiler = _COMPILERS.get(type(c))
        if compiler is None:
            raise ConfigurationError(f"Unsupported constraint type {type(c).__name__}")
        _check_common(c, seen)
        seen.add(c.name)
        compiled.append(compiler(model, c, float(duration)))
    return compiled
