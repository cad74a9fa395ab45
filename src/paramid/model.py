#########################################################################################
##
##                                  DYNAMICS MODEL
##                                    (model.py)
##
##         Declares the state and parameter schema of a physical system and
##         wraps its pure derivative function, event indicators and reset maps.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Sequence

import numpy as np

from .errors import ConfigurationError, ModelEvaluationError


__all__ = [
    "StateVariable",
    "DerivedParameter",
    "EventSpec",
    "ParameterValues",
    "DynamicsModel",
]

_SCALINGS = ("linear", "log")


# SCHEMA ================================================================================

@dataclass(frozen=True)
class StateVariable:
    """Named entry of the model state vector.

    Parameters
    ----------
    name : str
        State identifier, e.g. ``"height"``.
    unit : str
        Physical unit used for display.
    description : str
        Human-readable description.
    """

    name: str
    unit: str = ""
    description: str = ""


@dataclass(frozen=True)
class DerivedParameter:
    """Low-level simulation parameter that the solver searches for.

    Parameters
    ----------
    name : str
        Parameter identifier.
    default : float
        Initial guess (model space). Must lie inside ``bounds``.
    bounds : tuple[float, float]
        Lower / upper bounds in model space.
    unit : str
        Physical unit used for display.
    scaling : str
        ``"linear"`` (identity) or ``"log"``. Log scaling lets the optimizer
        move multiplicatively around the default and requires a strictly
        positive lower bound.
    description : str
        Human-readable description.

    Raises
    ------
    ConfigurationError
        If the bounds are malformed, the default lies outside them or the
        scaling is unknown.
    """

    name: str
    default: float = 1.0
    bounds: tuple[float, float] = (-np.inf, np.inf)
    unit: str = ""
    scaling: str = "linear"
    description: str = ""


    def __post_init__(self):
        lo, hi = (float(b) for b in self.bounds)
        object.__setattr__(self, "bounds", (lo, hi))
        object.__setattr__(self, "default", float(self.default))

        if np.isnan(lo) or np.isnan(hi):
            raise ConfigurationError(f"Parameter '{self.name}': bounds must not be NaN")
        if not lo < hi:
            raise ConfigurationError(
                f"Parameter '{self.name}': lower bound {lo} must be below upper bound {hi}"
            )
        if not np.isfinite(self.default):
            raise ConfigurationError(
                f"Parameter '{self.name}': default {self.default} is not finite"
            )
        if not lo <= self.default <= hi:
            raise ConfigurationError(
                f"Parameter '{self.name}': default {self.default} outside bounds [{lo}, {hi}]"
            )
        if self.scaling not in _SCALINGS:
            raise ConfigurationError(
                f"Parameter '{self.name}': unknown scaling '{self.scaling}' "
                f"(expected one of {_SCALINGS})"
            )
        if self.scaling == "log" and not lo > 0.0:
            raise ConfigurationError(
                f"Parameter '{self.name}': log scaling requires a positive lower bound, got {lo}"
            )


@dataclass(frozen=True)
class EventSpec:
    """Discrete event located by a zero crossing of a continuous indicator.

    Parameters
    ----------
    name : str
        Event identifier, e.g. ``"impact"``.
    indicator : callable
        ``indicator(x, p, t) -> float``. The event fires when it crosses zero.
    direction : int
        ``-1`` fires on positive-to-non-positive crossings (e.g. height
        reaching the floor), ``+1`` on negative-to-non-negative crossings and
        ``0`` on both.
    reset : callable, optional
        ``reset(x, p, t) -> x_new`` applied at the event (e.g. a bounce).
    normal : str, optional
        State name of the approach velocity. Required to read the
        ``"restitution"`` quantity of this event.
    terminal : bool
        Stop the simulation at the first occurrence.
    """

    name: str
    indicator: Callable[..., float]
    direction: int = -1
    reset: Callable[..., Any] | None = None
    normal: str | None = None
    terminal: bool = False


    def __post_init__(self):
        if self.direction not in (-1, 0, 1):
            raise ConfigurationError(
                f"Event '{self.name}': direction must be -1, 0 or 1, got {self.direction}"
            )
        if not callable(self.indicator):
            raise ConfigurationError(f"Event '{self.name}': indicator must be callable")
        if self.reset is not None and not callable(self.reset):
            raise ConfigurationError(f"Event '{self.name}': reset must be callable")


    def crossed(self, g0: float, g1: float) -> bool:
        """True if the indicator moved from ``g0`` to ``g1`` across zero in the
        declared direction."""
        falling = g0 > 0.0 and g1 <= 0.0
        rising = g0 < 0.0 and g1 >= 0.0
        if self.direction < 0:
            return falling
        if self.direction > 0:
            return rising
        return falling or rising


# PARAMETER VALUES ======================================================================

class ParameterValues(Mapping):
    """Read-only view of one derived-parameter vector merged with constants.

    Model callables receive this object as ``p`` and may read values either
    by key (``p["restitution"]``) or by attribute (``p.restitution``).
    Reading an unknown key raises :class:`ConfigurationError`, an unknown
    attribute raises ``AttributeError`` so ``hasattr`` and ``getattr`` with
    a default keep working.
    """

    __slots__ = ("_model_name", "_values", "_vector")

    def __init__(self, model_name: str, names: Sequence[str], vector: np.ndarray,
                 constants: Mapping[str, float]):
        values = dict(constants)
        values.update(zip(names, (float(v) for v in vector)))
        vec = np.array(vector, dtype=float)
        vec.flags.writeable = False

        object.__setattr__(self, "_model_name", model_name)
        object.__setattr__(self, "_values", values)
        object.__setattr__(self, "_vector", vec)


    def _unknown(self, name) -> str:
        return f"Model '{self._model_name}' has no parameter or constant named '{name}'"


    def __getitem__(self, name):
        try:
            return self._values[name]
        except KeyError:
            raise ConfigurationError(self._unknown(name)) from None


    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(self._unknown(name)) from None


    def __contains__(self, name):
        return name in self._values


    def get(self, name, default=None):
        return self._values.get(name, default)


    def __setattr__(self, name, value):
        raise AttributeError("ParameterValues is read-only")


    def __iter__(self):
        return iter(self._values)


    def __len__(self):
        return len(self._values)


    @property
    def vector(self) -> np.ndarray:
        """Derived-parameter vector (read-only) these values were built from."""
        return self._vector


    def __repr__(self):
        items = ", ".join(f"{k}={v:.6g}" for k, v in self._values.items())
        return f"ParameterValues({items})"


# MODEL =================================================================================

class DynamicsModel:
    """Parametric dynamics model with declared schema.

    The model is immutable once constructed and its callables must be pure:
    they see only their arguments, so the simulator and finite-difference
    probes can call them identically from any thread.

    Parameters
    ----------
    name : str
        Model identifier.
    states : sequence of StateVariable or str
        Ordered state variables.
    parameters : sequence of DerivedParameter
        Ordered derived parameters (the solver's unknowns).
    func : callable
        Derivative function ``func(x, p, t, u) -> dx/dt`` where ``x`` is the
        state array, ``p`` a :class:`ParameterValues`, ``t`` the time and
        ``u`` the external input at ``t`` (``None`` without inputs).
    constants : mapping, optional
        Fixed named values visible through ``p`` (e.g. gravity, mass).
    events : sequence of EventSpec, optional
        Declared events.
    observables : mapping, optional
        Named derived quantities ``g(x, p, t) -> float`` (e.g. ``"speed"``).
    inputs : callable, optional
        External input signal ``u(t)``.

    Raises
    ------
    ConfigurationError
        On duplicate or clashing names, or unknown event normal states.

    Example
    -------
    .. code-block:: python

        def rhs(x, p, t, u):
            return np.array([x[1], -p.g])

        model = DynamicsModel(
            "free_fall",
            states=[StateVariable("height", "m"), StateVariable("velocity", "m/s")],
            parameters=[DerivedParameter("g", default=9.0, bounds=(1.0, 20.0))],
            func=rhs,
        )
    """

    def __init__(
        self,
        name: str,
        states: Sequence[StateVariable | str],
        parameters: Sequence[DerivedParameter],
        func: Callable[..., Any],
        *,
        constants: Mapping[str, float] | None = None,
        events: Sequence[EventSpec] = (),
        observables: Mapping[str, Callable[..., float]] | None = None,
        inputs: Callable[[float], Any] | None = None,
    ):
        if not callable(func):
            raise ConfigurationError(f"Model '{name}': func must be callable")

        self._name = str(name)
        self._states = tuple(
            s if isinstance(s, StateVariable) else StateVariable(str(s)) for s in states
        )
        self._parameters = tuple(parameters)
        self._func = func
        self._constants = MappingProxyType(
            {str(k): float(v) for k, v in (constants or {}).items()}
        )
        self._events = tuple(events)
        self._observables = MappingProxyType(dict(observables or {}))
        self._inputs = inputs

        if not self._states:
            raise ConfigurationError(f"Model '{name}': at least one state is required")

        for p in self._parameters:
            if not isinstance(p, DerivedParameter):
                raise ConfigurationError(
                    f"Model '{name}': parameters must be DerivedParameter instances, got {p!r}"
                )

        self._state_idx = self._index("state", [s.name for s in self._states])
        self._param_idx = self._index("parameter", [p.name for p in self._parameters])
        self._event_idx = self._index("event", [e.name for e in self._events])
        self._index("observable", list(self._observables))

        for c in self._constants:
            if c in self._param_idx:
                raise ConfigurationError(
                    f"Model '{name}': constant '{c}' clashes with a derived parameter"
                )
            if not np.isfinite(self._constants[c]):
                raise ConfigurationError(f"Model '{name}': constant '{c}' is not finite")

        for obs_name, fn in self._observables.items():
            if obs_name in self._state_idx:
                raise ConfigurationError(
                    f"Model '{name}': observable '{obs_name}' clashes with a state name"
                )
            if not callable(fn):
                raise ConfigurationError(
                    f"Model '{name}': observable '{obs_name}' must be callable"
                )

        for ev in self._events:
            if ev.normal is not None and ev.normal not in self._state_idx:
                raise ConfigurationError(
                    f"Model '{name}': event '{ev.name}' references unknown normal "
                    f"state '{ev.normal}'"
                )


    def _index(self, kind: str, names: list[str]) -> dict[str, int]:
        index: dict[str, int] = {}
        for i, n in enumerate(names):
            if n in index:
                raise ConfigurationError(f"Model '{self._name}': duplicate {kind} name '{n}'")
            index[n] = i
        return index


    # SCHEMA ----------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def states(self) -> tuple[StateVariable, ...]:
        return self._states

    @property
    def parameters(self) -> tuple[DerivedParameter, ...]:
        return self._parameters

    @property
    def events(self) -> tuple[EventSpec, ...]:
        return self._events

    @property
    def constants(self) -> Mapping[str, float]:
        return self._constants

    @property
    def observables(self) -> Mapping[str, Callable[..., float]]:
        return self._observables

    @property
    def state_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self._states)

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self._parameters)

    @property
    def n_states(self) -> int:
        return len(self._states)

    @property
    def n_params(self) -> int:
        return len(self._parameters)


    @property
    def initial_guess(self) -> np.ndarray:
        """Default derived-parameter vector."""
        return np.array([p.default for p in self._parameters], dtype=float)


    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """``(lower, upper)`` bound arrays in model space."""
        lower = np.array([p.bounds[0] for p in self._parameters], dtype=float)
        upper = np.array([p.bounds[1] for p in self._parameters], dtype=float)
        return lower, upper


    def state_index(self, name: str) -> int:
        """Index of state ``name``; raises :class:`ConfigurationError` if unknown."""
        try:
            return self._state_idx[name]
        except KeyError:
            raise ConfigurationError(
                f"Model '{self._name}' has no state '{name}'. "
                f"Known states: {list(self._state_idx)}"
            ) from None


    def parameter_index(self, name: str) -> int:
        """Index of derived parameter ``name``; raises if unknown."""
        try:
            return self._param_idx[name]
        except KeyError:
            raise ConfigurationError(
                f"Model '{self._name}' has no derived parameter '{name}'. "
                f"Known parameters: {list(self._param_idx)}"
            ) from None


    def event(self, name: str) -> EventSpec:
        """Declared event ``name``; raises if unknown."""
        try:
            return self._events[self._event_idx[name]]
        except KeyError:
            raise ConfigurationError(
                f"Model '{self._name}' has no event '{name}'. "
                f"Known events: {list(self._event_idx)}"
            ) from None


    def has_observable(self, name: str) -> bool:
        """True if ``name`` is a state or a declared observable."""
        return name in self._state_idx or name in self._observables


    def observable(self, name: str) -> Callable[[np.ndarray, ParameterValues, float], float]:
        """Resolve a state or declared observable to ``g(x, p, t) -> float``."""
        if name in self._state_idx:
            idx = self._state_idx[name]
            return lambda x, p, t: float(x[idx])
        if name in self._observables:
            fn = self._observables[name]
            return lambda x, p, t: float(fn(x, p, t))
        raise ConfigurationError(
            f"Model '{self._name}' has no state or observable '{name}'. "
            f"Known: {list(self._state_idx) + list(self._observables)}"
        )


    # PARAMETER VECTORS -----------------------------------------------------------------

    def clip(self, vector) -> np.ndarray:
        """Clip ``vector`` into the declared bounds."""
        lower, upper = self.bounds
        return np.clip(np.asarray(vector, dtype=float).reshape(-1), lower, upper)


    def values(self, vector=None) -> ParameterValues:
        """Build the :class:`ParameterValues` for a derived-parameter vector.

        Parameters
        ----------
        vector : array_like, optional
            Model-space vector; defaults to :attr:`initial_guess`.

        Raises
        ------
        ConfigurationError
            If the length is wrong, a value is not finite or lies outside
            the declared bounds.
        """
        vec = self.initial_guess if vector is None else np.asarray(vector, dtype=float).reshape(-1)

        if vec.size != self.n_params:
            raise ConfigurationError(
                f"Model '{self._name}' expects {self.n_params} derived parameters, got {vec.size}"
            )
        if not np.all(np.isfinite(vec)):
            raise ConfigurationError(f"Model '{self._name}': non-finite parameter vector {vec}")

        lower, upper = self.bounds
        outside = (vec < lower) | (vec > upper)
        if np.any(outside):
            names = [self._parameters[i].name for i in np.flatnonzero(outside)]
            raise ConfigurationError(
                f"Model '{self._name}': parameters {names} outside declared bounds"
            )

        return ParameterValues(self._name, self.parameter_names, vec, self._constants)


    # EVALUATION ------------------------------------------------------------------------

    def input_at(self, t: float):
        """External input at time ``t`` (``None`` when the model has no inputs)."""
        return None if self._inputs is None else self._inputs(t)


    def derivative(self, x: np.ndarray, p: ParameterValues, t: float) -> np.ndarray:
        """Evaluate ``dx/dt``; raises :class:`ModelEvaluationError` if the
        result is mis-shaped or not finite."""
        dx = np.asarray(self._func(x, p, t, self.input_at(t)), dtype=float).reshape(-1)

        if dx.size != self.n_states:
            raise ModelEvaluationError(
                f"Model '{self._name}': derivative has {dx.size} entries, "
                f"expected {self.n_states}",
                model=self._name, time=t,
            )
        if not np.all(np.isfinite(dx)):
            raise ModelEvaluationError(
                f"Model '{self._name}': non-finite derivative {dx} at t={t:.6g} "
                f"for state {np.asarray(x)} and parameters {dict(p)}",
                model=self._name, time=t,
            )
        return dx


    def indicator(self, event: EventSpec, x: np.ndarray, p: ParameterValues, t: float) -> float:
        """Evaluate an event indicator; must be finite."""
        g = float(event.indicator(x, p, t))
        if not np.isfinite(g):
            raise ModelEvaluationError(
                f"Model '{self._name}': event '{event.name}' indicator is not finite at t={t:.6g}",
                model=self._name, time=t,
            )
        return g


    def apply_reset(self, event: EventSpec, x: np.ndarray, p: ParameterValues, t: float) -> np.ndarray:
        """Apply an event's reset map (identity when none is declared)."""
        if event.reset is None:
            return np.array(x, dtype=float)

        x_new = np.asarray(event.reset(np.array(x, dtype=float), p, t), dtype=float).reshape(-1)
        if x_new.size != self.n_states or not np.all(np.isfinite(x_new)):
            raise ModelEvaluationError(
                f"Model '{self._name}': reset of event '{event.name}' returned an invalid "
                f"state {x_new}",
                model=self._name, time=t,
            )
        return x_new


    def state_vector(self, spec) -> np.ndarray:
        """Coerce a state specification (mapping of names or array) to an array.

        Missing names in a mapping default to ``0.0``; unknown names raise.
        """
        if isinstance(spec, Mapping):
            x = np.zeros(self.n_states)
            for key, val in spec.items():
                x[self.state_index(key)] = float(val)
            return x

        x = np.asarray(spec, dtype=float).reshape(-1)
        if x.size != self.n_states:
            raise ConfigurationError(
                f"Model '{self._name}': state has {x.size} entries, expected {self.n_states}"
            )
        if not np.all(np.isfinite(x)):
            raise ConfigurationError(f"Model '{self._name}': non-finite state {x}")
        return x


    # DISPLAY ---------------------------------------------------------------------------

    def describe(self) -> str:
        """Multi-line summary of the model schema."""
        lines = [f"DynamicsModel '{self._name}'", "  states:"]
        for s in self._states:
            unit = f" [{s.unit}]" if s.unit else ""
            lines.append(f"    {s.name}{unit}")
        lines.append("  derived parameters:")
        for p in self._parameters:
            unit = f" [{p.unit}]" if p.unit else ""
            lines.append(
                f"    {p.name}{unit}  default={p.default:.6g}  "
                f"bounds=({p.bounds[0]:.4g}, {p.bounds[1]:.4g})  scaling={p.scaling}"
            )
        if self._constants:
            lines.append("  constants:")
            for k, v in self._constants.items():
                lines.append(f"    {k} = {v:.6g}")
        if self._events:
            lines.append("  events:")
            for e in self._events:
                flags = " terminal" if e.terminal else ""
                lines.append(f"    {e.name}  direction={e.direction:+d}{flags}")
        return "\n".join(lines)


    def __repr__(self) -> str:
        return (
            f"DynamicsModel(name={self._name!r}, states={list(self.state_names)}, "
            f"parameters={list(self.parameter_names)})"
        )
