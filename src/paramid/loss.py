#########################################################################################
##
##                                   LOSS COMPOSER
##                                     (loss.py)
##
##         Turns compiled constraint residuals into weighted loss components and
##         a grouped breakdown for reporting.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from .errors import ConfigurationError, UnmetEventError
from .utils.logger import LoggerManager


__all__ = ["LossComponent", "LossBreakdown", "LossComposer"]

_log = LoggerManager().get_logger(__name__)


# COMPONENT =============================================================================

@dataclass(frozen=True, eq=False)
class LossComponent:
    """Weighted contribution of one constraint to the total loss.

    Attributes
    ----------
    name : str
        Constraint name.
    group : str
        Reporting group path (``"/"`` separated).
    weight : float
        Non-negative weight ``w``.
    residual : np.ndarray
        Tolerance-scaled residual ``r``.
    satisfied : bool
        True when every ``|r_i| <= 1`` and the constraint could be evaluated.
    message : str
        Diagnostic message, e.g. for an unmet event constraint.
    gradient : np.ndarray or None
        Gradient of :attr:`loss` w.r.t. the derived parameters, if computed.
    description : str
        Human-readable statement of the constraint.
    """

    name: str
    group: str
    weight: float
    residual: np.ndarray
    satisfied: bool
    message: str = ""
    gradient: np.ndarray | None = None
    description: str = ""


    def __post_init__(self):
        if not np.isfinite(self.weight) or self.weight < 0.0:
            raise ConfigurationError(
                f"Loss component '{self.name}': weight must be non-negative, got {self.weight}"
            )


    @property
    def loss(self) -> float:
        """Weighted squared residual norm ``w * ||r||^2``."""
        r = np.asarray(self.residual, dtype=float)
        return float(self.weight * np.dot(r, r))


    @property
    def weighted_residual(self) -> np.ndarray:
        """``sqrt(w) * r``."""
        return np.sqrt(self.weight) * np.asarray(self.residual, dtype=float)


    @property
    def unmet(self) -> bool:
        return bool(self.message)


    def to_dict(self) -> dict:
        out = {
            "name": self.name,
            "group": self.group,
            "weight": float(self.weight),
            "residual": [float(v) for v in self.residual],
            "loss": self.loss,
            "satisfied": bool(self.satisfied),
            "message": self.message,
            "description": self.description,
        }
        if self.gradient is not None:
            out["gradient"] = [float(v) for v in self.gradient]
        return out


# BREAKDOWN =============================================================================

class LossBreakdown:
    """All loss components of one evaluation plus their grouped view.

    The total is always the plain sum of component losses; grouping only
    affects display.
    """

    def __init__(self, components, parameter_names=None):
        self.components = tuple(components)
        self.parameter_names = None if parameter_names is None else tuple(parameter_names)


    def __iter__(self):
        return iter(self.components)


    def __len__(self):
        return len(self.components)


    def __getitem__(self, name: str) -> LossComponent:
        for c in self.components:
            if c.name == name:
                return c
        raise KeyError(name)


    def __repr__(self):
        return (
            f"LossBreakdown(total={self.total:.6g}, components={len(self.components)}, "
            f"satisfied={self.satisfied})"
        )


    @property
    def total(self) -> float:
        return float(sum(c.loss for c in self.components))


    @property
    def satisfied(self) -> bool:
        return all(c.satisfied for c in self.components)


    @property
    def unsatisfied(self) -> list[LossComponent]:
        return [c for c in self.components if not c.satisfied]


    @property
    def messages(self) -> list[str]:
        return [f"{c.name}: {c.message}" for c in self.components if c.message]


    def residual_vector(self) -> np.ndarray:
        """Stacked ``sqrt(w) * r`` of all components."""
        if not self.components:
            return np.zeros(0)
        return np.concatenate([c.weighted_residual for c in self.components])


    # GROUPING --------------------------------------------------------------------------

    def groups(self) -> dict:
        """Nested group tree.

        Every node is a dict with ``"loss"`` (sum over its subtree),
        ``"components"`` (names placed directly in this group) and
        ``"children"`` (sub-groups by name). The root node has the same
        total as :attr:`total`.
        """
        root = {"loss": 0.0, "components": [], "children": {}}
        for c in self.components:
            node = root
            node["loss"] += c.loss
            for part in [s for s in c.group.split("/") if s]:
                node = node["children"].setdefault(
                    part, {"loss": 0.0, "components": [], "children": {}}
                )
                node["loss"] += c.loss
            node["components"].append(c.name)
        return root


    # GRADIENTS -------------------------------------------------------------------------

    def with_gradients(self, jacobian, parameter_names=None) -> "LossBreakdown":
        """Attach per-component gradients ``2 J_i^T (sqrt(w) r_i)``.

        Parameters
        ----------
        jacobian : array_like
            Jacobian of :meth:`residual_vector` w.r.t. the derived
            parameters, shape ``(n_residuals, n_params)``.
        """
        J = np.asarray(jacobian, dtype=float)
        n = sum(c.residual.size for c in self.components)
        if J.ndim != 2 or J.shape[0] != n:
            raise ValueError(
                f"Jacobian has shape {J.shape}, expected ({n}, n_params)"
            )

        out, row = [], 0
        for c in self.components:
            rows = J[row:row + c.residual.size]
            out.append(replace(c, gradient=2.0 * rows.T @ c.weighted_residual))
            row += c.residual.size

        names = parameter_names if parameter_names is not None else self.parameter_names
        return LossBreakdown(out, names)


    # OUTPUT ----------------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "satisfied": self.satisfied,
            "components": [c.to_dict() for c in self.components],
        }


    def display(self) -> None:
        """Print the grouped component table."""
        print("=" * 72)
        print("Loss Breakdown")
        print("=" * 72)
        print(f"  {'constraint':30s} {'loss':>12s} {'max |r|':>10s}  status")
        print("-" * 72)

        by_name = {c.name: c for c in self.components}

        def _walk(node, depth):
            indent = "  " * depth
            for name in node["components"]:
                c = by_name[name]
                rmax = float(np.max(np.abs(c.residual))) if c.residual.size else 0.0
                status = "ok" if c.satisfied else ("UNMET" if c.unmet else "violated")
                label = f"{indent}{name}"
                print(f"  {label:30s} {c.loss:12.4e} {rmax:10.3g}  {status}")
                if c.message:
                    print(f"  {indent}  -> {c.message}")
            for child, sub in node["children"].items():
                print(f"  {indent}[{child}]  loss = {sub['loss']:.4e}")
                _walk(sub, depth + 1)

        _walk(self.groups(), 0)

        print("-" * 72)
        print(f"  {'total':30s} {self.total:12.4e}")
        print("=" * 72)


# COMPOSER ==============================================================================

class LossComposer:
    """Scores trajectories against compiled constraints.

    Parameters
    ----------
    constraints : sequence of CompiledConstraint
        Output of :func:`compile_constraints`.
    unmet_penalty : float
        Residual assigned per missing event occurrence when an event
        constraint cannot be evaluated. A fraction ``d / (1 + d)`` of one
        more penalty is added, where ``d`` is how far the event indicator
        stayed from firing, so the penalty still slopes towards the event.
    """

    def __init__(self, constraints, *, unmet_penalty: float = 10.0):
        if not np.isfinite(unmet_penalty) or unmet_penalty <= 0.0:
            raise ConfigurationError(f"unmet_penalty must be positive, got {unmet_penalty}")
        self.constraints = tuple(constraints)
        self.unmet_penalty = float(unmet_penalty)


    @property
    def size(self) -> int:
        """Length of :meth:`residual_vector`."""
        return int(sum(c.size for c in self.constraints))


    @property
    def residual_names(self) -> list[str]:
        """One label per residual entry, e.g. ``"apex[0]"``."""
        names = []
        for c in self.constraints:
            if c.size == 1:
                names.append(c.name)
            else:
                names.extend(f"{c.name}[{i}]" for i in range(c.size))
        return names


    def evaluate(self, trajectory) -> LossBreakdown:
        """Evaluate every constraint into a :class:`LossBreakdown`."""
        components = []
        for c in self.constraints:
            try:
                r = c.evaluate(trajectory)
            except UnmetEventError as err:
                missing = max(1, err.required - err.found)
                gap = c.shortfall(trajectory)
                r = np.full(c.size, self.unmet_penalty * (missing + gap / (1.0 + gap)))
                _log.debug("constraint '%s': %s", c.name, err)
                components.append(
                    LossComponent(
                        c.name, c.group, c.weight, r, False,
                        message=str(err), description=c.description,
                    )
                )
                continue

            components.append(
                LossComponent(
                    c.name, c.group, c.weight, r,
                    bool(np.all(np.abs(r) <= 1.0)),
                    description=c.description,
                )
            )
        return LossBreakdown(components, trajectory.model.parameter_names)


    def residual_vector(self, trajectory) -> np.ndarray:
        """Stacked ``sqrt(w) * r``; its squared norm equals the total loss."""
        return self.evaluate(trajectory).residual_vector()
