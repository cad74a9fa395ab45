#########################################################################################
##
##                                 PARAMETER SCALING
##                                   (scaling.py)
##
##         Maps derived parameters between model space and the space the
##         optimizer works in.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from .errors import ConfigurationError


__all__ = ["ParameterScaler", "log_link", "log_link_inv"]


# LINK FUNCTIONS ========================================================================

def log_link(p, prior):
    """Log mapping centered on the prior, ``x = ln(p / prior)``.

    A parameter equal to its prior maps to ``0`` and steps in ``x`` are
    relative changes of ``p``.
    """
    return np.log(np.asarray(p, dtype=float) / prior)


def log_link_inv(x, prior):
    """Inverse of :func:`log_link`, ``p = prior * exp(x)``."""
    return prior * np.exp(np.asarray(x, dtype=float))


# SCALER ================================================================================

class ParameterScaler:
    """Elementwise model-space / optimizer-space transform.

    Parameters
    ----------
    kinds : sequence of str
        ``"linear"`` or ``"log"`` per parameter.
    priors : array_like
        Reference values ``p0`` of the log link (typically the model's
        default guess). Must be positive where ``kinds`` is ``"log"``.

    Example
    -------
    .. code-block:: python

        scaler = ParameterScaler.from_model(model)
        x = scaler.to_opt(model.initial_guess)   # zeros for log parameters
        p = scaler.to_model(x)
    """

    def __init__(self, kinds, priors):
        self.kinds = tuple(kinds)
        self.priors = np.asarray(priors, dtype=float).reshape(-1)

        if len(self.kinds) != self.priors.size:
            raise ConfigurationError("ParameterScaler needs one prior per parameter")
        for k in self.kinds:
            if k not in ("linear", "log"):
                raise ConfigurationError(f"Unknown parameter scaling '{k}'")

        self._log = np.array([k == "log" for k in self.kinds], dtype=bool)
        if np.any(self.priors[self._log] <= 0.0):
            raise ConfigurationError("Log scaling requires positive priors")


    @classmethod
    def from_model(cls, model, mode="auto"):
        """Scaler for a model's derived parameters.

        ``mode="auto"`` honours each parameter's declared scaling,
        ``mode="linear"`` forces the identity transform.
        """
        if mode == "linear":
            kinds = ["linear"] * model.n_params
        elif mode == "auto":
            kinds = [p.scaling for p in model.parameters]
        else:
            raise ConfigurationError(f"Unknown scaling mode '{mode}'")
        return cls(kinds, model.initial_guess)


    @classmethod
    def identity(cls, n):
        return cls(["linear"] * int(n), np.ones(int(n)))


    def __repr__(self):
        return f"ParameterScaler(kinds={list(self.kinds)})"


    @property
    def is_identity(self) -> bool:
        return not np.any(self._log)


    def to_opt(self, p) -> np.ndarray:
        """Model space to optimizer space."""
        p = np.asarray(p, dtype=float).reshape(-1)
        x = p.copy()
        if np.any(self._log):
            x[self._log] = log_link(p[self._log], self.priors[self._log])
        return x


    def to_model(self, x) -> np.ndarray:
        """Optimizer space to model space."""
        x = np.asarray(x, dtype=float).reshape(-1)
        p = x.copy()
        if np.any(self._log):
            p[self._log] = log_link_inv(x[self._log], self.priors[self._log])
        return p


    def bounds_to_opt(self, lower, upper) -> tuple[np.ndarray, np.ndarray]:
        """Transform model-space bounds (the maps are monotone increasing)."""
        return self.to_opt(lower), self.to_opt(upper)
