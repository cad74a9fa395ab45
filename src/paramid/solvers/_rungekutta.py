########################################################################################
##
##                        BASE CLASS FOR EXPLICIT RUNGE KUTTA METHODS
##                               (solvers/_rungekutta.py)
##
##                                  Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

import numpy as np


# BASE CLASS ===========================================================================

class ExplicitRungeKutta:
    """Base class for explicit Runge-Kutta integrators described by a Butcher
    table.

    Subclasses only set the tableau attributes in their ``__init__``:

    * ``s`` number of stages
    * ``n`` order of the propagating scheme, ``m`` order of the embedded one
    * ``eval_stages`` stage nodes (fractions of the step)
    * ``BT`` dict mapping stage index to the weights of the previous stage
      derivatives (``None`` for the first stage); the last row of an FSAL
      scheme equals the propagating weights
    * ``b`` propagating weights
    * ``TR`` truncation error coefficients ``b - b_hat`` (adaptive only)

    A step is a pure function of its inputs, so :meth:`step` can be called
    with any sub-step ``h`` from the event locator without side effects.

    Parameters
    ----------
    tolerance_lte_abs : float
        absolute tolerance of the local truncation error
    tolerance_lte_rel : float
        relative tolerance of the local truncation error
    """

    def __init__(self, tolerance_lte_abs=1e-8, tolerance_lte_rel=1e-6):

        #error tolerances for adaptive control
        self.tolerance_lte_abs = float(tolerance_lte_abs)
        self.tolerance_lte_rel = float(tolerance_lte_rel)

        #number of stages in RK scheme
        self.s = 1

        #order of scheme and embedded method
        self.n = 1
        self.m = 0

        #flag adaptive timestep solver
        self.is_adaptive = False

        #intermediate evaluation times
        self.eval_stages = [0.0]

        #butcher table
        self.BT = {0: None}

        #propagating weights
        self.b = [1.0]

        #coefficients for truncation error estimate
        self.TR = None


    def __str__(self):
        return self.__class__.__name__


    def __repr__(self):
        return (
            f"{self.__class__.__name__}(tolerance_lte_abs={self.tolerance_lte_abs}, "
            f"tolerance_lte_rel={self.tolerance_lte_rel})"
        )


    # METHODS ==========================================================================

    def stages(self, func, t, x, h):
        """Evaluate all stage derivatives for a step of size ``h``.

        Parameters
        ----------
        func : callable
            right hand side ``func(t, x) -> dx``
        t : float
            start time of the step
        x : array_like
            state at ``t``
        h : float
            step size

        Returns
        -------
        list[numpy.ndarray]
            stage derivatives ``K``
        """
        K = []
        for i in range(self.s):
            weights = self.BT[i]
            if weights is None:
                xi = x
            else:
                xi = x + h * sum(w * k for w, k in zip(weights, K) if w != 0.0)
            K.append(func(t + self.eval_stages[i] * h, xi))
        return K


    def step(self, func, t, x, h):
        """Advance the state by one step.

        Returns
        -------
        x_new : numpy.ndarray
            propagated state at ``t + h``
        error_norm : float
            scaled local truncation error estimate, acceptable when ``<= 1``
            (always ``0.0`` for fixed-step schemes)
        """
        x = np.asarray(x, dtype=float)
        K = self.stages(func, t, x, h)

        x_new = x + h * sum(w * k for w, k in zip(self.b, K) if w != 0.0)

        if not self.is_adaptive or self.TR is None:
            return x_new, 0.0

        #embedded error estimate, scaled mixed tolerance
        err = h * sum(w * k for w, k in zip(self.TR, K) if w != 0.0)
        scale = self.tolerance_lte_abs + self.tolerance_lte_rel * np.maximum(
            np.abs(x), np.abs(x_new)
        )
        error_norm = float(np.max(np.abs(err) / scale)) if err.size else 0.0
        return x_new, error_norm


    def next_step_size(self, h, error_norm, safety=0.9, min_factor=0.2, max_factor=5.0):
        """Standard step size controller for adaptive schemes.

        Parameters
        ----------
        h : float
            current step size
        error_norm : float
            scaled error norm returned by :meth:`step`

        Returns
        -------
        float
            proposed next step size
        """
        if not self.is_adaptive:
            return h
        if error_norm == 0.0:
            return h * max_factor

        factor = safety * error_norm ** (-1.0 / (self.m + 1))
        return h * min(max_factor, max(min_factor, factor))
