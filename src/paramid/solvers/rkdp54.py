########################################################################################
##
##                  EMBEDDED DORMAND-PRINCE RUNGE KUTTA METHOD (RKDP54)
##                                 (solvers/rkdp54.py)
##
##                                  Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

from ._rungekutta import ExplicitRungeKutta


# SOLVERS ==============================================================================

class RKDP54(ExplicitRungeKutta):
    """Seven-stage, 5th order Dormand-Prince method with embedded 4th order
    error estimate (FSAL).

    Characteristics
    ---------------
    * Order: 5 (propagating) / 4 (embedded)
    * Stages: 7 (first same as last)
    * Adaptive timestep

    Note
    ----
    Preferred for smooth, long-horizon models where accuracy matters more
    than per-step cost, e.g. lightly damped oscillators.

    References
    ----------
    .. [1] Dormand, J. R., & Prince, P. J. (1980). "A family of embedded
           Runge-Kutta formulae". Journal of Computational and Applied
           Mathematics, 6(1), 19-26.
    """

    def __init__(self, *solver_args, **solver_kwargs):
        super().__init__(*solver_args, **solver_kwargs)

        #number of stages in RK scheme
        self.s = 7

        #order of scheme and embedded method
        self.n = 5
        self.m = 4

        #flag adaptive timestep solver
        self.is_adaptive = True

        #intermediate evaluation times
        self.eval_stages = [0.0, 1/5, 3/10, 4/5, 8/9, 1.0, 1.0]

        #butcher table
        self.BT = {
            0: None,
            1: [1/5],
            2: [3/40, 9/40],
            3: [44/45, -56/15, 32/9],
            4: [19372/6561, -25360/2187, 64448/6561, -212/729],
            5: [9017/3168, -355/33, 46732/5247, 49/176, -5103/18656],
            6: [35/384, 0.0, 500/1113, 125/192, -2187/6784, 11/84]
            }

        #propagating weights
        self.b = [35/384, 0.0, 500/1113, 125/192, -2187/6784, 11/84, 0.0]

        #coefficients for truncation error estimate
        self.TR = [
            35/384 - 5179/57600,
            0.0,
            500/1113 - 7571/16695,
            125/192 - 393/640,
            -2187/6784 + 92097/339200,
            11/84 - 187/2100,
            -1/40
            ]
