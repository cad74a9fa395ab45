########################################################################################
##
##                  EMBEDDED BOGACKI-SHAMPINE RUNGE KUTTA METHOD (RKBS32)
##                                 (solvers/rkbs32.py)
##
##                                  Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

from ._rungekutta import ExplicitRungeKutta


# SOLVERS ==============================================================================

class RKBS32(ExplicitRungeKutta):
    """Four-stage, 3rd order Bogacki-Shampine method with embedded 2nd order
    error estimate (FSAL).

    Characteristics
    ---------------
    * Order: 3 (propagating) / 2 (embedded)
    * Stages: 4 (first same as last)
    * Adaptive timestep

    References
    ----------
    .. [1] Bogacki, P., & Shampine, L. F. (1989). "A 3(2) pair of Runge-Kutta
           formulas". Applied Mathematics Letters, 2(4), 321-325.
    """

    def __init__(self, *solver_args, **solver_kwargs):
        super().__init__(*solver_args, **solver_kwargs)

        #number of stages in RK scheme
        self.s = 4

        #order of scheme and embedded method
        self.n = 3
        self.m = 2

        #flag adaptive timestep solver
        self.is_adaptive = True

        #intermediate evaluation times
        self.eval_stages = [0.0, 1/2, 3/4, 1.0]

        #butcher table
        self.BT = {
            0: None,
            1: [1/2],
            2: [0.0, 3/4],
            3: [2/9, 1/3, 4/9]
            }

        #propagating weights
        self.b = [2/9, 1/3, 4/9, 0.0]

        #coefficients for truncation error estimate
        self.TR = [2/9 - 7/24, 1/3 - 1/4, 4/9 - 1/3, -1/8]
