########################################################################################
##
##                      CLASSICAL EXPLICIT RUNGE KUTTA METHOD (RK4)
##                                  (solvers/rk4.py)
##
##                                  Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

from ._rungekutta import ExplicitRungeKutta


# SOLVERS ==============================================================================

class RK4(ExplicitRungeKutta):
    """Classical four-stage, 4th order Runge-Kutta method with fixed timestep.

    Characteristics
    ---------------
    * Order: 4
    * Stages: 4
    * Fixed timestep

    Note
    ----
    Default integrator of the trajectory simulator. A fixed step keeps the
    residuals a smooth function of the derived parameters, which is what the
    finite-difference Jacobians of the optimizer need. Events are still
    located to root-finding accuracy inside each step.
    """

    def __init__(self, *solver_args, **solver_kwargs):
        super().__init__(*solver_args, **solver_kwargs)

        #number of stages in RK scheme
        self.s = 4

        #order of scheme
        self.n = 4
        self.m = 0

        #flag adaptive timestep solver
        self.is_adaptive = False

        #intermediate evaluation times
        self.eval_stages = [0.0, 1/2, 1/2, 1.0]

        #butcher table
        self.BT = {
            0: None,
            1: [1/2],
            2: [0.0, 1/2],
            3: [0.0, 0.0, 1.0]
            }

        #propagating weights
        self.b = [1/6, 1/3, 1/3, 1/6]
