#########################################################################################
##
##         paramid example: spotting parameters the constraints cannot separate
##
##  Model:   block pushed by two forces against viscous friction
##
##      x'(t) = v
##      v'(t) = (F_a + F_b - d v) / m
##
##  Only the total push F_a + F_b enters the dynamics. The constraints pin
##  down the total and the friction d, while F_a and F_b can trade off
##  freely. The identifiability analysis reports the weak direction, the
##  correlation of the pair and an IdentifiabilityWarning.
##
##                               Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import matplotlib.pyplot as plt

from paramid import ParameterSolver, PointConstraint, SolverConfig
from paramid.models import pushed_block


# Run Example ===========================================================================

if __name__ == '__main__':

    model = pushed_block()

    solver = ParameterSolver(
        model,
        initial_state={},
        duration=4.0,
        dt=1e-2,
        config=SolverConfig(restarts=2),
        constraints=[
            PointConstraint("v1", "velocity", 1.0, 3.16, tolerance=1e-2),
            PointConstraint("x2", "position", 2.0, 5.68, tolerance=1e-2),
            PointConstraint("v4", "velocity", 4.0, 4.91, tolerance=1e-2),
        ],
    )

    result = solver.solve(x0=[1.0, 1.0, 2.0])
    result.display()

    report = result.identifiability
    for text in report.explanations:
        print(f"\n  {text}")

    fig, axes = report.plot()
    plt.show()
