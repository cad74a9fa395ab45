#########################################################################################
##
##         paramid example: restitution of a bouncing ball from design targets
##
##  Model:   ball dropped from 1 m onto a rigid floor
##
##      h'(t) = v
##      v'(t) = -g                         (free flight)
##      v+    = -e * v-                    (impact reset, h = 0)
##
##  The designer wants the ball to keep 80% of its speed on the first
##  bounce. One derived parameter is identified:
##
##      e [-]   coefficient of restitution
##
##  The impact time only depends on g and the drop height, so it is met for
##  every e and carries no information about the restitution.
##
##                               Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np
import matplotlib.pyplot as plt

from paramid import EventConstraint, ParameterSolver, PointConstraint, SolverConfig
from paramid.models import bouncing_ball


# DESIGN TARGETS ========================================================================

G       = 9.8                           # gravity [m/s^2]
H0      = 1.0                           # drop height [m]
E_WISH  = 0.8                           # restitution the designer asks for
T_HIT   = np.sqrt(2.0 * H0 / G)         # first impact [s]
V_HIT   = np.sqrt(2.0 * G * H0)         # impact speed [m/s]


# Run Example ===========================================================================

if __name__ == '__main__':

    model = bouncing_ball(g=G)

    solver = ParameterSolver(
        model,
        initial_state={"height": H0},
        duration=2.0,
        dt=1e-3,
        config=SolverConfig(restarts=2, time_budget=10.0),
    )
    solver.add_constraints([
        EventConstraint("impact_time", event="impact", target=T_HIT, group="impact"),
        EventConstraint("bounce", event="impact", quantity="restitution",
                        target=E_WISH, group="impact"),
        EventConstraint("rebound", event="impact", quantity="velocity",
                        target=E_WISH * V_HIT, tolerance=1e-2, group="impact"),
        PointConstraint("apex", "height", T_HIT + E_WISH * V_HIT / G,
                        E_WISH**2 * H0, tolerance=1e-2, group="flight"),
    ])
    solver.display()

    # ── Solve ────────────────────────────────────────────────────────────────
    result = solver.solve()
    result.display()

    print(f"\n  requested e = {E_WISH}   solved e = {result.params['restitution']:.6f}")

    # ── Plots ─────────────────────────────────────────────────────────────────
    fig, ax = result.trajectory.plot(["height", "speed"])
    ax.axhline(E_WISH**2 * H0, color="0.4", linestyle="--", linewidth=1.0)

    plt.show()
