#########################################################################################
##
##         paramid example: platformer jump physics from feel targets
##
##  Model:   vertical jump with a boost force active until the apex
##
##      h'(t) = v
##      v'(t) = b * boost / m - g
##
##  The designer describes the jump by how it should feel:
##
##      jump height    2.0  m
##      time to apex   0.40 s
##      time to fall   0.35 s
##
##  and the solver finds gravity g, launch speed v0 and boost force b.
##  The analytic answer is v0 = 2H / t_up, g = 2H / t_down^2 and
##  b = g - v0 / t_up.
##
##                               Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import matplotlib.pyplot as plt

from paramid import ParameterSolver, SolverConfig
from paramid.models import jump_constraints, jump_initial_state, platformer_jump


# FEEL TARGETS ==========================================================================

HEIGHT  = 2.0
T_UP    = 0.40
T_DOWN  = 0.35


# Run Example ===========================================================================

if __name__ == '__main__':

    model = platformer_jump()

    solver = ParameterSolver(
        model,
        initial_state=jump_initial_state,
        duration=2.0,
        dt=1e-3,
        constraints=jump_constraints(HEIGHT, T_UP, T_DOWN),
        config=SolverConfig(restarts=4, workers=2, seed=1),
    )

    # ── Solution plan ─────────────────────────────────────────────────────────
    solver.solution_plan().display()

    # ── Solve ────────────────────────────────────────────────────────────────
    result = solver.solve()
    result.display()

    g_exact  = 2.0 * HEIGHT / T_DOWN**2
    v0_exact = 2.0 * HEIGHT / T_UP
    print(f"\n  analytic:  g = {g_exact:.4f}  v0 = {v0_exact:.4f}  b = {g_exact - v0_exact / T_UP:.4f}")

    # ── Plots ─────────────────────────────────────────────────────────────────
    fig, ax = result.trajectory.plot(["height", "velocity"])
    ax.axhline(HEIGHT, color="0.4", linestyle="--", linewidth=1.0)

    plt.show()
