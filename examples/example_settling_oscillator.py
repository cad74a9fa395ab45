#########################################################################################
##
##         paramid example: damping of an oscillator from a settling time
##
##  Model:   mass-spring-damper released from x = 1
##
##      x'(t) = v
##      v'(t) = -(k x + c v) / m
##
##  A settling time target (|x| < 2% of the release amplitude) is turned into
##  a damping coefficient c. The damping is log scaled, so the optimizer
##  steps in relative changes of c.
##
##  Sweeping the target shows that later settling needs more damping in the
##  overdamped range: the slow mode -(c - sqrt(c^2 - 4km)) / 2m creeps.
##
##                               Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np
import matplotlib.pyplot as plt

from paramid import LoggerManager, ParameterSolver, SettlingConstraint, SolverConfig
from paramid.models import damped_oscillator


# SETUP =================================================================================

THRESHOLD = 0.02
TARGETS   = [10.0, 12.0, 15.0, 20.0, 25.0]

config = SolverConfig(restarts=0, time_budget=None, global_fallback=False)


def solve_for(t_settle):
    solver = ParameterSolver(
        damped_oscillator(),
        initial_state={"position": 1.0},
        duration=40.0,
        dt=1e-2,
        config=config,
        constraints=[
            SettlingConstraint("settle", "position", threshold=THRESHOLD, time=t_settle),
        ],
    )
    return solver.solve(identifiability=False)


# Run Example ===========================================================================

if __name__ == '__main__':

    LoggerManager().configure(level="INFO")

    results = [solve_for(T) for T in TARGETS]

    print(f"\n  {'target [s]':>10} {'damping c':>12} {'loss':>12}  satisfied")
    for T, res in zip(TARGETS, results):
        print(f"  {T:>10.1f} {res.params['damping']:>12.4f} {res.loss.total:>12.3e}  {res.satisfied}")

    # ── Plots ─────────────────────────────────────────────────────────────────
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(11, 4))

    for T, res in zip(TARGETS, results):
        t, x = res.trajectory.observable_series("position")
        ax1.plot(t, np.abs(x), label=f"T = {T:g} s")
    ax1.axhline(THRESHOLD, color="0.4", linestyle="--", linewidth=1.0)
    ax1.set_yscale("log")
    ax1.set_xlabel("Time (s)")
    ax1.set_ylabel("|position|")
    ax1.legend()

    ax2.plot(TARGETS, [res.params["damping"] for res in results], "o-")
    ax2.set_xlabel("Settling time target (s)")
    ax2.set_ylabel("Damping c")
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.show()
