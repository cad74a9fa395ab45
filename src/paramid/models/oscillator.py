#########################################################################################
##
##                            MASS-SPRING-DAMPER MODEL
##                              (models/oscillator.py)
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from ..model import DerivedParameter, DynamicsModel, StateVariable


# MODEL =================================================================================

def damped_oscillator(mass=1.0, stiffness=1.0, damping_bounds=(2.5, 50.0), damping=5.0):
    """Mass-spring-damper with derived viscous ``damping``.

    With the default bounds the system is overdamped, so a displaced mass
    creeps back to rest and its settling time grows with the damping.
    ``damping`` uses log scaling.
    """
    def rhs(x, p, t, u):
        position, velocity = x
        accel = -(p.stiffness * position + p.damping * velocity) / p.mass
        return np.array([velocity, accel])

    return DynamicsModel(
        "damped_oscillator",
        states=[StateVariable("position", "m"), StateVariable("velocity", "m/s")],
        parameters=[
            DerivedParameter(
                "damping", default=damping, bounds=damping_bounds, unit="N s/m",
                scaling="log",
            ),
        ],
        func=rhs,
        constants={"mass": mass, "stiffness": stiffness},
        observables={
            "energy": lambda x, p, t: 0.5 * p.mass * x[1]**2 + 0.5 * p.stiffness * x[0]**2,
        },
    )
