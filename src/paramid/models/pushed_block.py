#########################################################################################
##
##                               PUSHED BLOCK MODEL
##                             (models/pushed_block.py)
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from ..model import DerivedParameter, DynamicsModel, StateVariable


# MODEL =================================================================================

def pushed_block(mass=1.0):
    """Block pushed by two forces against viscous friction.

    Only the sum ``push_a + push_b`` enters the dynamics, so the two
    forces can never be separated by motion constraints while
    ``friction`` stays identifiable.
    """
    def rhs(x, p, t, u):
        position, velocity = x
        accel = (p.push_a + p.push_b - p.friction * velocity) / p.mass
        return np.array([velocity, accel])

    return DynamicsModel(
        "pushed_block",
        states=[StateVariable("position", "m"), StateVariable("velocity", "m/s")],
        parameters=[
            DerivedParameter("push_a", default=2.0, bounds=(0.0, 20.0), unit="N"),
            DerivedParameter("push_b", default=3.0, bounds=(0.0, 20.0), unit="N"),
            DerivedParameter("friction", default=1.0, bounds=(0.05, 10.0), unit="N s/m"),
        ],
        func=rhs,
        constants={"mass": mass},
    )
