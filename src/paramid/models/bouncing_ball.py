#########################################################################################
##
##                               BOUNCING BALL MODEL
##                            (models/bouncing_ball.py)
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from ..model import DerivedParameter, DynamicsModel, EventSpec, StateVariable


# MODEL =================================================================================

def bouncing_ball(g=9.8, drag=False, rest_speed=1e-3):
    """Ball dropped onto a rigid floor.

    States are ``height`` and ``velocity`` (positive up). The ``impact``
    event fires when the height falls through zero and reflects the
    velocity scaled by the derived ``restitution``. Once the rebound speed
    drops below ``rest_speed`` the ball comes to rest on the floor, where
    gravity and the normal force cancel.

    Parameters
    ----------
    g : float
        Gravitational acceleration (constant).
    drag : bool
        Add a linear air drag coefficient ``drag`` as derived parameter.
    rest_speed : float
        Rebound speed below which the ball stays on the floor.

    Returns
    -------
    DynamicsModel
    """
    parameters = [
        DerivedParameter(
            "restitution", default=0.5, bounds=(0.01, 1.0),
            description="ratio of rebound to impact speed",
        ),
    ]
    if drag:
        parameters.append(
            DerivedParameter("drag", default=0.1, bounds=(0.0, 5.0), unit="1/s")
        )

    def rhs(x, p, t, u):
        height, velocity = x
        if height <= 0.0 and velocity == 0.0:
            # resting contact
            return np.zeros(2)
        accel = -p.g
        if drag:
            accel -= p.drag * velocity
        return np.array([velocity, accel])

    def bounce(x, p, t):
        v_out = -p.restitution * x[1]
        if abs(v_out) < rest_speed:
            return np.array([0.0, 0.0])
        return np.array([0.0, v_out])

    impact = EventSpec(
        "impact",
        indicator=lambda x, p, t: x[0],
        direction=-1,
        reset=bounce,
        normal="velocity",
    )

    return DynamicsModel(
        "bouncing_ball",
        states=[StateVariable("height", "m"), StateVariable("velocity", "m/s")],
        parameters=parameters,
        func=rhs,
        constants={"g": g},
        events=[impact],
        observables={"speed": lambda x, p, t: abs(x[1])},
    )
