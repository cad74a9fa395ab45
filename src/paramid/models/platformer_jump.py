#########################################################################################
##
##                              PLATFORMER JUMP MODEL
##                           (models/platformer_jump.py)
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np

from ..constraints import EventConstraint
from ..model import DerivedParameter, DynamicsModel, EventSpec, StateVariable


# MODEL =================================================================================

def platformer_jump(mass=1.0, air_drag=0.0):
    """Vertical jump of a game character.

    The character leaves the ground with ``jump_vy_0`` and a constant
    ``jump_boost_force`` pushes up until the apex, after which only gravity
    ``g`` and quadratic air drag act. The ``apex`` event switches the boost
    off, the terminal ``landing`` event ends the jump.

    Use :func:`jump_constraints` to express the designer's jump height and
    up/down durations.
    """
    def rhs(x, p, t, u):
        height, velocity, boost = x
        force = boost * p.jump_boost_force - p.air_drag * velocity * abs(velocity)
        return np.array([velocity, force / p.mass - p.g, 0.0])

    def end_boost(x, p, t):
        return np.array([x[0], x[1], 0.0])

    apex = EventSpec("apex", indicator=lambda x, p, t: x[1], direction=-1, reset=end_boost)
    landing = EventSpec(
        "landing", indicator=lambda x, p, t: x[0], direction=-1, normal="velocity",
        terminal=True,
    )

    return DynamicsModel(
        "platformer_jump",
        states=[
            StateVariable("height", "m"),
            StateVariable("velocity", "m/s"),
            StateVariable("boost", "", "1 while the jump boost is active"),
        ],
        parameters=[
            DerivedParameter("g", default=30.0, bounds=(1.0, 300.0), unit="m/s^2", scaling="log"),
            DerivedParameter("jump_vy_0", default=10.0, bounds=(0.5, 100.0), unit="m/s",
                             scaling="log"),
            DerivedParameter("jump_boost_force", default=5.0, bounds=(0.0, 500.0), unit="N"),
        ],
        func=rhs,
        constants={"mass": mass, "air_drag": air_drag},
        events=[apex, landing],
    )


def jump_initial_state(p):
    """Take-off state: on the ground, launch speed, boost active."""
    return {"height": 0.0, "velocity": p.jump_vy_0, "boost": 1.0}


def jump_constraints(jump_height, time_up, time_down, tolerance=1e-3):
    """Designer-facing jump constraints (apex time and height, landing time)."""
    return [
        EventConstraint("apex_time", event="apex", quantity="time", target=time_up,
                        tolerance=tolerance, group="jump/up"),
        EventConstraint("apex_height", event="apex", quantity="height", when="before",
                        target=jump_height, tolerance=tolerance, group="jump/up"),
        EventConstraint("landing_time", event="landing", quantity="time",
                        target=time_up + time_down, tolerance=tolerance, group="jump/down"),
    ]
