########################################################################################
##
##                                  TESTS FOR
##                                'constraints.py'
##
##                              Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

import unittest

import numpy as np
import pytest

from paramid import (
    ConfigurationError,
    EventConstraint,
    PointConstraint,
    SettlingConstraint,
    TrajectorySimulator,
    UnmetEventError,
    compile_constraints,
)
from paramid.constraints import event_gap, settling_time
from paramid.models import bouncing_ball, damped_oscillator, platformer_jump


# HELPERS ==============================================================================

G = 9.8
T_IMPACT = np.sqrt(2.0 / G)


def _ball():
    model = bouncing_ball(g=G)
    sim = TrajectorySimulator(model, {"height": 1.0}, 1.0, dt=1e-3)
    return model, sim


# TESTS ================================================================================

class TestValidation(unittest.TestCase):

    def setUp(self):
        self.model, _ = _ball()

    def _compile(self, *constraints):
        return compile_constraints(self.model, constraints, duration=1.0)

    def test_duplicate_names(self):
        c = PointConstraint("a", "height", 0.1, 0.9)
        with self.assertRaises(ConfigurationError):
            self._compile(c, c)

    def test_non_positive_weight(self):
        with self.assertRaises(ConfigurationError):
            self._compile(PointConstraint("a", "height", 0.1, 0.9, weight=0.0))

    def test_non_positive_tolerance(self):
        with self.assertRaises(ConfigurationError):
            self._compile(PointConstraint("a", "height", 0.1, 0.9, tolerance=-1.0))

    def test_time_outside_horizon(self):
        with self.assertRaises(ConfigurationError):
            self._compile(PointConstraint("a", "height", 2.0, 0.9))

    def test_unknown_observable(self):
        with self.assertRaises(ConfigurationError):
            self._compile(PointConstraint("a", "depth", 0.1, 0.9))

    def test_unknown_event(self):
        with self.assertRaises(ConfigurationError):
            self._compile(EventConstraint("a", event="landing", target=0.4))

    def test_occurrence_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            self._compile(EventConstraint("a", event="impact", target=0.4, occurrence=0))

    def test_target_shape(self):
        with self.assertRaises(ConfigurationError):
            self._compile(PointConstraint("a", ["height", "velocity"], 0.1, [1.0]))

    def test_settling_threshold(self):
        with self.assertRaises(ConfigurationError):
            self._compile(SettlingConstraint("a", "height", threshold=0.0, time=0.5))

    def test_settling_mode(self):
        with self.assertRaises(ConfigurationError):
            self._compile(SettlingConstraint("a", "height", threshold=0.1, time=0.5, mode="soon"))

    def test_restitution_needs_normal_state(self):
        model = platformer_jump()
        with self.assertRaises(ConfigurationError):
            compile_constraints(
                model, [EventConstraint("a", event="apex", target=0.8, quantity="restitution")],
                duration=1.0,
            )

    def test_unsupported_type(self):
        with self.assertRaises(ConfigurationError):
            self._compile(("height", 0.1, 0.9))


class TestPointConstraint:

    def test_residual_is_scaled_difference(self):
        model, sim = _ball()
        traj = sim.simulate([0.8])
        t = 0.2
        expected = 1.0 - 0.5 * G * t**2
        (c,) = compile_constraints(
            model, [PointConstraint("h", "height", t, 0.5, tolerance=0.01)], duration=1.0
        )
        r = c.evaluate(traj)
        assert r.shape == (1,)
        assert r[0] == pytest.approx((expected - 0.5) / 0.01, rel=1e-4)

    def test_vector_target(self):
        model, sim = _ball()
        traj = sim.simulate([0.8])
        (c,) = compile_constraints(
            model,
            [PointConstraint("hv", ["height", "velocity"], 0.1, [1.0 - 0.049, -0.98],
                             interpolation="hermite")],
            duration=1.0,
        )
        assert c.size == 2
        np.testing.assert_allclose(c.evaluate(traj), [0.0, 0.0], atol=1e-6)


class TestEventConstraint:

    def test_time_restitution_and_velocity(self):
        model, sim = _ball()
        traj = sim.simulate([0.8])
        v_in = -np.sqrt(2.0 * G)
        compiled = compile_constraints(
            model,
            [
                EventConstraint("t", event="impact", target=T_IMPACT),
                EventConstraint("e", event="impact", target=0.8, quantity="restitution"),
                EventConstraint("v_out", event="impact", target=-0.8 * v_in, quantity="velocity"),
                EventConstraint("v_in", event="impact", target=v_in, quantity="velocity",
                                when="before"),
            ],
            duration=1.0,
        )
        for c in compiled:
            assert abs(c.evaluate(traj)[0]) < 1e-6

    def test_unmet_raises(self):
        model, sim = _ball()
        traj = sim.simulate([0.8])
        (c,) = compile_constraints(
            model, [EventConstraint("second", event="impact", target=1.2, occurrence=2)],
            duration=1.0,
        )
        with pytest.raises(UnmetEventError) as info:
            c.evaluate(traj)
        assert info.value.required == 2
        assert info.value.found == 1
        # the ball is falling towards the second impact at the horizon
        assert c.shortfall(traj) == pytest.approx(traj.final_state[0])
        assert 0.0 < c.shortfall(traj) < 1.0

    def test_gap_measures_height_left_to_fall(self):
        model, sim = _ball()
        traj = sim.simulate([0.8])
        assert event_gap(traj, model.event("impact")) > 0.0

        early = TrajectorySimulator(model, {"height": 1.0}, 0.3, dt=1e-3).simulate([0.8])
        assert event_gap(early, model.event("impact")) == pytest.approx(early.final_state[0])

        (point,) = compile_constraints(
            model, [PointConstraint("h", "height", 0.5, 0.0)], duration=1.0,
        )
        assert point.shortfall(traj) == 0.0


class TestSettling:

    def test_interpolated_crossing(self):
        t = np.array([0.0, 1.0, 2.0, 3.0])
        y = np.array([1.0, 0.5, 0.1, 0.05])
        # |y| drops through 0.3 between t=1 and t=2
        assert settling_time(t, y, 0.3) == pytest.approx(1.5)

    def test_last_crossing_counts(self):
        t = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
        y = np.array([1.0, 0.0, -0.8, 0.0, 0.0])
        assert settling_time(t, y, 0.4) == pytest.approx(2.5)

    def test_settled_from_start(self):
        assert settling_time([0.0, 1.0], [0.01, 0.0], 0.1) == 0.0

    def test_never_settled_extends_horizon(self):
        t = np.array([0.0, 1.0, 2.0])
        y = np.array([1.0, 0.8, 0.2])
        assert settling_time(t, y, 0.1) == pytest.approx(2.0 + np.log(2.0))

    def test_continuous_at_horizon(self):
        t = np.array([0.0, 1.0, 2.0])
        below = settling_time(t, [1.0, 0.5, 0.1 - 1e-9], 0.1)
        above = settling_time(t, [1.0, 0.5, 0.1 + 1e-9], 0.1)
        assert below == pytest.approx(above, abs=1e-6)

    def test_modes(self):
        model = damped_oscillator()
        sim = TrajectorySimulator(model, {"position": 1.0}, 40.0, dt=1e-2)
        traj = sim.simulate([5.0])
        exact, by_late, by_early = compile_constraints(
            model,
            [
                SettlingConstraint("exact", "position", threshold=0.02, time=10.0),
                SettlingConstraint("late", "position", threshold=0.02, time=30.0, mode="by"),
                SettlingConstraint("early", "position", threshold=0.02, time=10.0, mode="by"),
            ],
            duration=40.0,
        )
        assert exact.evaluate(traj)[0] > 0.0
        assert by_late.evaluate(traj)[0] == 0.0
        assert by_early.evaluate(traj)[0] == pytest.approx(exact.evaluate(traj)[0])
