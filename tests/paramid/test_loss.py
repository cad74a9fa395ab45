########################################################################################
##
##                                  TESTS FOR
##                                   'loss.py'
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
    LossBreakdown,
    LossComponent,
    LossComposer,
    PointConstraint,
    TrajectorySimulator,
    compile_constraints,
)
from paramid.models import bouncing_ball, jump_initial_state, platformer_jump


# HELPERS ==============================================================================

def _component(name, residual, weight=1.0, group=""):
    r = np.asarray(residual, dtype=float)
    return LossComponent(name, group, weight, r, bool(np.all(np.abs(r) <= 1.0)))


def _ball_setup(duration=1.0, penalty=10.0):
    model = bouncing_ball(g=9.8)
    sim = TrajectorySimulator(model, {"height": 1.0}, duration, dt=1e-3)
    compiled = compile_constraints(
        model,
        [
            PointConstraint("early", "height", 0.1, 0.9, weight=2.0, group="fall"),
            PointConstraint("late", ["height", "velocity"], 0.3, [0.5, -3.0], group="fall/late"),
            EventConstraint("bounce", event="impact", target=0.4, group="impact"),
            EventConstraint("second", event="impact", target=1.0, occurrence=3,
                            weight=0.5, group="impact"),
        ],
        duration=duration,
    )
    return sim, LossComposer(compiled, unmet_penalty=penalty)


# TESTS ================================================================================

class TestLossComponent(unittest.TestCase):

    def test_loss_is_weighted_square(self):
        c = _component("a", [3.0, 4.0], weight=2.0)
        self.assertAlmostEqual(c.loss, 50.0)
        np.testing.assert_allclose(c.weighted_residual, np.sqrt(2.0) * np.array([3.0, 4.0]))

    def test_negative_weight_rejected(self):
        with self.assertRaises(ConfigurationError):
            _component("a", [1.0], weight=-1.0)

    def test_zero_weight_allowed(self):
        c = _component("a", [5.0], weight=0.0)
        self.assertEqual(c.loss, 0.0)
        self.assertFalse(c.satisfied)

    def test_to_dict(self):
        d = _component("a", [0.5]).to_dict()
        self.assertEqual(d["name"], "a")
        self.assertEqual(d["residual"], [0.5])
        self.assertTrue(d["satisfied"])
        self.assertNotIn("gradient", d)


class TestLossBreakdown:

    def test_total_is_plain_sum(self):
        b = LossBreakdown([_component("a", [1.0, 2.0], 3.0), _component("b", [0.5])])
        assert b.total == pytest.approx(3.0 * 5.0 + 0.25)

    def test_residual_vector_norm_matches_total(self):
        b = LossBreakdown([_component("a", [1.0, 2.0], 3.0), _component("b", [0.5], 0.2)])
        r = b.residual_vector()
        assert r.shape == (3,)
        assert np.dot(r, r) == pytest.approx(b.total)

    def test_empty(self):
        b = LossBreakdown([])
        assert b.total == 0.0
        assert b.satisfied
        assert b.residual_vector().shape == (0,)

    def test_lookup(self):
        b = LossBreakdown([_component("a", [1.0])])
        assert b["a"].name == "a"
        with pytest.raises(KeyError):
            b["missing"]

    def test_groups_sum_to_total(self):
        b = LossBreakdown([
            _component("a", [1.0], group="jump/up"),
            _component("b", [2.0], group="jump/down"),
            _component("c", [3.0], group="jump"),
            _component("d", [4.0]),
        ])
        tree = b.groups()
        assert tree["loss"] == pytest.approx(b.total)
        assert tree["components"] == ["d"]

        jump = tree["children"]["jump"]
        assert jump["loss"] == pytest.approx(1.0 + 4.0 + 9.0)
        assert jump["components"] == ["c"]
        assert jump["children"]["up"]["components"] == ["a"]
        assert jump["children"]["down"]["loss"] == pytest.approx(4.0)

    def test_with_gradients(self):
        b = LossBreakdown([_component("a", [1.0, 2.0], 4.0), _component("b", [3.0])])
        J = np.array([[1.0, 0.0], [0.0, 1.0], [2.0, -1.0]])
        g = b.with_gradients(J, ["p", "q"])

        # d/dp of 4*(r0^2 + r1^2) with sqrt(w) r as residual
        np.testing.assert_allclose(g["a"].gradient, 2.0 * J[:2].T @ (2.0 * np.array([1.0, 2.0])))
        np.testing.assert_allclose(g["b"].gradient, [12.0, -6.0])
        assert g.parameter_names == ("p", "q")
        assert g.total == pytest.approx(b.total)
        assert b["a"].gradient is None

    def test_with_gradients_shape_mismatch(self):
        b = LossBreakdown([_component("a", [1.0])])
        with pytest.raises(ValueError):
            b.with_gradients(np.ones((2, 1)))


class TestLossComposer:

    def test_residual_names(self):
        _, composer = _ball_setup()
        assert composer.size == 5
        assert composer.residual_names == ["early", "late[0]", "late[1]", "bounce", "second"]

    def test_unmet_event_becomes_penalty(self):
        sim, composer = _ball_setup(penalty=7.0)
        traj = sim.simulate([0.8])
        breakdown = composer.evaluate(traj)

        second = breakdown["second"]
        assert second.unmet
        assert not second.satisfied
        # two of the three requested impacts are missing, the ball is still
        # falling at the horizon
        h = traj.final_state[0]
        expected = 7.0 * (2.0 + h / (1.0 + h))
        np.testing.assert_allclose(second.residual, [expected])
        assert second.loss == pytest.approx(0.5 * expected**2)
        assert len(breakdown.messages) == 1
        assert breakdown.messages[0].startswith("second:")

    def test_unmet_penalty_slopes_towards_event(self):
        model = platformer_jump()
        sim = TrajectorySimulator(model, jump_initial_state, 0.5, dt=1e-3)
        composer = LossComposer(
            compile_constraints(
                model, [EventConstraint("land", event="landing", target=0.6)], duration=0.5,
            ),
            unmet_penalty=10.0,
        )
        # stronger gravity brings the character closer to the ground at the horizon
        light = composer.evaluate(sim.simulate([30.0, 10.0, 5.0]))["land"]
        heavy = composer.evaluate(sim.simulate([40.0, 10.0, 5.0]))["land"]

        assert light.unmet and heavy.unmet
        assert 10.0 < heavy.residual[0] < light.residual[0] < 20.0

    def test_vector_matches_breakdown(self):
        sim, composer = _ball_setup()
        traj = sim.simulate([0.8])
        r = composer.residual_vector(traj)
        assert r.shape == (composer.size,)
        assert np.dot(r, r) == pytest.approx(composer.evaluate(traj).total)

    def test_penalty_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            LossComposer([], unmet_penalty=0.0)

    def test_to_dict(self):
        sim, composer = _ball_setup()
        d = composer.evaluate(sim.simulate([0.8])).to_dict()
        assert len(d["components"]) == 4
        assert d["satisfied"] is False
