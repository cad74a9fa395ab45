########################################################################################
##
##                                  TESTS FOR
##                                 'scaling.py'
##
##                              Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

import unittest

import numpy as np

from paramid import ConfigurationError
from paramid.scaling import ParameterScaler, log_link, log_link_inv
from paramid.models import damped_oscillator, platformer_jump


# TESTS ================================================================================

class TestLogLink(unittest.TestCase):

    def test_prior_maps_to_zero(self):
        self.assertEqual(log_link(4.0, 4.0), 0.0)

    def test_inverse(self):
        p = np.array([0.1, 1.0, 250.0])
        np.testing.assert_allclose(log_link_inv(log_link(p, 3.0), 3.0), p)

    def test_unit_step_is_factor_e(self):
        self.assertAlmostEqual(log_link_inv(1.0, 2.0), 2.0 * np.e)


class TestParameterScaler(unittest.TestCase):

    def test_identity(self):
        s = ParameterScaler.identity(3)
        self.assertTrue(s.is_identity)
        p = np.array([-1.0, 0.0, 2.0])
        np.testing.assert_array_equal(s.to_opt(p), p)
        np.testing.assert_array_equal(s.to_model(p), p)

    def test_mixed(self):
        s = ParameterScaler(["log", "linear"], [2.0, 5.0])
        self.assertFalse(s.is_identity)
        x = s.to_opt([2.0 * np.e, 7.0])
        np.testing.assert_allclose(x, [1.0, 7.0])
        np.testing.assert_allclose(s.to_model(x), [2.0 * np.e, 7.0])

    def test_to_opt_does_not_mutate(self):
        s = ParameterScaler(["log"], [1.0])
        p = np.array([3.0])
        s.to_opt(p)
        self.assertEqual(p[0], 3.0)

    def test_bounds_are_monotone(self):
        s = ParameterScaler(["log", "linear"], [10.0, 1.0])
        lo, hi = s.bounds_to_opt([1.0, -2.0], [100.0, 2.0])
        np.testing.assert_allclose(lo, [-np.log(10.0), -2.0])
        np.testing.assert_allclose(hi, [np.log(10.0), 2.0])

    def test_from_model(self):
        model = platformer_jump()
        s = ParameterScaler.from_model(model)
        self.assertEqual(s.kinds, ("log", "log", "linear"))
        np.testing.assert_allclose(s.to_opt(model.initial_guess), [0.0, 0.0, 5.0])

        forced = ParameterScaler.from_model(model, mode="linear")
        self.assertTrue(forced.is_identity)

    def test_from_model_oscillator(self):
        s = ParameterScaler.from_model(damped_oscillator())
        self.assertEqual(s.kinds, ("log",))

    def test_invalid(self):
        with self.assertRaises(ConfigurationError):
            ParameterScaler(["log"], [1.0, 2.0])
        with self.assertRaises(ConfigurationError):
            ParameterScaler(["cubic"], [1.0])
        with self.assertRaises(ConfigurationError):
            ParameterScaler(["log"], [0.0])
        with self.assertRaises(ConfigurationError):
            ParameterScaler.from_model(damped_oscillator(), mode="sqrt")
