########################################################################################
##
##                                  TESTS FOR
##                     'solvers/rk4.py', 'solvers/rkbs32.py',
##                               'solvers/rkdp54.py'
##
##                              Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

import unittest

import numpy as np
import pytest

from paramid.solvers import RK4, RKBS32, RKDP54


# HELPERS ==============================================================================

def _decay(t, x):
    return -x


def _integrate(solver, func, x0, t_end, n):
    h = t_end / n
    x, t = np.array(x0, dtype=float), 0.0
    for _ in range(n):
        x, _ = solver.step(func, t, x, h)
        t += h
    return x


# TESTS ================================================================================

class TestButcherTables(unittest.TestCase):

    def test_consistency(self):
        for Solver in (RK4, RKBS32, RKDP54):
            s = Solver()
            self.assertEqual(len(s.BT), s.s)
            self.assertEqual(len(s.eval_stages), s.s)
            self.assertAlmostEqual(sum(s.b), 1.0, places=12)
            for i in range(1, s.s):
                self.assertAlmostEqual(sum(s.BT[i]), s.eval_stages[i], places=12)

    def test_error_coefficients_sum_to_zero(self):
        for Solver in (RKBS32, RKDP54):
            self.assertAlmostEqual(sum(Solver().TR), 0.0, places=12)

    def test_adaptive_flags(self):
        self.assertFalse(RK4().is_adaptive)
        self.assertTrue(RKBS32().is_adaptive)
        self.assertTrue(RKDP54().is_adaptive)


class TestAccuracy:

    @pytest.mark.parametrize("Solver, order", [(RK4, 4), (RKBS32, 3), (RKDP54, 5)])
    def test_convergence_order(self, Solver, order):
        s = Solver()
        exact = np.exp(-1.0)
        e1 = abs(_integrate(s, _decay, [1.0], 1.0, 10)[0] - exact)
        e2 = abs(_integrate(s, _decay, [1.0], 1.0, 20)[0] - exact)
        assert np.log2(e1 / e2) == pytest.approx(order, abs=0.4)

    def test_rk4_exact_for_quadratic_motion(self):
        func = lambda t, x: np.array([x[1], -9.8])
        x = _integrate(RK4(), func, [1.0, 0.0], 0.3, 3)
        np.testing.assert_allclose(x, [1.0 - 0.5 * 9.8 * 0.09, -9.8 * 0.3], rtol=1e-13)

    def test_fixed_step_reports_no_error(self):
        _, err = RK4().step(_decay, 0.0, np.array([1.0]), 0.1)
        assert err == 0.0


class TestStepControl:

    def test_error_estimate_shrinks_with_step(self):
        s = RKDP54()
        _, e_big = s.step(_decay, 0.0, np.array([1.0]), 0.5)
        _, e_small = s.step(_decay, 0.0, np.array([1.0]), 0.05)
        assert e_small < e_big

    def test_next_step_size_bounds(self):
        s = RKBS32()
        assert s.next_step_size(0.1, 1e6) == pytest.approx(0.02)
        assert s.next_step_size(0.1, 0.0) == pytest.approx(0.5)
        assert 0.02 <= s.next_step_size(0.1, 2.0) < 0.1

    def test_fixed_step_keeps_size(self):
        assert RK4().next_step_size(0.1, 10.0) == 0.1
