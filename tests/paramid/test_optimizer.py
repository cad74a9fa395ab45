########################################################################################
##
##                                  TESTS FOR
##                                'optimizer.py'
##
##                              Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

import time
import warnings

import numpy as np
import pytest

from paramid import (
    ConvergenceStatus,
    ConvergenceWarning,
    MultiStartOptimizer,
    SolverConfig,
)
from paramid.scaling import ParameterScaler


# HELPERS ==============================================================================

A = np.array([[2.0, 1.0], [1.0, 3.0], [0.0, 1.0]])
P_TRUE = np.array([1.5, -0.5])
B = A @ P_TRUE


def _linear(p):
    return A @ p - B


def _config(**kwargs):
    kwargs.setdefault("time_budget", None)
    return SolverConfig(**kwargs)


# TESTS ================================================================================

class TestLocalSearch:

    @pytest.mark.parametrize("method", ["trf", "L-BFGS-B"])
    def test_linear_problem(self, method):
        opt = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(method=method, restarts=0)
        )
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            result = opt.run()

        assert result.converged
        assert result.loss <= 1e-8
        np.testing.assert_allclose(result.x, P_TRUE, atol=1e-4)
        assert result.nfev > 0
        assert result.restarts[0].source == "default"

    def test_solution_on_bound(self):
        opt = MultiStartOptimizer(
            _linear, [0.0, 0.0], [5.0, 5.0], config=_config(restarts=0, global_fallback=False)
        )
        result = opt.run()
        assert np.all(result.x >= 0.0)
        assert result.x[1] == pytest.approx(0.0, abs=1e-6)

    def test_history_is_recorded(self):
        opt = MultiStartOptimizer(_linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=0))
        result = opt.run()
        history = result.restarts[0].history
        assert len(history) >= 1
        assert min(history) == pytest.approx(result.loss, abs=1e-12)

    def test_log_scaled_parameter(self):
        def residual(p):
            return np.array([np.log(p[0]) - np.log(50.0)])

        scaler = ParameterScaler(["log"], [2.0])
        opt = MultiStartOptimizer(
            residual, [1.0], [1000.0], config=_config(restarts=0), scaler=scaler, x0=[2.0]
        )
        result = opt.run()
        assert result.converged
        assert result.x[0] == pytest.approx(50.0, rel=1e-4)


class TestStarts:

    def test_default_first(self):
        opt = MultiStartOptimizer(_linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=3),
                                  x0=[1.0, 1.0])
        starts = opt.starts()
        assert [s for s, _ in starts] == ["default", "lhs", "lhs", "lhs"]
        np.testing.assert_array_equal(starts[0][1], [1.0, 1.0])
        for _, p in starts:
            assert np.all(p >= -5.0) and np.all(p <= 5.0)

    def test_seeded_starts_reproducible(self):
        def starts(seed):
            opt = MultiStartOptimizer(
                _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=4, seed=seed)
            )
            return np.array([p for _, p in opt.starts()])

        np.testing.assert_array_equal(starts(11), starts(11))
        assert not np.array_equal(starts(11), starts(12))

    def test_box_center_default(self):
        opt = MultiStartOptimizer(_linear, [0.0, -4.0], [2.0, 0.0])
        np.testing.assert_array_equal(opt.x0, [1.0, -2.0])


class TestBudgets:

    def test_evaluation_budget(self):
        opt = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(max_nfev=3, restarts=2),
            x0=[4.0, 4.0],
        )
        with pytest.warns(ConvergenceWarning):
            result = opt.run()

        assert result.status is ConvergenceStatus.BUDGET_EXHAUSTED
        assert result.nfev == 3
        assert np.isfinite(result.loss)
        assert result.restarts[0].status is ConvergenceStatus.BUDGET_EXHAUSTED

    def test_time_budget(self):
        def slow(p):
            t_end = time.perf_counter() + 0.02
            while time.perf_counter() < t_end:
                pass
            return _linear(p) + np.array([1.0, -1.0, 1.0])

        opt = MultiStartOptimizer(
            slow, [-5.0, -5.0], [5.0, 5.0],
            config=SolverConfig(time_budget=0.1, restarts=5),
        )
        with pytest.warns(ConvergenceWarning):
            result = opt.run()
        assert result.status is ConvergenceStatus.BUDGET_EXHAUSTED
        assert result.wall_time < 2.0


class TestFallback:

    def test_global_fallback_when_target_unreachable(self):
        # inconsistent system, the best loss is 2 at p = 0
        def residual(p):
            return np.array([p[0] - 1.0, p[0] + 1.0])

        opt = MultiStartOptimizer(
            residual, [-3.0], [3.0], config=_config(restarts=0, max_nfev=600), x0=[2.5]
        )
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            result = opt.run()

        sources = [s.source for s in result.restarts]
        assert sources[0] == "default"
        assert "global" in sources
        assert result.loss == pytest.approx(2.0, abs=1e-6)
        assert result.x[0] == pytest.approx(0.0, abs=1e-3)

    def test_polish(self):
        opt = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0],
            config=_config(restarts=0, polish=True, target_loss=0.0),
        )
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            result = opt.run()
        assert result.restarts[-1].source == "polish"
        np.testing.assert_allclose(result.x, P_TRUE, atol=1e-4)


class TestParallel:

    def test_parallel_restarts_match_sequential(self):
        seq = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=3, workers=1)
        ).run()
        par = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=3, workers=2)
        ).run()
        np.testing.assert_allclose(par.x, seq.x, atol=1e-8)
        assert par.status is seq.status

    def test_parallel_probes(self):
        seq = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=0, workers=1)
        ).run()
        par = MultiStartOptimizer(
            _linear, [-5.0, -5.0], [5.0, 5.0], config=_config(restarts=0, workers=3)
        ).run()
        np.testing.assert_array_equal(par.x, seq.x)
        assert par.nfev == seq.nfev

    def test_budget_limited_parallel_runs_repeat(self):
        def banana(p):
            return np.array([10.0 * (p[1] - p[0] ** 2), 1.0 - p[0]])

        cfg = _config(restarts=6, workers=4, max_nfev=60, global_fallback=False)
        results = []
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            for _ in range(5):
                results.append(
                    MultiStartOptimizer(banana, [-2.0, -2.0], [2.0, 2.0], config=cfg).run()
                )

        first = results[0]
        assert first.nfev <= 60
        assert [r.nfev <= 9 for r in first.restarts] == [True] * 7
        for other in results[1:]:
            np.testing.assert_array_equal(other.x, first.x)
            assert other.best_index == first.best_index
            assert other.loss == first.loss
            assert [r.nfev for r in other.restarts] == [r.nfev for r in first.restarts]
