########################################################################################
##
##                                  TESTS FOR
##                                  'solver.py'
##
##                      end-to-end parameter identification runs
##
##                              Kevin McBride 2026
##
########################################################################################

# IMPORTS ==============================================================================

import json
import time
import unittest
import warnings

import numpy as np
import pytest

from paramid import (
    ConfigurationError,
    ConvergenceStatus,
    ConvergenceWarning,
    DerivedParameter,
    DynamicsModel,
    EventConstraint,
    IdentifiabilityWarning,
    ParameterSolver,
    PointConstraint,
    SettlingConstraint,
    SolverConfig,
    StateVariable,
)
from paramid.models import (
    bouncing_ball,
    damped_oscillator,
    jump_constraints,
    jump_initial_state,
    platformer_jump,
    pushed_block,
)


# HELPERS ==============================================================================

G = 9.8
FAST = SolverConfig(time_budget=None, restarts=0, global_fallback=False)


def _ball_solver(config=FAST, duration=1.0):
    v_in = np.sqrt(2.0 * G)
    return ParameterSolver(
        bouncing_ball(g=G),
        initial_state={"height": 1.0},
        duration=duration,
        dt=1e-3,
        config=config,
        constraints=[
            EventConstraint("impact_time", event="impact", target=np.sqrt(2.0 / G)),
            EventConstraint("bounce", event="impact", quantity="restitution", target=0.8),
            EventConstraint("rebound_speed", event="impact", quantity="velocity",
                            target=0.8 * v_in, tolerance=1e-2),
        ],
    )


def _projectile(config=FAST, delay=0.0):
    def rhs(x, p, t, u):
        if delay:
            time.sleep(delay)
        return np.array([x[2], x[3], 0.0, -p.g])

    model = DynamicsModel(
        "projectile",
        states=["x", "y", "vx", "vy"],
        parameters=[
            DerivedParameter("vx0", default=1.0, bounds=(0.0, 20.0)),
            DerivedParameter("vy0", default=1.0, bounds=(0.0, 20.0)),
        ],
        func=rhs,
        constants={"g": G},
    )
    return ParameterSolver(
        model,
        initial_state=lambda p: {"vx": p.vx0, "vy": p.vy0},
        duration=1.5,
        dt=1e-2,
        config=config,
        constraints=[
            PointConstraint("range", "x", 1.0, 3.0),
            PointConstraint("rise", "y", 1.0, 8.0 - 0.5 * G),
        ],
    )


def _pushed_block_solver():
    model = pushed_block()
    solver = ParameterSolver(model, initial_state={}, duration=4.0, dt=1e-2, config=FAST)
    traj = solver.simulate()
    solver.add_constraints([
        PointConstraint("v1", "velocity", 1.0, traj.state_at(1.0)[1]),
        PointConstraint("x2", "position", 2.0, traj.state_at(2.0)[0]),
        PointConstraint("v4", "velocity", 4.0, traj.state_at(4.0)[1]),
    ])
    return solver


# TESTS ================================================================================

class TestSetup(unittest.TestCase):

    def test_needs_simulator_or_horizon(self):
        with self.assertRaises(ConfigurationError):
            ParameterSolver(bouncing_ball(), initial_state={"height": 1.0})

    def test_no_constraints(self):
        solver = ParameterSolver(bouncing_ball(), initial_state={"height": 1.0}, duration=1.0)
        with self.assertRaises(ConfigurationError):
            solver.solve()

    def test_invalid_constraint_is_not_added(self):
        solver = _ball_solver()
        with self.assertRaises(ConfigurationError):
            solver.add_constraint(PointConstraint("late", "height", 5.0, 0.0))
        self.assertEqual(len(solver.constraints), 3)

    def test_unknown_strategy(self):
        with self.assertRaises(ConfigurationError):
            _ball_solver().solve(strategy="random")


class TestBouncingBall:

    def test_solves_restitution(self):
        result = _ball_solver().solve()

        assert result.converged
        assert result.satisfied
        assert result.params["restitution"] == pytest.approx(0.8, abs=1e-5)
        assert abs(result.loss["rebound_speed"].residual[0]) < 1e-2
        assert result.identifiability.identifiable
        assert result.loss["bounce"].gradient.shape == (1,)

        impact = result.trajectory.event("impact", 1)
        assert impact.time == pytest.approx(np.sqrt(2.0 / G), abs=1e-9)

    def test_result_is_json_serializable(self):
        result = _ball_solver().solve()
        data = json.loads(json.dumps(result.to_dict()))
        assert data["status"] == "converged"
        assert set(data["params"]) == {"restitution"}
        assert len(data["loss"]["components"]) == 3

    def test_params_are_read_only(self):
        result = _ball_solver().solve(identifiability=False)
        with pytest.raises(TypeError):
            result.params["restitution"] = 0.1

    def test_resting_ball_has_zero_loss(self):
        solver = ParameterSolver(
            bouncing_ball(g=G),
            initial_state={"height": 0.0, "velocity": 0.0},
            duration=1.0,
            constraints=[PointConstraint("still", ["height", "velocity"], 0.5, [0.0, 0.0])],
        )
        breakdown = solver.evaluate()
        assert breakdown.total == 0.0
        assert breakdown.satisfied

    def test_unmet_event_is_reported(self):
        solver = _ball_solver(duration=0.3)
        breakdown = solver.evaluate()
        assert not breakdown.satisfied
        assert all(c.unmet for c in breakdown)

        h = solver.simulate().final_state[0]
        assert breakdown.total == pytest.approx(3 * (10.0 * (1.0 + h / (1.0 + h)))**2)

        with pytest.warns(ConvergenceWarning):
            result = solver.solve(identifiability=False)
        assert result.status is ConvergenceStatus.NOT_CONVERGED
        assert not result.converged
        assert not result.satisfied
        assert len(result.loss.messages) == 3

    def test_budget_exhausted(self):
        solver = _ball_solver(config=FAST.replace(max_nfev=2))
        with pytest.warns(ConvergenceWarning):
            result = solver.solve(identifiability=False)
        assert result.status is ConvergenceStatus.BUDGET_EXHAUSTED
        assert not result.converged
        assert 0.01 <= result.params["restitution"] <= 1.0


class TestSettling:

    def _solve(self, t_settle):
        solver = ParameterSolver(
            damped_oscillator(),
            initial_state={"position": 1.0},
            duration=40.0,
            dt=1e-2,
            config=FAST,
            constraints=[SettlingConstraint("settle", "position", threshold=0.02,
                                            time=t_settle)],
        )
        return solver.solve(identifiability=False)

    def test_later_settling_needs_more_damping(self):
        early, late = self._solve(12.0), self._solve(20.0)
        assert early.satisfied and late.satisfied
        assert early.params["damping"] == pytest.approx(3.3, abs=0.1)
        assert late.params["damping"] == pytest.approx(5.2, abs=0.2)
        assert late.params["damping"] >= early.params["damping"]


class TestPlatformerJump:

    def test_design_round_trip(self):
        model = platformer_jump()
        solver = ParameterSolver(
            model,
            initial_state=jump_initial_state,
            duration=1.0,
            dt=1e-3,
            config=FAST,
            constraints=jump_constraints(jump_height=2.0, time_up=0.4, time_down=0.35),
        )
        result = solver.solve()
        assert result.satisfied

        p = result.params
        assert p["g"] == pytest.approx(2.0 * 2.0 / 0.35**2, rel=1e-3)
        assert p["jump_vy_0"] == pytest.approx(10.0, rel=1e-3)
        assert p["jump_boost_force"] == pytest.approx(p["g"] - 25.0, rel=1e-2)

        # fresh simulation with the solved values meets every constraint
        replay = solver.evaluate([p[n] for n in model.parameter_names])
        assert replay.satisfied
        assert replay.total == pytest.approx(result.loss.total)

        tree = replay.groups()
        assert set(tree["children"]["jump"]["children"]) == {"up", "down"}
        assert result.trajectory.termination == "terminal:landing"


class TestIdentifiability:

    def test_pushes_trade_off(self):
        solver = _pushed_block_solver()
        with pytest.warns(IdentifiabilityWarning):
            report = solver.identifiability()

        assert report.flagged == ["push_a", "push_b"]
        assert report.groups == [("push_a", "push_b")]
        assert "push_a and push_b trade off along +0.83·push_a -0.55·push_b" in report.explanations[0]

    def test_solve_reports_weak_pair(self):
        solver = _pushed_block_solver()
        with pytest.warns(IdentifiabilityWarning):
            result = solver.solve(x0=[4.0, 4.0, 2.0])
        assert result.satisfied
        p = result.params
        assert p["push_a"] + p["push_b"] == pytest.approx(5.0, rel=1e-3)
        assert p["friction"] == pytest.approx(1.0, rel=1e-3)
        assert result.identifiability.flagged == ["push_a", "push_b"]


class TestSequential:

    def test_plan_splits_independent_blocks(self):
        plan = _projectile().solution_plan()
        assert plan.decomposed
        assert [b.unknowns for b in plan] == [(0,), (1,)]

    def test_sequential_solve(self):
        result = _projectile().solve(strategy="sequential")
        assert result.strategy == "sequential"
        assert result.satisfied
        assert result.params["vx0"] == pytest.approx(3.0, abs=1e-4)
        assert result.params["vy0"] == pytest.approx(8.0, abs=1e-4)
        assert [r.index for r in result.restarts] == list(range(len(result.restarts)))

    def test_coupled_problem_falls_back_to_joint(self):
        solver = _pushed_block_solver()
        assert len(solver.solution_plan()) == 1
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", IdentifiabilityWarning)
            result = solver.solve(strategy="sequential")
        assert result.strategy == "joint"

    def test_time_budget_covers_every_block(self):
        budget = 0.3
        solver = _projectile(config=FAST.replace(time_budget=budget, target_loss=0.0), delay=5e-5)
        t0 = time.perf_counter()
        solver.simulate()
        t_sim = time.perf_counter() - t0

        with pytest.warns(ConvergenceWarning):
            result = solver.solve(strategy="sequential", identifiability=False)

        assert result.strategy == "sequential"
        assert result.status is ConvergenceStatus.BUDGET_EXHAUSTED
        # one evaluation may overrun the deadline, the final simulation comes on top
        assert result.wall_time <= budget + 5 * t_sim
