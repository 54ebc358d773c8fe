"""
Tests for the outer variance-component optimization.

Validates:
    - Convergence to an interior optimum for grouped data
    - Nelder-Mead path and the L-BFGS-B fallback bookkeeping
    - Factorization failures are counted and treated as +inf
    - Cancellation and the iteration / wall-clock budgets
"""

import threading
import warnings

import numpy as np
import pytest

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.exceptions import (
    ConvergenceFailure, FitCancelled, NotPositiveDefiniteError,
)
from pymultilevel.core.result import STATUS_CONVERGED, STATUS_MAX_ITERATIONS
from pymultilevel.core.compute.timing import Deadline
from pymultilevel.mixed import ModelSpec, Numeric, GroupingFactor, FitControl, fit
from pymultilevel.mixed.design import MixedDesign
from pymultilevel.mixed._random_effects import build_random_effects, build_z_matrix
from pymultilevel.mixed._laplace import LaplaceProblem, laplace_objective
from pymultilevel.mixed._optimizer import ObjectiveTracker, optimize_theta
from pymultilevel.regression import logistic_fit
from pymultilevel.regression.families import Binomial


SPEC = ModelSpec('y', (Numeric('x'),), (GroupingFactor('group', 'group'),))
LOWER = np.zeros(1)


@pytest.fixture(scope='module')
def problem(random_intercept_data):
    design = MixedDesign.build(DataSource.build(random_intercept_data), SPEC)
    specs = build_random_effects(design.index)
    Z = build_z_matrix(specs, design.n)
    return LaplaceProblem(
        X=design.X, Z=Z, y=design.y, specs=tuple(specs),
        family=Binomial(),
        beta_start=logistic_fit(design.X, design.y).coefficients,
    )


class TestOptimizeTheta:

    def test_lbfgsb_converges(self, problem):
        tracker = ObjectiveTracker(problem, FitControl())
        res = optimize_theta(tracker, np.ones(1), LOWER)
        assert res.status == STATUS_CONVERGED
        assert res.method in ('L-BFGS-B', 'Nelder-Mead')
        assert res.fallback_used == (res.method == 'Nelder-Mead')
        assert res.theta[0] > 0.3
        assert res.objective == pytest.approx(laplace_objective(res.theta, problem))

    def test_objective_not_worse_than_start(self, problem):
        tracker = ObjectiveTracker(problem, FitControl())
        res = optimize_theta(tracker, np.ones(1), LOWER)
        assert res.objective <= laplace_objective(np.ones(1), problem)
        assert res.objective <= laplace_objective(np.zeros(1), problem)

    def test_nelder_mead_agrees(self, problem):
        lbfgsb = optimize_theta(ObjectiveTracker(problem, FitControl()), np.ones(1), LOWER)
        nm = optimize_theta(
            ObjectiveTracker(problem, FitControl(optimizer='Nelder-Mead')), np.ones(1), LOWER
        )
        assert nm.method == 'Nelder-Mead'
        assert nm.status == STATUS_CONVERGED
        assert nm.theta[0] >= 0.0
        np.testing.assert_allclose(nm.theta, lbfgsb.theta, atol=1e-2)

    @pytest.mark.parametrize("method", ['L-BFGS-B', 'Nelder-Mead'])
    def test_respects_lower_bound(self, problem, method):
        """The unconstrained optimum is near 1; a bound of 3 must hold."""
        tracker = ObjectiveTracker(problem, FitControl(optimizer=method))
        res = optimize_theta(tracker, np.array([3.5]), np.array([3.0]))
        assert res.theta[0] >= 3.0
        assert res.theta[0] == pytest.approx(3.0, abs=1e-2)

    def test_counts_evaluations(self, problem):
        tracker = ObjectiveTracker(problem, FitControl())
        res = optimize_theta(tracker, np.ones(1), LOWER)
        # Each gradient costs two extra evaluations per θ
        assert res.n_evaluations >= 3
        assert res.n_iter >= 1
        assert res.n_failures == 0


class TestFailureHandling:

    def test_failed_evaluation_is_inf(self, problem, monkeypatch):
        import pymultilevel.mixed._optimizer as opt_mod

        def failing(theta, problem):
            raise NotPositiveDefiniteError("forced", matrix_name='RX')

        monkeypatch.setattr(opt_mod, 'laplace_objective', failing)
        tracker = ObjectiveTracker(problem, FitControl())
        assert tracker.value(np.ones(1)) == np.inf
        assert tracker.n_failures == 1
        assert tracker.last_failure == "forced"

    def test_no_evaluable_theta_raises(self, problem, monkeypatch):
        import pymultilevel.mixed._optimizer as opt_mod

        def failing(theta, problem):
            raise NotPositiveDefiniteError("forced", matrix_name='RX')

        monkeypatch.setattr(opt_mod, 'laplace_objective', failing)
        control = FitControl(optimizer='Nelder-Mead', max_outer_iterations=5)
        tracker = ObjectiveTracker(problem, control)
        with pytest.raises(NotPositiveDefiniteError, match="could not be evaluated"):
            optimize_theta(tracker, np.ones(1), LOWER)

    def test_best_theta_is_non_negative(self, problem):
        tracker = ObjectiveTracker(problem, FitControl())
        tracker.value(np.array([-0.5]))
        np.testing.assert_array_equal(tracker.best_theta, [0.5])


class TestBudgets:

    def test_cancel_before_start(self, problem):
        cancel = threading.Event()
        cancel.set()
        tracker = ObjectiveTracker(problem, FitControl(), cancel=cancel)
        with pytest.raises(FitCancelled) as exc_info:
            optimize_theta(tracker, np.ones(1), LOWER)
        assert exc_info.value.iterations == 0

    def test_cancel_during_iterations(self, problem):
        cancel = threading.Event()
        tracker = ObjectiveTracker(problem, FitControl(), cancel=cancel)
        original = tracker.value

        def value(theta):
            cancel.set()
            return original(theta)

        tracker.value = value
        with pytest.raises(FitCancelled):
            optimize_theta(tracker, np.ones(1), LOWER)

    def test_iteration_budget(self, problem):
        tracker = ObjectiveTracker(problem, FitControl(max_outer_iterations=1))
        res = optimize_theta(tracker, np.array([3.0]), LOWER)
        assert res.status == STATUS_MAX_ITERATIONS
        assert np.all(np.isfinite(res.theta))

    def test_time_budget(self, problem):
        control = FitControl(time_budget=1e-9)
        tracker = ObjectiveTracker(problem, control, deadline=Deadline(control.time_budget))
        res = optimize_theta(tracker, np.array([3.0]), LOWER)
        assert res.status == STATUS_MAX_ITERATIONS
        assert "time budget" in res.message
        assert tracker.best_theta is not None


class TestFitBudgets:
    """The same terminal states seen through fit()."""

    def test_fit_cancelled(self, random_intercept_data):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(FitCancelled):
            fit(random_intercept_data, SPEC, cancel=cancel)

    def test_fit_max_iterations(self, random_intercept_data):
        with pytest.warns(ConvergenceFailure):
            model = fit(random_intercept_data, SPEC, max_outer_iterations=1)
        assert model.status == STATUS_MAX_ITERATIONS
        assert not model.converged
        assert model.result.has_warning("without converging")
        # Best estimates are still reported
        assert np.all(np.isfinite(model.coefficients))
        assert "did not converge" in model.summary()

    def test_fit_time_budget(self, random_intercept_data):
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            model = fit(random_intercept_data, SPEC, time_budget=1e-9)
        assert model.status == STATUS_MAX_ITERATIONS
        assert "time budget" in model.info['optimizer_message']
