"""
Outer optimization of the variance-component parameters θ.

The Laplace objective d(θ) is minimized with L-BFGS-B under θ ≥ 0, using
central finite-difference gradients. If L-BFGS-B terminates abnormally
(typically a line search that cannot make progress near the boundary)
the search continues with Nelder-Mead on the unconstrained
parameterization θ = |φ|, starting from the best point seen so far.

Both the iteration budget and an optional wall-clock budget are checked
at outer-iteration boundaries, as is the cancellation token. An exhausted
budget is a normal terminal state (status 'max_iterations_exceeded'); a
cancellation raises FitCancelled.

An objective evaluation whose factorization fails returns +inf so the
optimizer backs away from that region; the failures are counted and
reported.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from pymultilevel.core.exceptions import NotPositiveDefiniteError, FitCancelled
from pymultilevel.core.result import STATUS_CONVERGED, STATUS_MAX_ITERATIONS
from pymultilevel.core.compute.timing import Deadline
from pymultilevel.mixed.control import FitControl
from pymultilevel.mixed._laplace import (
    LaplaceProblem, laplace_objective, laplace_gradient,
)

logger = logging.getLogger(__name__)

# L-BFGS-B task status for "abnormal termination in line search"
_LBFGSB_ABNORMAL = 2


@dataclass(frozen=True)
class OptimizerResult:
    """Outcome of the outer optimization.

    Attributes:
        theta: Best θ found (all entries ≥ 0).
        objective: d(θ) at theta.
        status: 'converged' or 'max_iterations_exceeded'.
        method: Optimizer that produced theta.
        n_iter: Outer iterations across all methods.
        n_evaluations: Objective evaluations (gradient evaluations included).
        n_failures: Evaluations that failed to factorize.
        fallback_used: Nelder-Mead took over from L-BFGS-B.
        message: Terminal message of the last method.
    """
    theta: NDArray
    objective: float
    status: str
    method: str
    n_iter: int
    n_evaluations: int
    n_failures: int
    fallback_used: bool
    message: str


class _BudgetExhausted(Exception):
    """Wall-clock budget ran out at an iteration boundary."""


class ObjectiveTracker:
    """Wraps d(θ) with evaluation bookkeeping and boundary checks."""

    def __init__(
        self,
        problem: LaplaceProblem,
        control: FitControl,
        cancel: threading.Event | None = None,
        deadline: Deadline | None = None,
    ):
        self.problem = problem
        self.control = control
        self.cancel = cancel
        self.deadline = deadline or Deadline(None)
        self.n_iter = 0
        self.n_evaluations = 0
        self.n_failures = 0
        self.last_failure: str | None = None
        self.best_theta: NDArray | None = None
        self.best_value = np.inf

    def value(self, theta: NDArray) -> float:
        theta = np.asarray(theta, dtype=np.float64)
        self.n_evaluations += 1
        try:
            f = laplace_objective(theta, self.problem)
        except NotPositiveDefiniteError as exc:
            self.n_failures += 1
            self.last_failure = str(exc)
            logger.debug("objective failed at theta=%s: %s", theta, exc)
            return np.inf
        if f < self.best_value:
            self.best_value = f
            self.best_theta = np.abs(theta)
        return f

    def value_and_grad(self, theta: NDArray) -> tuple[float, NDArray]:
        theta = np.asarray(theta, dtype=np.float64)
        f = self.value(theta)
        if not np.isfinite(f):
            return f, np.zeros_like(theta)
        return f, laplace_gradient(theta, self.value, f0=f,
                                   step=self.control.gradient_step)

    def check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise FitCancelled(
                f"Fit cancelled after {self.n_iter} outer iterations",
                iterations=self.n_iter,
            )

    def check_boundary(self) -> None:
        self.check_cancelled()
        if self.deadline.expired:
            raise _BudgetExhausted()

    def callback(self, xk) -> None:
        self.n_iter += 1
        logger.debug("outer iter %d: theta=%s best=%.8f",
                     self.n_iter, np.asarray(xk), self.best_value)
        self.check_boundary()


def optimize_theta(
    tracker: ObjectiveTracker,
    theta0: NDArray,
    lower: NDArray,
) -> OptimizerResult:
    """Minimize the Laplace objective over θ subject to θ ≥ lower.

    Nelder-Mead works on an unconstrained φ reflected about the bound,
    θ = lower + |φ - lower|.

    Raises:
        FitCancelled: If the cancellation token is set at a boundary.
        NotPositiveDefiniteError: If no θ could be evaluated at all.
    """
    control = tracker.control
    method = control.optimizer
    fallback_used = False
    status = STATUS_MAX_ITERATIONS
    message = ''

    tracker.check_cancelled()

    try:
        if method == 'L-BFGS-B':
            res = minimize(
                tracker.value_and_grad,
                theta0,
                jac=True,
                method='L-BFGS-B',
                bounds=[(lb, None) for lb in lower],
                callback=tracker.callback,
                options={
                    'maxiter': control.max_outer_iterations,
                    'ftol': control.optimizer_tolerance,
                    'gtol': control.optimizer_tolerance * 10,
                },
            )
            message = str(res.message)
            logger.debug("L-BFGS-B finished: status=%s nit=%s message=%s",
                         res.status, res.nit, message)
            if res.status == 0:
                status = STATUS_CONVERGED
            elif res.status == _LBFGSB_ABNORMAL or not np.isfinite(res.fun):
                fallback_used = True
                method = 'Nelder-Mead'

        if method == 'Nelder-Mead':
            remaining = control.max_outer_iterations - tracker.n_iter
            if remaining <= 0:
                message = 'outer iteration budget exhausted before fallback'
            else:
                start = tracker.best_theta if tracker.best_theta is not None else theta0
                scale = abs(tracker.best_value) if np.isfinite(tracker.best_value) else 1.0
                res = minimize(
                    lambda phi: tracker.value(lower + np.abs(phi - lower)),
                    start,
                    method='Nelder-Mead',
                    callback=tracker.callback,
                    options={
                        'maxiter': remaining,
                        'xatol': np.sqrt(control.optimizer_tolerance),
                        'fatol': control.optimizer_tolerance * max(1.0, scale),
                    },
                )
                message = str(res.message)
                logger.debug("Nelder-Mead finished: status=%s nit=%s message=%s",
                             res.status, res.nit, message)
                status = STATUS_CONVERGED if res.status == 0 else STATUS_MAX_ITERATIONS
    except _BudgetExhausted:
        status = STATUS_MAX_ITERATIONS
        message = f'time budget of {control.time_budget}s exhausted'
        logger.debug("outer loop stopped: %s", message)

    if tracker.best_theta is None:
        raise NotPositiveDefiniteError(
            f"Laplace objective could not be evaluated at any θ: "
            f"{tracker.last_failure}",
            matrix_name="Lambda'Z'WZLambda + I",
        )

    return OptimizerResult(
        theta=tracker.best_theta.copy(),
        objective=float(tracker.best_value),
        status=status,
        method=method,
        n_iter=tracker.n_iter,
        n_evaluations=tracker.n_evaluations,
        n_failures=tracker.n_failures,
        fallback_used=fallback_used,
        message=message,
    )
