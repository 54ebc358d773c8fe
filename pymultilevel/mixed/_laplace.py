"""
Laplace approximation to the marginal log-likelihood.

For a given θ, the integral over the random effects is approximated by a
Gaussian centred at the PIRLS conditional mode û:

    log p(y | θ) ≈ ℓ(y | η̂) - ½‖û‖² - ½ log|L_θ|²

where η̂ = Xβ̂ + ZΛ_θû and L_θ is the Cholesky factor of Λ'Z'WZΛ + I at
the mode. The outer optimizer minimizes

    d(θ) = -2 log p(y | θ) = -2 ℓ(y | η̂) + ‖û‖² + log|L_θ|²

ℓ uses the stable form Σ [y η - log(1 + e^η)], so no probability is
ever rounded to exactly 0 or 1. The fixed effects are set to their joint
conditional mode with û (lme4's nAGQ=0 style profiling), which keeps the
outer problem in θ alone.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48. Section 5.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable
import numpy as np
from numpy.typing import NDArray

from pymultilevel.mixed._random_effects import RandomEffectSpec, lambda_diagonal
from pymultilevel.mixed._pirls import solve_pirls, PIRLSResult


@dataclass(frozen=True)
class LaplaceProblem:
    """Everything the Laplace objective needs besides θ."""
    X: NDArray
    Z: NDArray
    y: NDArray
    specs: tuple[RandomEffectSpec, ...]
    family: object
    beta_start: NDArray
    inner_tolerance: float = 1e-10
    max_inner_iterations: int = 50
    max_retries: int = 3

    @property
    def n_theta(self) -> int:
        return len(self.specs)


@dataclass(frozen=True)
class LaplaceEvaluation:
    """Laplace objective at one θ.

    Attributes:
        theta: The evaluated θ.
        lam: Diagonal of Λ_θ.
        objective: d(θ) = -2 × approximate marginal log-likelihood.
        log_likelihood: Approximate marginal log-likelihood.
        conditional_log_likelihood: ℓ(y | η̂).
        penalty: ‖û‖².
        log_det: log|L_θ|².
        pirls: The inner-loop result at θ.
    """
    theta: NDArray
    lam: NDArray
    objective: float
    log_likelihood: float
    conditional_log_likelihood: float
    penalty: float
    log_det: float
    pirls: PIRLSResult


def laplace_evaluate(theta: NDArray, problem: LaplaceProblem) -> LaplaceEvaluation:
    """Run PIRLS at θ and assemble the Laplace objective.

    Raises:
        NotPositiveDefiniteError: If PIRLS cannot produce any iterate.
    """
    theta = np.asarray(theta, dtype=np.float64)
    lam = lambda_diagonal(theta, list(problem.specs))

    pirls = solve_pirls(
        problem.X, problem.Z, problem.y, lam, problem.family,
        problem.beta_start,
        tol=problem.inner_tolerance,
        max_iter=problem.max_inner_iterations,
        max_retries=problem.max_retries,
    )

    cond_ll = pirls.log_likelihood
    penalty = float(pirls.pls.u @ pirls.pls.u)
    log_det = pirls.pls.log_det_L
    log_lik = cond_ll - 0.5 * penalty - 0.5 * log_det

    return LaplaceEvaluation(
        theta=theta.copy(),
        lam=lam,
        objective=-2.0 * log_lik,
        log_likelihood=log_lik,
        conditional_log_likelihood=cond_ll,
        penalty=penalty,
        log_det=log_det,
        pirls=pirls,
    )


def laplace_objective(theta: NDArray, problem: LaplaceProblem) -> float:
    return laplace_evaluate(theta, problem).objective


def laplace_gradient(
    theta: NDArray,
    objective: Callable[[NDArray], float],
    f0: float | None = None,
    step: float = 1e-5,
) -> NDArray:
    """Central finite-difference gradient of d(θ).

    d depends on θ only through Λ'Z'WZΛ = Σ θ_k² (...), so it is even in
    each θ_k and the central difference at θ_k = 0 is well defined
    (and equals zero). When one side of a difference fails to evaluate
    (returns +inf) the one-sided difference from f0 is used instead.
    """
    theta = np.asarray(theta, dtype=np.float64)
    if f0 is None:
        f0 = objective(theta)
    grad = np.zeros_like(theta)
    for k in range(theta.shape[0]):
        h = step * max(1.0, abs(theta[k]))
        up = theta.copy()
        down = theta.copy()
        up[k] += h
        down[k] -= h
        f_up = objective(up)
        f_down = objective(down)
        if np.isfinite(f_up) and np.isfinite(f_down):
            grad[k] = (f_up - f_down) / (2.0 * h)
        elif np.isfinite(f_up):
            grad[k] = (f_up - f0) / h
        elif np.isfinite(f_down):
            grad[k] = (f0 - f_down) / h
    return grad
