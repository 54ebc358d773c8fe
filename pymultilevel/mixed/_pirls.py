"""
Penalized Iteratively Reweighted Least Squares (PIRLS) for the Bernoulli-logit GLMM.

For a given θ (hence Λ_θ), PIRLS finds the joint conditional mode of the
fixed effects β and spherical random effects u by minimizing the
penalized deviance

    -2 ℓ(y | η) + ‖u‖²,    η = Xβ + ZΛu

through a sequence of penalized weighted least squares problems. A step
that increases the penalized deviance is halved back toward the previous
iterate.

This is the inner loop of the fit. The outer loop optimizes θ against the
Laplace objective assembled from this result.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), Section 3.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging

import numpy as np
from numpy.typing import NDArray

from pymultilevel.core.exceptions import NotPositiveDefiniteError
from pymultilevel.mixed._pls import solve_pls, PLSResult

logger = logging.getLogger(__name__)

MAX_STEP_HALVINGS = 10
RETRY_INTERCEPT_STEP = 0.25


@dataclass(frozen=True)
class PIRLSResult:
    """Result from the PIRLS inner loop.

    Attributes:
        pls: The final PWLS result (beta, u, b, L, RX).
        mu: Fitted probabilities (n,).
        eta: Linear predictor Xβ + Zb (n,).
        penalized_deviance: -2 ℓ(y | η) + ‖u‖².
        log_likelihood: Conditional log-likelihood ℓ(y | η).
        converged: Whether the tolerance was met.
        n_iter: PIRLS iterations of the final attempt.
        n_retries: Restarts from a damped starting point.
        broke_down: A factorization failed after at least one good iterate;
            the result holds the last good iterate.
    """
    pls: PLSResult
    mu: NDArray
    eta: NDArray
    penalized_deviance: float
    log_likelihood: float
    converged: bool
    n_iter: int
    n_retries: int = 0
    broke_down: bool = False


def solve_pirls(
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    lam: NDArray,
    family,  # regression.families.Family
    beta_start: NDArray,
    tol: float = 1e-10,
    max_iter: int = 50,
    max_retries: int = 3,
) -> PIRLSResult:
    """Penalized IRLS (inner loop) with restart on factorization failure.

    Every attempt starts from u = 0 and a β from _attempt_start, so the
    objective is a deterministic function of θ for a fixed beta_start.

    Args:
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, q).
        y: Binary response (n,).
        lam: Diagonal of Λ_θ (q,).
        family: GLM family with link, variance and log_likelihood.
        beta_start: Starting fixed effects, usually the ordinary logistic fit.
        tol: Relative tolerance on the penalized deviance change.
        max_iter: PIRLS iterations per attempt.
        max_retries: Extra attempts after a factorization failure.

    Returns:
        PIRLSResult. If every attempt broke down the last good iterate is
        returned with converged=False.

    Raises:
        NotPositiveDefiniteError: If no attempt produced a single iterate.
    """
    last_failure: NotPositiveDefiniteError | None = None
    fallback: PIRLSResult | None = None

    for attempt in range(max_retries + 1):
        start = _attempt_start(beta_start, attempt)
        try:
            result = _iterate(X, Z, y, lam, family, start, tol, max_iter)
        except NotPositiveDefiniteError as exc:
            last_failure = exc
            logger.debug("PIRLS attempt %d failed: %s", attempt, exc)
            continue

        result = replace(result, n_retries=attempt)
        if not result.broke_down:
            return result
        fallback = result
        logger.debug("PIRLS attempt %d broke down after %d iterations",
                     attempt, result.n_iter)

    if fallback is not None:
        return fallback
    raise last_failure


def _attempt_start(beta_start: NDArray, attempt: int) -> NDArray:
    """β start for a PIRLS attempt: β · 2^-attempt with the intercept offset
    by ±RETRY_INTERCEPT_STEP · attempt, alternating in sign.

    The offset keeps retries distinct when beta_start is all zeros.
    """
    start = np.asarray(beta_start, dtype=np.float64) * (0.5 ** attempt)
    if attempt and start.shape[0]:
        start[0] += (-1) ** attempt * RETRY_INTERCEPT_STEP * attempt
    return start


def _penalized_deviance(family, y: NDArray, eta: NDArray, u: NDArray) -> float:
    return -2.0 * family.log_likelihood(y, eta) + float(u @ u)


def _iterate(X, Z, y, lam, family, beta_start, tol, max_iter) -> PIRLSResult:
    link = family.link
    q = Z.shape[1]

    beta_old = np.asarray(beta_start, dtype=np.float64)
    u_old = np.zeros(q, dtype=np.float64)
    eta = X @ beta_old
    mu = link.linkinv(eta)
    pdev_old = _penalized_deviance(family, y, eta, u_old)

    best: PLSResult | None = None
    converged = False
    broke_down = False
    iteration = 0

    for iteration in range(1, max_iter + 1):
        mu_eta_val = link.mu_eta(eta)
        z = eta + (y - mu) / mu_eta_val
        w = np.maximum((mu_eta_val ** 2) / family.variance(mu), 1e-10)

        try:
            pls = solve_pls(X, Z, z, lam, w)
        except NotPositiveDefiniteError:
            if best is None:
                raise
            broke_down = True
            iteration -= 1
            break

        pdev = _penalized_deviance(family, y, pls.eta, pls.u)

        n_halvings = 0
        while not pdev <= pdev_old and n_halvings < MAX_STEP_HALVINGS:
            beta_h = 0.5 * (pls.beta + beta_old)
            u_h = 0.5 * (pls.u + u_old)
            b_h = lam * u_h
            pls = replace(pls, beta=beta_h, u=u_h, b=b_h, eta=X @ beta_h + Z @ b_h)
            pdev = _penalized_deviance(family, y, pls.eta, pls.u)
            n_halvings += 1

        best = pls
        eta = pls.eta
        mu = link.linkinv(eta)

        change = abs(pdev - pdev_old) / (abs(pdev) + 0.1)
        beta_old, u_old, pdev_old = pls.beta, pls.u, pdev
        if change < tol:
            converged = True
            break

    if best is None:
        raise NotPositiveDefiniteError("PIRLS produced no iterate")

    return PIRLSResult(
        pls=best,
        mu=mu,
        eta=eta,
        penalized_deviance=pdev_old,
        log_likelihood=family.log_likelihood(y, eta),
        converged=converged,
        n_iter=iteration,
        broke_down=broke_down,
    )
