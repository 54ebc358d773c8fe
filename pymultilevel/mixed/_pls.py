"""
Penalized weighted least squares (PWLS) step of PIRLS.

For fixed θ and working weights W, one PIRLS step solves

    minimize ‖W^½ (z - Xβ - ZΛu)‖² + ‖u‖²

for the fixed effects β and the spherical random effects u, where z is
the working response. Λ is diagonal for random-intercept models, so it is
carried as a vector.

The solve follows lme4's block elimination:

    L L'   = Λ'Z'WZΛ + I                  (always positive definite)
    L CX   = Λ'Z'WX
    RX RX' = X'WX - CX'CX                  (Schur complement, lower RX)

L and RX are kept: log|L|² enters the Laplace objective and RX gives the
covariance of β̂.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48. Section 3.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pymultilevel.core.exceptions import NotPositiveDefiniteError


@dataclass(frozen=True)
class PLSResult:
    """Result of one penalized weighted least squares solve.

    Attributes:
        beta: Fixed effects (p,).
        u: Spherical random effects (q,).
        b: Random effects on the logit scale, b = Λu (q,).
        L: Lower Cholesky factor of Λ'Z'WZΛ + I, shape (q, q).
        RX: Lower Cholesky factor of the fixed-effect Schur complement (p, p).
        eta: Linear predictor Xβ + Zb (n,).
    """
    beta: NDArray
    u: NDArray
    b: NDArray
    L: NDArray
    RX: NDArray
    eta: NDArray

    @property
    def log_det_L(self) -> float:
        """log|L|² = 2 Σ log diag(L)."""
        return 2.0 * float(np.sum(np.log(np.diag(self.L))))


def solve_pls(
    X: NDArray,
    Z: NDArray,
    z: NDArray,
    lam: NDArray,
    weights: NDArray,
) -> PLSResult:
    """Solve the penalized weighted least squares problem.

    Args:
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, q).
        z: Working response (n,).
        lam: Diagonal of Λ_θ (q,).
        weights: Working weights (n,), strictly positive.

    Returns:
        PLSResult.

    Raises:
        NotPositiveDefiniteError: If either factorization breaks down
            (non-finite weights, or a numerically singular Schur complement).
    """
    q = Z.shape[1]

    sqrt_w = np.sqrt(weights)
    Xw = X * sqrt_w[:, np.newaxis]
    ZLam = Z * (sqrt_w[:, np.newaxis] * lam[np.newaxis, :])
    zw = z * sqrt_w

    if not (np.all(np.isfinite(Xw)) and np.all(np.isfinite(ZLam))
            and np.all(np.isfinite(zw))):
        raise NotPositiveDefiniteError(
            "Non-finite working weights or response in PWLS step",
            matrix_name="Lambda'Z'WZLambda + I",
        )

    try:
        L = np.linalg.cholesky(ZLam.T @ ZLam + np.eye(q))
    except np.linalg.LinAlgError as e:
        raise NotPositiveDefiniteError(
            f"Cholesky of Lambda'Z'WZLambda + I failed: {e}",
            matrix_name="Lambda'Z'WZLambda + I",
        ) from e

    cu = sla.solve_triangular(L, ZLam.T @ zw, lower=True)
    CX = sla.solve_triangular(L, ZLam.T @ Xw, lower=True)

    schur = Xw.T @ Xw - CX.T @ CX
    try:
        RX = np.linalg.cholesky(schur)
    except np.linalg.LinAlgError as e:
        raise NotPositiveDefiniteError(
            f"Cholesky of the fixed-effect Schur complement failed: {e}",
            matrix_name='RX',
            min_eigenvalue=float(np.linalg.eigvalsh(schur)[0]),
        ) from e

    tmp = sla.solve_triangular(RX, Xw.T @ zw - CX.T @ cu, lower=True)
    beta = sla.solve_triangular(RX.T, tmp, lower=False)

    # L' u = cu - CX β
    u = sla.solve_triangular(L.T, cu - CX @ beta, lower=False)
    b = lam * u

    return PLSResult(
        beta=beta,
        u=u,
        b=b,
        L=L,
        RX=RX,
        eta=X @ beta + Z @ b,
    )


def fixed_effect_vcov(RX: NDArray) -> NDArray:
    """Var(β̂) = (RX RX')⁻¹ for lower-triangular RX."""
    p = RX.shape[0]
    RX_inv = sla.solve_triangular(RX, np.eye(p), lower=True)
    return RX_inv.T @ RX_inv


def conditional_variances(L: NDArray, lam: NDArray) -> NDArray:
    """Diagonal of Var(b | y) ≈ Λ (L L')⁻¹ Λ at the conditional mode."""
    q = L.shape[0]
    L_inv = sla.solve_triangular(L, np.eye(q), lower=True)
    return lam ** 2 * np.sum(L_inv ** 2, axis=0)
