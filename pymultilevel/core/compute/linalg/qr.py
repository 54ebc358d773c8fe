"""
QR decomposition helpers.

Used by the fixed-effect design builder to establish the numerical rank of
X and by ordinary logistic regression for its weighted least-squares steps.
"""

from dataclasses import dataclass
from typing import Literal, Any
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve_triangular

from pymultilevel.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class QRResult:
    """
    Result of QR decomposition.

    Attributes:
        Q: Orthogonal matrix (n x k where k = min(n, p) for reduced mode)
        R: Upper triangular matrix (k x p)
        rank: Numerical rank determined from R diagonal
    """
    Q: NDArray[np.floating[Any]]
    R: NDArray[np.floating[Any]]
    rank: int


def qr_cpu(
    X: NDArray[np.floating[Any]],
    mode: Literal['reduced', 'complete'] = 'reduced'
) -> QRResult:
    """
    QR decomposition using LAPACK (via NumPy).

    Computes X = QR where Q is orthogonal and R is upper triangular.

    Args:
        X: Matrix to decompose (n x p)
        mode: 'reduced' for economy QR (Q is n x k, R is k x p where k = min(n,p))
              'complete' for full QR (Q is n x n, R is n x p)

    Returns:
        QRResult with Q, R, and numerical rank
    """
    Q, R = np.linalg.qr(X, mode=mode)

    # Numerical rank from the R diagonal, relative to its largest entry
    diag_R = np.abs(np.diag(R))
    if len(diag_R) > 0 and diag_R.max() > 0:
        tol = max(X.shape) * np.finfo(X.dtype).eps * diag_R.max()
        rank = int(np.sum(diag_R > tol))
    else:
        rank = 0

    return QRResult(Q=Q, R=R, rank=rank)


def qr_solve(
    X: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
) -> tuple[NDArray[np.floating[Any]], QRResult]:
    """
    Solve least squares via QR decomposition.

    Solves: min_β ||y - Xβ||² via X = QR, β = R⁻¹ Q'y.

    Args:
        X: Design matrix (n x p), must have n >= p
        y: Response vector (n,)

    Returns:
        Tuple of (coefficient vector β (p,), QRResult)

    Raises:
        ConfigurationError: If X is rank-deficient
    """
    p = X.shape[1]
    qr_result = qr_cpu(X, mode='reduced')

    if qr_result.rank < p:
        raise ConfigurationError(
            f"Design matrix is rank-deficient: rank={qr_result.rank}, expected={p}. "
            f"This indicates perfect multicollinearity.",
            rank=qr_result.rank,
            expected_rank=p,
        )

    Qty = qr_result.Q.T @ y
    beta = solve_triangular(qr_result.R[:p, :p], Qty[:p], lower=False)

    return beta, qr_result
