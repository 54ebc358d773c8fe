"""
Solver dispatch for ordinary logistic regression.

This module provides the logistic_fit() function (public API).
"""

import numpy as np
from numpy.typing import ArrayLike

from pymultilevel.core.validation import (
    check_array, check_finite, check_1d, check_consistent_length,
    check_binary, check_column_rank,
)
from pymultilevel.regression.families import Binomial
from pymultilevel.regression.solution import LogisticSolution
from pymultilevel.regression.backends.cpu_glm import CPUIRLSBackend


def logistic_fit(
    X: ArrayLike,
    y: ArrayLike,
    *,
    tol: float = 1e-8,
    max_iter: int = 25,
) -> LogisticSolution:
    """
    Fit an ordinary (single-level) logistic regression by IRLS.

    Args:
        X: Design matrix (n x p), including an intercept column if desired.
        y: Binary response vector (n,).
        tol: Relative deviance tolerance. Default 1e-8 (R's glm.control).
        max_iter: Maximum IRLS iterations. Default 25.

    Returns:
        LogisticSolution with coefficients, standard errors and deviance

    Raises:
        ValidationError: If inputs are invalid
        ConfigurationError: If y is not binary or X is rank-deficient

    Example:
        >>> X = np.column_stack([np.ones(100), x])
        >>> result = logistic_fit(X, y)
        >>> result.coefficients
    """
    # This is the boundary - validate here, trust everywhere else
    X_arr = check_array(X, 'X')
    y_arr = check_array(y, 'y')
    if X_arr.ndim == 1:
        X_arr = X_arr.reshape(-1, 1)
    if y_arr.ndim == 2 and y_arr.shape[1] == 1:
        y_arr = y_arr.ravel()
    check_1d(y_arr, 'y')
    check_consistent_length(X_arr, y_arr, names=('X', 'y'))
    check_finite(X_arr, 'X')
    check_finite(y_arr, 'y')
    check_binary(y_arr, 'y')
    check_column_rank(X_arr, 'X')

    result = CPUIRLSBackend().solve(
        X_arr, y_arr, Binomial(), tol=tol, max_iter=max_iter
    )
    return LogisticSolution(_result=result)
