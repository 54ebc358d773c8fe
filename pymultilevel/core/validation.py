"""
Input validation utilities for PyMultilevel.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray
from typing import Any

from pymultilevel.core.exceptions import (
    ValidationError, DimensionError, ConfigurationError,
)
from pymultilevel.core.compute.linalg.qr import qr_cpu


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a float64 numpy array.

    Accepts numeric and boolean array-likes. Rejects inputs that result in
    object or string dtype (indicating labels or mixed data).

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray with float64 dtype

    Raises:
        ValidationError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        raise ValidationError(
            f"{name}: converted to object dtype, indicating mixed types or non-numeric data"
        )

    if result.dtype != np.bool_ and not np.issubdtype(result.dtype, np.number):
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    return result.astype(np.float64)


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Args:
        array: Array to check
        name: Parameter name for error messages

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_1d(array: NDArray, name: str) -> None:
    """
    Verify array is 1-dimensional.

    Raises:
        DimensionError: If array is not 1D
    """
    if array.ndim != 1:
        raise DimensionError(
            f"{name}: expected 1D array, got {array.ndim}D with shape {array.shape}"
        )


def check_consistent_length(
    *arrays: NDArray,
    names: tuple[str, ...]
) -> None:
    """
    Verify all arrays have the same length (first dimension).

    Args:
        *arrays: Arrays to check
        names: Parameter names for error messages (must match number of arrays)

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If arrays have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    if len(arrays) < 2:
        return

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_binary(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify a response vector holds only 0 and 1.

    Raises:
        ConfigurationError: If any value is not exactly 0 or 1
    """
    bad = ~np.isin(array, (0.0, 1.0))
    if np.any(bad):
        examples = np.unique(array[bad])[:5].tolist()
        raise ConfigurationError(
            f"{name}: binary response required (0/1), found values {examples}",
            column=name,
        )


def check_column_rank(X: NDArray[np.floating[Any]], name: str) -> int:
    """
    Verify matrix has full column rank.

    A rank-deficient fixed-effect design has no unique coefficient vector;
    this is a hard fit-time error rather than something resolved by
    dropping columns.

    Args:
        X: 2D array to check
        name: Parameter name for error messages

    Returns:
        The numerical rank (equal to the number of columns)

    Raises:
        ConfigurationError: If matrix is rank-deficient
    """
    n, p = X.shape
    if n < p:
        raise ConfigurationError(
            f"{name}: {p} columns but only {n} rows; cannot have full column rank",
            rank=n,
            expected_rank=p,
        )
    rank = qr_cpu(X).rank
    if rank < p:
        raise ConfigurationError(
            f"{name}: rank-deficient (rank={rank}, expected={p}). "
            f"This indicates perfect multicollinearity.",
            rank=rank,
            expected_rank=p,
        )
    return rank
