"""
Tests for input validation utilities.

Validates every function in core/validation.py:
    - check_array: conversion, dtype coercion, object rejection
    - check_finite: NaN/Inf detection
    - check_1d: dimensionality check
    - check_consistent_length: multi-array length matching
    - check_binary: 0/1 response check
    - check_column_rank: rank deficiency detection
"""

import numpy as np
import pytest

from pymultilevel.core.exceptions import (
    ConfigurationError, DimensionError, ValidationError,
)
from pymultilevel.core.validation import (
    check_1d,
    check_array,
    check_binary,
    check_column_rank,
    check_consistent_length,
    check_finite,
)


# ═══════════════════════════════════════════════════════════════════════
# check_array
# ═══════════════════════════════════════════════════════════════════════


class TestCheckArray:
    """check_array converts to float64 and rejects non-numeric data."""

    def test_list_to_float_array(self):
        result = check_array([1, 2, 3], "X")
        assert result.dtype == np.float64
        np.testing.assert_array_equal(result, [1.0, 2.0, 3.0])

    def test_bool_accepted(self):
        result = check_array(np.array([True, False, True]), "flag")
        np.testing.assert_array_equal(result, [1.0, 0.0, 1.0])

    def test_rejects_mixed_types(self):
        with pytest.raises(ValidationError, match="object dtype"):
            check_array(np.array([1, "a"], dtype=object), "X")

    def test_rejects_homogeneous_strings(self):
        with pytest.raises(ValidationError, match="non-numeric"):
            check_array(np.array(["a", "b"]), "school")

    def test_error_message_includes_name(self):
        with pytest.raises(ValidationError, match="my_column"):
            check_array(np.array(["a"]), "my_column")


# ═══════════════════════════════════════════════════════════════════════
# check_finite / check_1d / check_consistent_length
# ═══════════════════════════════════════════════════════════════════════


class TestCheckFinite:

    def test_finite_passes(self):
        check_finite(np.array([1.0, 2.0]), "x")

    def test_nan_rejected(self):
        with pytest.raises(ValidationError, match="1 NaN"):
            check_finite(np.array([1.0, np.nan]), "x")

    def test_inf_rejected(self):
        with pytest.raises(ValidationError, match="1 Inf"):
            check_finite(np.array([np.inf, 2.0]), "x")


class TestCheckShape:

    def test_check_1d_passes(self):
        check_1d(np.zeros(3), "y")

    def test_check_1d_rejects_2d(self):
        with pytest.raises(DimensionError, match="expected 1D"):
            check_1d(np.zeros((3, 2)), "y")

    def test_consistent_length_passes(self):
        check_consistent_length(np.zeros(4), np.zeros((4, 2)), names=("y", "X"))

    def test_inconsistent_length_raises(self):
        with pytest.raises(DimensionError, match="y=4, X=5"):
            check_consistent_length(np.zeros(4), np.zeros((5, 2)), names=("y", "X"))

    def test_wrong_number_of_names(self):
        with pytest.raises(ValueError):
            check_consistent_length(np.zeros(4), names=("a", "b"))


# ═══════════════════════════════════════════════════════════════════════
# check_binary
# ═══════════════════════════════════════════════════════════════════════


class TestCheckBinary:

    def test_zero_one_passes(self):
        check_binary(np.array([0.0, 1.0, 1.0, 0.0]), "y")

    def test_all_zero_passes(self):
        check_binary(np.zeros(5), "y")

    def test_other_values_rejected(self):
        with pytest.raises(ConfigurationError, match="binary") as exc_info:
            check_binary(np.array([0.0, 1.0, 2.0, 0.5]), "y")
        assert exc_info.value.column == "y"
        assert "2.0" in str(exc_info.value)


# ═══════════════════════════════════════════════════════════════════════
# check_column_rank
# ═══════════════════════════════════════════════════════════════════════


class TestCheckColumnRank:

    def test_full_rank_returns_rank(self, rng):
        X = np.column_stack([np.ones(20), rng.standard_normal(20)])
        assert check_column_rank(X, "X") == 2

    def test_collinear_raises(self, collinear_data):
        X, _ = collinear_data
        with pytest.raises(ConfigurationError, match="rank-deficient") as exc_info:
            check_column_rank(X, "X")
        assert exc_info.value.rank == 3
        assert exc_info.value.expected_rank == 4

    def test_more_columns_than_rows(self):
        with pytest.raises(ConfigurationError, match="only 2 rows"):
            check_column_rank(np.ones((2, 3)), "X")
