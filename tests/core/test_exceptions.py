"""
Tests for the PyMultilevel exception and warning hierarchy.

Validates:
    - Inheritance chain (all exceptions catchable via PyMultilevelError)
    - Diagnostic attributes on ConfigurationError, NotPositiveDefiniteError,
      UnseenLevelError, FitCancelled
    - Warnings are UserWarning subclasses, not exceptions
"""

import warnings

import pytest

from pymultilevel.core.exceptions import (
    ConfigurationError,
    ConvergenceFailure,
    DimensionError,
    FitCancelled,
    NotPositiveDefiniteError,
    NumericalError,
    PyMultilevelError,
    PyMultilevelWarning,
    SingularFitWarning,
    UnseenLevelError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Inheritance hierarchy
# ═══════════════════════════════════════════════════════════════════════


class TestInheritance:
    """Every exception is catchable via PyMultilevelError."""

    def test_validation_error_is_base_error(self):
        with pytest.raises(PyMultilevelError):
            raise ValidationError("bad input")

    def test_dimension_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            raise DimensionError("wrong shape")

    def test_configuration_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            raise ConfigurationError("bad spec")

    def test_not_positive_definite_is_numerical_error(self):
        with pytest.raises(NumericalError):
            raise NotPositiveDefiniteError("not PD")

    def test_unseen_level_error_is_base_error(self):
        with pytest.raises(PyMultilevelError):
            raise UnseenLevelError("unseen", factor="school", levels=("s9",))

    def test_fit_cancelled_is_base_error(self):
        with pytest.raises(PyMultilevelError):
            raise FitCancelled("cancelled", iterations=3)

    def test_unseen_level_error_is_not_validation_error(self):
        err = UnseenLevelError("unseen", factor="school", levels=())
        assert not isinstance(err, ValidationError)


# ═══════════════════════════════════════════════════════════════════════
# Diagnostic attributes
# ═══════════════════════════════════════════════════════════════════════


class TestConfigurationError:
    """ConfigurationError carries column and rank diagnostics."""

    def test_all_attributes(self):
        err = ConfigurationError(
            "rank-deficient", column="x", rank=2, expected_rank=3,
        )
        assert str(err) == "rank-deficient"
        assert err.column == "x"
        assert err.rank == 2
        assert err.expected_rank == 3

    def test_defaults_are_none(self):
        err = ConfigurationError("bad")
        assert err.column is None
        assert err.rank is None
        assert err.expected_rank is None


class TestNotPositiveDefiniteError:
    """NotPositiveDefiniteError carries matrix diagnostic attributes."""

    def test_all_attributes(self):
        err = NotPositiveDefiniteError(
            "Cholesky failed",
            matrix_name="RX",
            min_eigenvalue=-0.001,
        )
        assert str(err) == "Cholesky failed"
        assert err.matrix_name == "RX"
        assert err.min_eigenvalue == -0.001

    def test_defaults_are_none(self):
        err = NotPositiveDefiniteError("not PD")
        assert err.matrix_name is None
        assert err.min_eigenvalue is None


class TestRequestScopedErrors:

    def test_unseen_level_attributes(self):
        with pytest.raises(UnseenLevelError) as exc_info:
            raise UnseenLevelError("unseen", factor="class", levels=("s1/c9",))
        assert exc_info.value.factor == "class"
        assert exc_info.value.levels == ("s1/c9",)

    def test_fit_cancelled_iterations(self):
        err = FitCancelled("stopped", iterations=7)
        assert err.iterations == 7
        assert "stopped" in str(err)


# ═══════════════════════════════════════════════════════════════════════
# Warnings
# ═══════════════════════════════════════════════════════════════════════


class TestWarnings:
    """Non-fatal conditions are warnings, not exceptions."""

    @pytest.mark.parametrize("cls", [ConvergenceFailure, SingularFitWarning])
    def test_is_user_warning(self, cls):
        assert issubclass(cls, PyMultilevelWarning)
        assert issubclass(cls, UserWarning)
        assert not issubclass(cls, PyMultilevelError)

    def test_can_be_filtered(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            warnings.warn("boundary", SingularFitWarning)
        assert len(caught) == 1
        assert issubclass(caught[0].category, SingularFitWarning)
