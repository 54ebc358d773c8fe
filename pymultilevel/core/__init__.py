"""
Core infrastructure for PyMultilevel.

This module provides shared abstractions and utilities used by the
regression and mixed-model subpackages.

Key components:
    datasource: Column container for tabular input
    result: Generic Result[P] envelope with a mandatory status
    exceptions: Exception and warning hierarchy
    validation: Input validators
    compute: Timing, tolerances, linear algebra primitives
"""

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.result import Result
from pymultilevel.core.exceptions import (
    PyMultilevelError,
    ValidationError,
    DimensionError,
    ConfigurationError,
    NumericalError,
    NotPositiveDefiniteError,
    UnseenLevelError,
    FitCancelled,
    PyMultilevelWarning,
    ConvergenceFailure,
    SingularFitWarning,
)

__all__ = [
    # Data
    "DataSource",
    # Result
    "Result",
    # Exceptions
    "PyMultilevelError",
    "ValidationError",
    "DimensionError",
    "ConfigurationError",
    "NumericalError",
    "NotPositiveDefiniteError",
    "UnseenLevelError",
    "FitCancelled",
    # Warnings
    "PyMultilevelWarning",
    "ConvergenceFailure",
    "SingularFitWarning",
]
