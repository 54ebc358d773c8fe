"""
PyMultilevel: hierarchical logistic regression for Python.

Fits Bernoulli-logit models with random intercepts for nested and/or
crossed grouping factors by Laplace approximation, reports variance
components and intraclass correlations, and predicts or simulates
outcomes for new rows.

Submodules:
    mixed: Hierarchical logistic models (fit, predict, simulate)
    regression: Ordinary logistic regression (starting values, reference fits)
    core: Data sources, result envelope, exceptions, numerical utilities

Example:
    >>> import pymultilevel as pml
    >>> spec = pml.ModelSpec.nested('passed', [pml.Numeric('hours')],
    ...                             'school', 'class')
    >>> model = pml.fit(df, spec)
    >>> print(model.summary())
"""

__version__ = "0.1.0"

from pymultilevel.core import (
    DataSource,
    Result,
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
from pymultilevel.mixed import (
    ModelSpec,
    Numeric,
    Boolean,
    Categorical,
    GroupingFactor,
    FitControl,
    fit,
    FittedModel,
    predict,
    simulate,
    Prediction,
    Simulation,
)
from pymultilevel.regression import logistic_fit
from pymultilevel import mixed
from pymultilevel import regression

__all__ = [
    "__version__",
    "mixed",
    "regression",
    "DataSource",
    "Result",
    "ModelSpec",
    "Numeric",
    "Boolean",
    "Categorical",
    "GroupingFactor",
    "FitControl",
    "fit",
    "FittedModel",
    "predict",
    "simulate",
    "Prediction",
    "Simulation",
    "logistic_fit",
    "PyMultilevelError",
    "ValidationError",
    "DimensionError",
    "ConfigurationError",
    "NumericalError",
    "NotPositiveDefiniteError",
    "UnseenLevelError",
    "FitCancelled",
    "PyMultilevelWarning",
    "ConvergenceFailure",
    "SingularFitWarning",
]
