"""
Ordinary (single-level) logistic regression.

Public API:
    logistic_fit(X, y, ...) -> LogisticSolution

Used by the mixed-model engine for PIRLS starting values, and as the
reference fit for a mixed model whose variance components are all zero.

Example:
    >>> from pymultilevel.regression import logistic_fit
    >>> result = logistic_fit(X, y)
    >>> print(result.coefficients)
"""

from pymultilevel.regression.families import Binomial, LogitLink
from pymultilevel.regression.solution import LogisticSolution, LogisticParams
from pymultilevel.regression.solvers import logistic_fit

__all__ = [
    "logistic_fit",
    "Binomial",
    "LogitLink",
    "LogisticSolution",
    "LogisticParams",
]
