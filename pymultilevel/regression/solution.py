"""
Logistic regression solution types.

Contains the parameter payload and user-facing solution wrapper.
"""

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import NDArray

from pymultilevel.core.result import Result


@dataclass(frozen=True)
class LogisticParams:
    """
    Parameter payload for ordinary logistic regression.

    This is the immutable data computed by the IRLS backend.
    """
    coefficients: NDArray[np.floating[Any]]
    se: NDArray[np.floating[Any]]
    vcov: NDArray[np.floating[Any]]
    linear_predictor: NDArray[np.floating[Any]]
    fitted_values: NDArray[np.floating[Any]]
    deviance: float
    log_likelihood: float
    n_iter: int
    converged: bool


@dataclass
class LogisticSolution:
    """User-facing logistic regression results."""
    _result: Result[LogisticParams]

    @property
    def params(self) -> LogisticParams:
        return self._result.params

    @property
    def coefficients(self) -> NDArray[np.floating[Any]]:
        return self.params.coefficients

    @property
    def se(self) -> NDArray[np.floating[Any]]:
        return self.params.se

    @property
    def linear_predictor(self) -> NDArray[np.floating[Any]]:
        return self.params.linear_predictor

    @property
    def fitted_values(self) -> NDArray[np.floating[Any]]:
        return self.params.fitted_values

    @property
    def deviance(self) -> float:
        return self.params.deviance

    @property
    def log_likelihood(self) -> float:
        return self.params.log_likelihood

    @property
    def converged(self) -> bool:
        return self.params.converged

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def __repr__(self) -> str:
        return (
            f"LogisticSolution(p={len(self.coefficients)}, "
            f"deviance={self.deviance:.4f}, converged={self.converged})"
        )
