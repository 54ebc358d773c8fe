"""
GLM family and link function specifications.

The engine supports one family, Bernoulli response with logit link, but
keeps the family/link seam used by IRLS-type solvers:

Each Family defines:
- A variance function V(μ) relating variance to the mean
- A default link function g(μ) mapping the mean to the linear predictor
- A deviance function for assessing model fit
- A log-likelihood function for the Laplace objective and AIC
- An initialization function for IRLS starting values

Each Link defines:
- g(μ) → η  (link)
- g⁻¹(η) → μ  (inverse link)
- dμ/dη  (derivative of inverse link, for IRLS weights)

References:
    McCullagh, P., & Nelder, J. A. (1989). Generalized Linear Models (2nd ed.)
    R Core Team. stats::family, stats::make.link
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import numpy as np
from numpy.typing import NDArray
from scipy.special import expit


# =====================================================================
# Link functions
# =====================================================================

class Link(ABC):
    """Abstract link function g(μ) mapping mean to linear predictor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def link(self, mu: NDArray) -> NDArray:
        """g(μ) → η."""
        ...

    @abstractmethod
    def linkinv(self, eta: NDArray) -> NDArray:
        """g⁻¹(η) → μ."""
        ...

    @abstractmethod
    def mu_eta(self, eta: NDArray) -> NDArray:
        """dμ/dη = (g⁻¹)'(η)."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class LogitLink(Link):
    """Logit link: g(μ) = log(μ/(1-μ))."""

    @property
    def name(self) -> str:
        return 'logit'

    def link(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return np.log(mu / (1 - mu))

    def linkinv(self, eta: NDArray) -> NDArray:
        return expit(eta)

    def mu_eta(self, eta: NDArray) -> NDArray:
        p = expit(eta)
        return np.maximum(p * (1.0 - p), 1e-10)


# =====================================================================
# Family base class
# =====================================================================

class Family(ABC):
    """
    GLM family specification.

    Defines the relationship between the mean and variance of the
    response distribution, along with a link function.
    """

    def __init__(self):
        self._link = self._default_link()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def _default_link(self) -> Link:
        ...

    @property
    def link(self) -> Link:
        return self._link

    @abstractmethod
    def variance(self, mu: NDArray) -> NDArray:
        """Variance function V(μ)."""
        ...

    @abstractmethod
    def deviance(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        """Compute total deviance: 2 * Σ wt_i * d(y_i, μ_i)."""
        ...

    @abstractmethod
    def initialize(self, y: NDArray) -> NDArray:
        """Initialize μ from y for IRLS starting values."""
        ...

    @abstractmethod
    def log_likelihood(self, y: NDArray, eta: NDArray) -> float:
        """Conditional log-likelihood Σ log f(y_i | η_i)."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(link={self._link.name!r})"


# =====================================================================
# Concrete family
# =====================================================================

class Binomial(Family):
    """Bernoulli (binary binomial) family with logit link.

    V(μ) = μ(1-μ)
    Deviance = -2 * Σ [y_i log(μ_i) + (1-y_i) log(1-μ_i)]  (saturated ℓ = 0)
    """

    @property
    def name(self) -> str:
        return 'binomial'

    def _default_link(self) -> Link:
        return LogitLink()

    def variance(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return mu * (1.0 - mu)

    def initialize(self, y: NDArray) -> NDArray:
        # R's default: (y + 0.5) / 2 for binary data
        return (y + 0.5) / 2.0

    def deviance(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        # 0*log(0) = 0; np.where evaluates both branches
        with np.errstate(divide='ignore', invalid='ignore'):
            term1 = np.where(y > 0, y * np.log(y / mu), 0.0)
            term2 = np.where(y < 1, (1 - y) * np.log((1 - y) / (1 - mu)), 0.0)
        return 2.0 * float(np.sum(wt * (term1 + term2)))

    def log_likelihood(self, y: NDArray, eta: NDArray) -> float:
        # y*η - log(1 + e^η), evaluated without overflow
        return float(np.sum(y * eta - np.logaddexp(0.0, eta)))
