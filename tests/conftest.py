"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def logistic_data(rng):
    """Single-level logistic dataset: y ~ Bernoulli(expit(-0.5 + 1.2 x))."""
    n = 400
    x = rng.standard_normal(n)
    X = np.column_stack([np.ones(n), x])
    beta_true = np.array([-0.5, 1.2])
    p = 1.0 / (1.0 + np.exp(-(X @ beta_true)))
    y = rng.binomial(1, p).astype(float)
    return X, y, beta_true


@pytest.fixture
def collinear_data(rng):
    """Dataset with perfect collinearity (should fail)."""
    n = 100
    x1 = rng.standard_normal(n)
    x2 = rng.standard_normal(n)
    x3 = x1 + x2  # Perfect collinearity
    X = np.column_stack([np.ones(n), x1, x2, x3])
    y = rng.binomial(1, 0.5, size=n).astype(float)
    return X, y
