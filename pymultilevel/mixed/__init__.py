"""
Hierarchical (multilevel) logistic regression.

Bernoulli-logit models with random intercepts for nested and/or crossed
grouping factors, fitted by Laplace approximation.

Public API:
    ModelSpec, Numeric, Boolean, Categorical, GroupingFactor
                    - model declaration
    FitControl      - fit configuration
    fit()           - fit a model
    FittedModel     - fitted model wrapper (summary, tables, serialization)
    predict()       - predictions for new rows
    simulate()      - simulated outcomes for new rows
"""

from pymultilevel.mixed.spec import (
    ModelSpec, Numeric, Boolean, Categorical, GroupingFactor,
)
from pymultilevel.mixed.control import FitControl
from pymultilevel.mixed.solution import FittedModel
from pymultilevel.mixed.solvers import fit
from pymultilevel.mixed.predict import predict, simulate, Prediction, Simulation

__all__ = [
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
]
