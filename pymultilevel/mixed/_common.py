"""
Common data types for hierarchical logistic regression.

Contains the frozen parameter payload that goes inside the Result[P]
envelope of a fit, plus the row types of its report tables. Each payload
is a pure data container.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class VarCompSummary:
    """Variance component of one grouping factor's random intercept.

    Attributes:
        group: Grouping factor name (e.g. 'school').
        name: Term name within the group, always '(Intercept)'.
        variance: Estimated variance σ²_b = θ².
        std_dev: Standard deviation σ_b = θ.
        parent: Enclosing factor for nested factors.
        n_levels: Number of levels of the factor.
        singular: The component sits on the zero boundary.
    """
    group: str
    name: str
    variance: float
    std_dev: float
    parent: str | None = None
    n_levels: int = 0
    singular: bool = False


@dataclass(frozen=True)
class CoefficientRow:
    """One line of the fixed-effects table."""
    name: str
    estimate: float
    std_error: float
    z_value: float
    p_value: float


@dataclass(frozen=True)
class FittedLevel:
    """Fitted random intercept of one group level.

    Attributes:
        factor: Grouping factor name.
        key: Canonical key (tuple of labels).
        label: Display form of the key.
        mode: Conditional mode b̂ on the logit scale.
        conditional_variance: Approximate Var(b | y) at the mode.
        n_obs: Fit observations in this level.
        parent_index: Index of the enclosing level, for nested factors.
    """
    factor: str
    key: tuple[str, ...]
    label: str
    mode: float
    conditional_variance: float
    n_obs: int
    parent_index: int | None = None


@dataclass(frozen=True)
class FitParams:
    """
    Parameter payload for a fitted hierarchical logistic model.

    Contains all estimates needed to reproduce the summary, perform Wald
    inference, and make predictions without the training data.
    """
    # Fixed effects
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    se: NDArray                        # standard errors of β̂ (p,)
    z_values: NDArray                  # Wald z = β̂ / se (p,)
    p_values: NDArray                  # two-sided normal p-values (p,)
    vcov: NDArray                      # Var(β̂) (p, p)

    # Random effects
    var_components: tuple[VarCompSummary, ...]
    theta: NDArray                     # relative Cholesky factors, σ_k = θ_k
    random_effects: Mapping[str, NDArray]         # factor -> conditional modes (J_k,)
    conditional_variances: Mapping[str, NDArray]  # factor -> Var(b | y) (J_k,)

    # Model fit
    log_likelihood: float              # Laplace approximation
    deviance: float                    # -2 × log_likelihood
    conditional_deviance: float        # binomial deviance at μ̂
    aic: float
    bic: float
    n_obs: int
    n_groups: Mapping[str, int]

    # Predictions
    fitted_values: NDArray             # μ̂ (n,)
    linear_predictor: NDArray          # η̂ = Xβ̂ + Zb̂ (n,)
    residuals: NDArray                 # y - μ̂ (n,)

    # Convergence
    n_iter: int                        # outer iterations
    pirls_iter: int
    pirls_converged: bool
    singular: tuple[str, ...]          # factors with θ below the singular threshold

    def __post_init__(self):
        # Read-only copies; mappings are read-only views.
        for name in _ARRAY_FIELDS:
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))
        for name in _ARRAY_DICT_FIELDS:
            object.__setattr__(self, name, MappingProxyType(
                {k: _frozen_array(v) for k, v in getattr(self, name).items()}
            ))
        object.__setattr__(self, 'n_groups', MappingProxyType(dict(self.n_groups)))


_ARRAY_FIELDS = ('coefficients', 'se', 'z_values', 'p_values', 'vcov',
                 'theta', 'fitted_values', 'linear_predictor', 'residuals')
_ARRAY_DICT_FIELDS = ('random_effects', 'conditional_variances')


def _frozen_array(values) -> NDArray:
    out = np.array(values, dtype=np.float64)
    out.setflags(write=False)
    return out


def params_to_dict(params: FitParams) -> dict[str, Any]:
    """JSON-compatible form; floats survive a round trip exactly."""
    out: dict[str, Any] = {}
    for name in _ARRAY_FIELDS:
        out[name] = np.asarray(getattr(params, name)).tolist()
    for name in _ARRAY_DICT_FIELDS:
        out[name] = {k: v.tolist() for k, v in getattr(params, name).items()}
    out['coefficient_names'] = list(params.coefficient_names)
    out['var_components'] = [
        {
            'group': vc.group, 'name': vc.name, 'variance': vc.variance,
            'std_dev': vc.std_dev, 'parent': vc.parent,
            'n_levels': vc.n_levels, 'singular': vc.singular,
        }
        for vc in params.var_components
    ]
    for name in ('log_likelihood', 'deviance', 'conditional_deviance', 'aic', 'bic'):
        out[name] = float(getattr(params, name))
    out['n_obs'] = int(params.n_obs)
    out['n_groups'] = {k: int(v) for k, v in params.n_groups.items()}
    out['n_iter'] = int(params.n_iter)
    out['pirls_iter'] = int(params.pirls_iter)
    out['pirls_converged'] = bool(params.pirls_converged)
    out['singular'] = list(params.singular)
    return out


def params_from_dict(d: dict[str, Any]) -> FitParams:
    arrays = {name: np.asarray(d[name], dtype=np.float64) for name in _ARRAY_FIELDS}
    if arrays['vcov'].ndim == 1:
        p = len(d['coefficient_names'])
        arrays['vcov'] = arrays['vcov'].reshape(p, p)
    return FitParams(
        coefficient_names=tuple(d['coefficient_names']),
        var_components=tuple(VarCompSummary(**vc) for vc in d['var_components']),
        random_effects={k: np.asarray(v, dtype=np.float64)
                        for k, v in d['random_effects'].items()},
        conditional_variances={k: np.asarray(v, dtype=np.float64)
                               for k, v in d['conditional_variances'].items()},
        log_likelihood=float(d['log_likelihood']),
        deviance=float(d['deviance']),
        conditional_deviance=float(d['conditional_deviance']),
        aic=float(d['aic']),
        bic=float(d['bic']),
        n_obs=int(d['n_obs']),
        n_groups={k: int(v) for k, v in d['n_groups'].items()},
        n_iter=int(d['n_iter']),
        pirls_iter=int(d['pirls_iter']),
        pirls_converged=bool(d['pirls_converged']),
        singular=tuple(d['singular']),
        **arrays,
    )
