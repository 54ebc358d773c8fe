"""
Random-intercept design Z and the Λ_θ parameterization.

Each grouping factor k contributes J_k indicator columns to Z
(Z[i, offset_k + j] = 1 when observation i belongs to level j of factor k)
and one θ parameter. Λ_θ is diagonal with θ_k repeated J_k times, so the
random effects are b = Λ_θ u with spherical u ~ N(0, I) and

    Var(b_kj) = θ_k²

θ_k = 0 is a legitimate value (singular fit): the factor's columns of ZΛ
vanish and the model reduces to ordinary logistic regression with
respect to that factor.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48. Section 2.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from pymultilevel.mixed._hierarchy import GroupingIndex


@dataclass(frozen=True)
class RandomEffectSpec:
    """Column block of Z belonging to one grouping factor.

    Attributes:
        group_name: Grouping factor name.
        group_ids: Level index of every observation, shape (n,).
        n_groups: Number of levels J.
        offset: First column of this block in Z.
    """
    group_name: str
    group_ids: NDArray
    n_groups: int
    offset: int

    @property
    def columns(self) -> slice:
        return slice(self.offset, self.offset + self.n_groups)


def build_random_effects(index: GroupingIndex) -> list[RandomEffectSpec]:
    """One RandomEffectSpec per resolved factor, blocks laid out in spec order."""
    specs = []
    offset = 0
    for f in index.factors:
        specs.append(RandomEffectSpec(
            group_name=f.name,
            group_ids=f.codes,
            n_groups=f.n_levels,
            offset=offset,
        ))
        offset += f.n_levels
    return specs


def build_z_matrix(specs: list[RandomEffectSpec], n: int) -> NDArray:
    """Indicator matrix Z of shape (n, Σ J_k)."""
    if not specs:
        raise ValueError("At least one random effect specification required")
    q = sum(s.n_groups for s in specs)
    Z = np.zeros((n, q), dtype=np.float64)
    rows = np.arange(n)
    for spec in specs:
        Z[rows, spec.offset + spec.group_ids] = 1.0
    return Z


def lambda_diagonal(theta: NDArray, specs: list[RandomEffectSpec]) -> NDArray:
    """Diagonal of Λ_θ: θ_k repeated once per level of factor k."""
    return np.concatenate([
        np.full(spec.n_groups, float(theta[k]), dtype=np.float64)
        for k, spec in enumerate(specs)
    ])


def split_by_factor(values: NDArray, specs: list[RandomEffectSpec]) -> dict[str, NDArray]:
    """Split a length-q vector into per-factor pieces."""
    return {spec.group_name: values[spec.columns].copy() for spec in specs}


def theta_lower_bounds(specs: list[RandomEffectSpec]) -> NDArray:
    """θ_k ≥ 0: a standard deviation is non-negative."""
    return np.zeros(len(specs), dtype=np.float64)


def theta_start(specs: list[RandomEffectSpec]) -> NDArray:
    """Start every θ_k at 1.0 (random-effect SD equal to one logit unit)."""
    return np.ones(len(specs), dtype=np.float64)
