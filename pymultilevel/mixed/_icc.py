"""
Intraclass correlation for the logistic random-intercept model.

On the latent-variable scale the level-1 residual of a logit model is a
standard logistic variable with variance π²/3. The share of latent
variance attributable to grouping factor k is

    ICC_k = σ²_k / (Σ_j σ²_j + π²/3)

and the residual share is (π²/3) / (Σ_j σ²_j + π²/3), so the shares of
all factors plus the residual sum to one.

For a nested chain (school > class) the cumulative ICC of a level, the
correlation between two observations in the same class, adds the shares
of the level and all of its ancestors.

References:
    Snijders, T. A. B., & Bosker, R. J. (2012). Multilevel Analysis
    (2nd ed.), Section 17.3.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np

from pymultilevel.mixed._common import VarCompSummary

LOGISTIC_RESIDUAL_VARIANCE = float(np.pi ** 2 / 3.0)


@dataclass(frozen=True)
class VarianceShare:
    """ICC of one grouping factor.

    Attributes:
        group: Grouping factor name.
        variance: σ²_k.
        icc: σ²_k / total latent variance.
        cumulative_icc: icc plus the icc of every enclosing factor.
    """
    group: str
    variance: float
    icc: float
    cumulative_icc: float


@dataclass(frozen=True)
class VarianceDecomposition:
    """Latent-scale variance partition of a fitted model."""
    shares: tuple[VarianceShare, ...]
    residual_variance: float
    residual_share: float
    total_variance: float

    def as_dict(self) -> dict[str, float]:
        """Factor name -> ICC."""
        return {s.group: s.icc for s in self.shares}


def variance_decomposition(
    var_components: tuple[VarCompSummary, ...],
) -> VarianceDecomposition:
    """Partition latent variance across factors and the logistic residual."""
    total = sum(vc.variance for vc in var_components) + LOGISTIC_RESIDUAL_VARIANCE
    icc = {vc.group: vc.variance / total for vc in var_components}
    parents = {vc.group: vc.parent for vc in var_components}

    shares = []
    for vc in var_components:
        cumulative = icc[vc.group]
        parent = vc.parent
        while parent is not None:
            cumulative += icc[parent]
            parent = parents[parent]
        shares.append(VarianceShare(
            group=vc.group,
            variance=vc.variance,
            icc=icc[vc.group],
            cumulative_icc=cumulative,
        ))

    return VarianceDecomposition(
        shares=tuple(shares),
        residual_variance=LOGISTIC_RESIDUAL_VARIANCE,
        residual_share=LOGISTIC_RESIDUAL_VARIANCE / total,
        total_variance=total,
    )
