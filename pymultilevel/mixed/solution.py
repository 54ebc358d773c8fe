"""
Fitted hierarchical logistic model.

FittedModel wraps Result[FitParams] together with what prediction needs
after the training data is gone: the model spec, the fixed-effect
encoding and the grouping index. It provides an lme4-style summary,
report tables, and an exact JSON round trip.
"""

from __future__ import annotations

import json
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pymultilevel.core.result import Result
from pymultilevel.core.exceptions import ValidationError
from pymultilevel.mixed.spec import ModelSpec
from pymultilevel.mixed.control import FitControl
from pymultilevel.mixed.design import DesignEncoding
from pymultilevel.mixed._hierarchy import GroupingIndex
from pymultilevel.mixed._common import (
    FitParams, VarCompSummary, CoefficientRow, FittedLevel,
    params_to_dict, params_from_dict,
)
from pymultilevel.mixed._icc import VarianceDecomposition, variance_decomposition

FORMAT_NAME = 'pymultilevel.fitted_model'
FORMAT_VERSION = 1


def _significance_stars(p: float) -> str:
    """Return significance stars like R."""
    if p < 0.001:
        return '***'
    elif p < 0.01:
        return '**'
    elif p < 0.05:
        return '*'
    elif p < 0.1:
        return '.'
    else:
        return ' '


def _format_pvalue(p: float) -> str:
    """Format p-value like R."""
    if p < 2e-16:
        return '< 2e-16'
    elif p < 0.001:
        return f'{p:.2e}'
    else:
        return f'{p:.4f}'


class FittedModel:
    """A fitted hierarchical logistic regression model.

    Immutable after fit. Safe to share between threads for concurrent
    predict() and simulate() calls.
    """

    def __init__(
        self,
        _result: Result[FitParams],
        spec: ModelSpec,
        encoding: DesignEncoding,
        index: GroupingIndex,
        control: FitControl,
    ):
        self._result = _result
        self.spec = spec
        self.encoding = encoding
        self.index = index
        self.control = control

    @property
    def params(self) -> FitParams:
        return self._result.params

    @property
    def result(self) -> Result[FitParams]:
        return self._result

    @property
    def status(self) -> str:
        return self._result.status

    @property
    def converged(self) -> bool:
        return self._result.converged

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    # --- Fixed effects ---

    @property
    def coefficients(self) -> NDArray:
        """Fixed effect estimates β̂."""
        return self.params.coefficients

    @property
    def fixef(self) -> dict[str, float]:
        return dict(zip(self.params.coefficient_names,
                        self.params.coefficients.tolist()))

    @property
    def se(self) -> NDArray:
        return self.params.se

    @property
    def z_values(self) -> NDArray:
        """Wald z-statistics for fixed effects."""
        return self.params.z_values

    @property
    def p_values(self) -> NDArray:
        return self.params.p_values

    def coef_table(self) -> tuple[CoefficientRow, ...]:
        p = self.params
        return tuple(
            CoefficientRow(
                name=name,
                estimate=float(p.coefficients[i]),
                std_error=float(p.se[i]),
                z_value=float(p.z_values[i]),
                p_value=float(p.p_values[i]),
            )
            for i, name in enumerate(p.coefficient_names)
        )

    # --- Random effects ---

    @property
    def ranef(self) -> dict[str, NDArray]:
        """Conditional modes per grouping factor, in level-index order."""
        return self.params.random_effects

    @property
    def var_components(self) -> tuple[VarCompSummary, ...]:
        return self.params.var_components

    @property
    def theta(self) -> NDArray:
        return self.params.theta

    @property
    def singular(self) -> bool:
        return bool(self.params.singular)

    def levels(self, factor: str) -> tuple[FittedLevel, ...]:
        """Fitted random intercept of every level of `factor`."""
        resolved = self.index.factor(factor)
        modes = self.params.random_effects[factor]
        cond_var = self.params.conditional_variances[factor]
        sizes = resolved.level_sizes()
        return tuple(
            FittedLevel(
                factor=factor,
                key=lvl.key,
                label=lvl.label,
                mode=float(modes[lvl.index]),
                conditional_variance=float(cond_var[lvl.index]),
                n_obs=int(sizes[lvl.index]),
                parent_index=lvl.parent_index,
            )
            for lvl in resolved.levels
        )

    def ranef_table(self, factor: str) -> dict[str, float]:
        """Level label -> conditional mode."""
        return {lvl.label: lvl.mode for lvl in self.levels(factor)}

    # --- Variance decomposition ---

    def variance_decomposition(self) -> VarianceDecomposition:
        return variance_decomposition(self.params.var_components)

    @property
    def icc(self) -> dict[str, float]:
        """ICC on the latent scale: σ²_k / (Σ σ² + π²/3)."""
        return self.variance_decomposition().as_dict()

    # --- Model fit ---

    @property
    def log_likelihood(self) -> float:
        return self.params.log_likelihood

    @property
    def deviance(self) -> float:
        return self.params.deviance

    @property
    def aic(self) -> float:
        return self.params.aic

    @property
    def bic(self) -> float:
        return self.params.bic

    @property
    def n_obs(self) -> int:
        return self.params.n_obs

    @property
    def fitted_values(self) -> NDArray:
        """Fitted probabilities μ̂."""
        return self.params.fitted_values

    @property
    def linear_predictor(self) -> NDArray:
        return self.params.linear_predictor

    @property
    def residuals(self) -> NDArray:
        """Response residuals y - μ̂."""
        return self.params.residuals

    # --- Prediction ---

    def predict(self, newdata, **kwargs):
        from pymultilevel.mixed.predict import predict
        return predict(self, newdata, **kwargs)

    def simulate(self, newdata, n_draws: int, **kwargs):
        from pymultilevel.mixed.predict import simulate
        return simulate(self, newdata, n_draws, **kwargs)

    # --- Summary ---

    def summary(self) -> str:
        """R-style summary matching lme4::summary(glmer(...))."""
        params = self.params

        lines = []
        lines.append(
            "Generalized linear mixed model fit by maximum likelihood "
            "(Laplace Approximation)"
        )
        lines.append(f" Family: {self.spec.family} ( {self.spec.link} )")
        lines.append("")

        lines.append(f"{'AIC':>10s} {'BIC':>10s} {'logLik':>10s} {'deviance':>10s}")
        lines.append(
            f"{params.aic:10.1f} {params.bic:10.1f} "
            f"{params.log_likelihood:10.1f} {params.deviance:10.1f}"
        )
        lines.append("")

        lines.append("Random effects:")
        lines.append(f" {'Groups':<15s} {'Name':<12s} {'Variance':>10s} "
                     f"{'Std.Dev.':>10s} {'ICC':>8s}")
        icc = self.icc
        for vc in params.var_components:
            lines.append(
                f" {vc.group:<15s} {vc.name:<12s} {vc.variance:10.4f} "
                f"{vc.std_dev:10.4f} {icc[vc.group]:8.4f}"
            )
        group_parts = ', '.join(
            f'{name}, {n}' for name, n in params.n_groups.items()
        )
        lines.append(f"Number of obs: {params.n_obs}, groups:  {group_parts}")
        lines.append("")

        lines.append("Fixed effects:")
        header = (f" {'':>15s} {'Estimate':>10s} {'Std. Error':>10s} "
                  f"{'z value':>10s} {'Pr(>|z|)':>10s} {'':>4s}")
        lines.append(header)
        for row in self.coef_table():
            lines.append(
                f" {row.name:>15s} {row.estimate:10.4f} {row.std_error:10.4f} "
                f"{row.z_value:10.3f} {_format_pvalue(row.p_value):>10s} "
                f"{_significance_stars(row.p_value)}"
            )
        lines.append("---")
        lines.append("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")

        if params.singular:
            lines.append("")
            lines.append(f"boundary (singular) fit: {', '.join(params.singular)}")
        if not self.converged:
            lines.append("")
            lines.append(f"WARNING: Model did not converge (status: {self.status})")

        return '\n'.join(lines)

    def __repr__(self) -> str:
        groups = ', '.join(f'{k}={v}' for k, v in self.params.n_groups.items())
        return (
            f"FittedModel(binomial(logit), n={self.params.n_obs}, "
            f"fixed={len(self.params.coefficients)}, groups=({groups}), "
            f"status={self.status!r})"
        )

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation; from_dict() restores it exactly."""
        r = self._result
        return {
            'format': FORMAT_NAME,
            'version': FORMAT_VERSION,
            'spec': self.spec.to_dict(),
            'encoding': self.encoding.to_dict(),
            'index': self.index.to_dict(),
            'control': self.control.to_dict(),
            'result': {
                'status': r.status,
                'info': dict(r.info),
                'timing': dict(r.timing) if r.timing is not None else None,
                'backend_name': r.backend_name,
                'warnings': list(r.warnings),
            },
            'params': params_to_dict(r.params),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FittedModel:
        if d.get('format') != FORMAT_NAME:
            raise ValidationError(
                f"Not a serialized fitted model (format={d.get('format')!r})"
            )
        if d.get('version') != FORMAT_VERSION:
            raise ValidationError(
                f"Unsupported fitted model version {d.get('version')!r}, "
                f"expected {FORMAT_VERSION}"
            )
        rd = d['result']
        result = Result(
            params=params_from_dict(d['params']),
            status=rd['status'],
            info=dict(rd['info']),
            timing=rd['timing'],
            backend_name=rd['backend_name'],
            warnings=tuple(rd['warnings']),
        )
        return cls(
            _result=result,
            spec=ModelSpec.from_dict(d['spec']),
            encoding=DesignEncoding.from_dict(d['encoding']),
            index=GroupingIndex.from_dict(d['index']),
            control=FitControl.from_dict(d['control']),
        )

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    @classmethod
    def from_json(cls, text: str) -> FittedModel:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid fitted model JSON: {e}") from e
        return cls.from_dict(payload)
