"""
Fit configuration for hierarchical logistic regression.

FitControl gathers every tunable of the fitting pipeline in one frozen
object. Defaults follow lme4's glmerControl where an equivalent exists.
Invalid values raise ValidationError at construction so a bad setting
never reaches the numerical code.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields, replace
from typing import Any

from pymultilevel.core.exceptions import ValidationError
from pymultilevel.core.compute.tolerances import SINGULAR_THETA


UNSEEN_LEVEL_POLICIES = ('zero', 'reject')
OPTIMIZERS = ('L-BFGS-B', 'Nelder-Mead')


@dataclass(frozen=True)
class FitControl:
    """
    Tunables for fit(), predict() and simulate().

    Attributes:
        optimizer_tolerance: Outer optimizer tolerance (relative objective
            change for L-BFGS-B, gradient tolerance is 10x this).
        max_outer_iterations: Outer variance-component iteration budget.
        max_inner_iterations: PIRLS iteration budget per objective call.
        inner_tolerance: PIRLS relative penalized-deviance tolerance.
        unseen_level_policy: 'zero' (unseen levels contribute 0) or
            'reject' (raise UnseenLevelError). Default for predictions.
        optimizer: 'L-BFGS-B' (bounded, with Nelder-Mead fallback on
            abnormal termination) or 'Nelder-Mead'.
        gradient_step: Central finite-difference step for the gradient.
        max_retries: PIRLS restarts from a damped starting point after a
            failed factorization.
        time_budget: Wall-clock seconds for the outer loop, or None.
        singular_tol: θ below this is reported as a singular fit.
    """
    optimizer_tolerance: float = 1e-8
    max_outer_iterations: int = 200
    max_inner_iterations: int = 50
    inner_tolerance: float = 1e-10
    unseen_level_policy: str = 'zero'
    optimizer: str = 'L-BFGS-B'
    gradient_step: float = 1e-5
    max_retries: int = 3
    time_budget: float | None = None
    singular_tol: float = SINGULAR_THETA

    def __post_init__(self):
        for name in ('optimizer_tolerance', 'inner_tolerance',
                     'gradient_step', 'singular_tol'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not value > 0:
                raise ValidationError(
                    f"{name} must be a positive number, got {value!r}"
                )
        for name in ('max_outer_iterations', 'max_inner_iterations'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValidationError(
                    f"{name} must be a positive integer, got {value!r}"
                )
        if (isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int)
                or self.max_retries < 0):
            raise ValidationError(
                f"max_retries must be a non-negative integer, got {self.max_retries!r}"
            )
        if self.unseen_level_policy not in UNSEEN_LEVEL_POLICIES:
            raise ValidationError(
                f"unseen_level_policy must be one of {UNSEEN_LEVEL_POLICIES}, "
                f"got {self.unseen_level_policy!r}"
            )
        if self.optimizer not in OPTIMIZERS:
            raise ValidationError(
                f"optimizer must be one of {OPTIMIZERS}, got {self.optimizer!r}"
            )
        if self.time_budget is not None and not self.time_budget > 0:
            raise ValidationError(
                f"time_budget must be positive or None, got {self.time_budget!r}"
            )

    def with_overrides(self, **overrides: Any) -> FitControl:
        """Copy with selected fields replaced; unknown names raise."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValidationError(
                f"Unknown fit control option(s): {unknown}. Known: {sorted(known)}"
            )
        return replace(self, **overrides)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FitControl:
        return cls(**d)
