"""
Prediction and simulation from a fitted hierarchical logistic model.

Both operations resolve new rows against the fitted grouping index. A
row whose key was never seen during fitting has no conditional mode:
under the 'zero' policy it contributes nothing to the linear predictor
(predict) or receives a fresh draw from N(0, σ²_k) (simulate); under the
'reject' policy the request fails with UnseenLevelError.

Simulation draws each group level once per draw and reuses that value
for every row of the level, so rows sharing a group are correlated
within a draw. Randomness comes only from the explicit `seed` (an int,
a numpy Generator, or None for fresh entropy), never from global state.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.result import Result, STATUS_OK
from pymultilevel.core.compute.timing import Timer
from pymultilevel.core.exceptions import (
    ValidationError, UnseenLevelError, FitCancelled,
)
from pymultilevel.mixed.control import UNSEEN_LEVEL_POLICIES
from pymultilevel.mixed.solution import FittedModel
from pymultilevel.mixed._hierarchy import LevelLookup

logger = logging.getLogger(__name__)

SCALES = ('response', 'link')
OUTCOMES = ('bernoulli', 'probability')


@dataclass(frozen=True)
class PredictionParams:
    """Predicted values plus the unseen-level count per factor."""
    values: NDArray
    scale: str
    unseen: dict[str, int]


@dataclass(frozen=True)
class SimulationParams:
    """Simulated draws, shape (n_draws, n_rows)."""
    draws: NDArray
    outcome: str
    unseen: dict[str, int]


class Prediction:
    """User-facing prediction result."""

    def __init__(self, _result: Result[PredictionParams]):
        self._result = _result

    @property
    def values(self) -> NDArray:
        return self._result.params.values

    @property
    def scale(self) -> str:
        return self._result.params.scale

    @property
    def unseen(self) -> dict[str, int]:
        return self._result.params.unseen

    @property
    def status(self) -> str:
        return self._result.status

    def __array__(self, dtype=None, copy=None):
        return np.asarray(self.values, dtype=dtype)

    def __len__(self) -> int:
        return self.values.shape[0]

    def __repr__(self) -> str:
        return f"Prediction(n={len(self)}, scale={self.scale!r})"


class Simulation:
    """User-facing simulation result."""

    def __init__(self, _result: Result[SimulationParams]):
        self._result = _result

    @property
    def draws(self) -> NDArray:
        return self._result.params.draws

    @property
    def outcome(self) -> str:
        return self._result.params.outcome

    @property
    def unseen(self) -> dict[str, int]:
        return self._result.params.unseen

    @property
    def status(self) -> str:
        return self._result.status

    @property
    def n_draws(self) -> int:
        return self.draws.shape[0]

    def mean(self) -> NDArray:
        """Per-row mean over draws."""
        return self.draws.mean(axis=0)

    def __array__(self, dtype=None, copy=None):
        return np.asarray(self.draws, dtype=dtype)

    def __repr__(self) -> str:
        return (f"Simulation(n_draws={self.draws.shape[0]}, "
                f"n_rows={self.draws.shape[1]}, outcome={self.outcome!r})")


# =====================================================================
# Shared resolution
# =====================================================================

def _resolve(
    model: FittedModel,
    newdata: Any,
    policy: str | None,
) -> tuple[NDArray, dict[str, LevelLookup], dict[str, int]]:
    policy = model.control.unseen_level_policy if policy is None else policy
    if policy not in UNSEEN_LEVEL_POLICIES:
        raise ValidationError(
            f"unseen_level_policy must be one of {UNSEEN_LEVEL_POLICIES}, "
            f"got {policy!r}"
        )
    source = DataSource.build(newdata)
    X = model.encoding.transform(source)
    lookups = model.index.lookup(source)

    unseen: dict[str, int] = {}
    for name, lookup in lookups.items():
        n_unseen = int(np.sum(lookup.unseen_mask))
        unseen[name] = n_unseen
        if n_unseen and policy == 'reject':
            labels = lookup.unseen_labels()
            raise UnseenLevelError(
                f"{n_unseen} row(s) reference level(s) of '{name}' not seen "
                f"during fitting: {list(labels[:5])}",
                factor=name,
                levels=labels,
            )
    if any(unseen.values()):
        logger.debug("unseen levels in request: %s", unseen)
    return X, lookups, unseen


# =====================================================================
# Predict
# =====================================================================

def predict(
    model: FittedModel,
    newdata: Any,
    *,
    scale: str = 'response',
    use_fitted_random_effects: bool = True,
    unseen_level_policy: str | None = None,
) -> Prediction:
    """Predict for new rows.

    η = Xβ̂ + Σ_k b̂_k[level], where an unseen level contributes 0.

    Args:
        model: Fitted model.
        newdata: Rows to predict (same input forms as fit()). The response
            column is not needed.
        scale: 'response' for probabilities, 'link' for log-odds.
        use_fitted_random_effects: If False, predict at the population
            level (every random intercept 0).
        unseen_level_policy: 'zero' or 'reject'; defaults to the policy the
            model was fitted with.

    Returns:
        Prediction with one value per row.

    Raises:
        UnseenLevelError: Unseen level under the 'reject' policy.
        ConfigurationError: A required column is missing.
        ValidationError: Invalid arguments or unknown categorical level.
    """
    if scale not in SCALES:
        raise ValidationError(f"scale must be one of {SCALES}, got {scale!r}")

    timer = Timer()
    timer.start()

    X, lookups, unseen = _resolve(model, newdata, unseen_level_policy)
    eta = X @ model.params.coefficients

    if use_fitted_random_effects:
        for name, lookup in lookups.items():
            modes = model.params.random_effects[name]
            seen = ~lookup.unseen_mask
            eta[seen] += modes[lookup.codes[seen]]

    values = expit(eta) if scale == 'response' else eta
    timer.stop()

    return Prediction(Result(
        params=PredictionParams(values=values, scale=scale, unseen=unseen),
        status=STATUS_OK,
        info={'use_fitted_random_effects': use_fitted_random_effects},
        timing=timer.result(),
        backend_name='cpu_predict',
    ))


# =====================================================================
# Simulate
# =====================================================================

def simulate(
    model: FittedModel,
    newdata: Any,
    n_draws: int,
    *,
    use_fitted_random_effects: bool = False,
    outcome: str = 'bernoulli',
    seed: int | np.random.Generator | None = None,
    unseen_level_policy: str | None = None,
    cancel: threading.Event | None = None,
) -> Simulation:
    """Simulate outcomes for new rows.

    For each draw, every group level referenced by the rows receives one
    random intercept, shared by all rows of that level:

    - use_fitted_random_effects=False: all levels drawn from N(0, σ²_k),
      i.e. new groups from the fitted population.
    - use_fitted_random_effects=True: seen levels are held at their
      conditional modes b̂; unseen levels are drawn from N(0, σ²_k).

    The fixed effects are held at β̂.

    Args:
        model: Fitted model.
        newdata: Rows to simulate.
        n_draws: Number of draws (≥ 1).
        use_fitted_random_effects: See above.
        outcome: 'bernoulli' for 0/1 outcomes, 'probability' for the
            per-draw success probabilities.
        seed: Seed or Generator; identical seeds give identical draws.
        unseen_level_policy: 'zero' or 'reject'; defaults to the model's.
        cancel: Optional event checked between draws.

    Returns:
        Simulation with draws of shape (n_draws, n_rows).

    Raises:
        UnseenLevelError: Unseen level under the 'reject' policy.
        FitCancelled: The cancel event was set between draws.
    """
    if isinstance(n_draws, bool) or not isinstance(n_draws, (int, np.integer)) or n_draws < 1:
        raise ValidationError(f"n_draws must be a positive integer, got {n_draws!r}")
    if outcome not in OUTCOMES:
        raise ValidationError(f"outcome must be one of {OUTCOMES}, got {outcome!r}")

    timer = Timer()
    timer.start()

    X, lookups, unseen = _resolve(model, newdata, unseen_level_policy)
    rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)

    base = X @ model.params.coefficients
    sd = {vc.group: vc.std_dev for vc in model.params.var_components}
    n_rows = base.shape[0]
    draws = np.empty((int(n_draws), n_rows), dtype=np.float64)

    for d in range(int(n_draws)):
        if cancel is not None and cancel.is_set():
            raise FitCancelled(
                f"Simulation cancelled after {d} draws", iterations=d
            )
        eta = base.copy()
        for name, lookup in lookups.items():
            effects = rng.normal(0.0, sd[name], size=len(lookup.keys))
            if use_fitted_random_effects:
                seen = lookup.key_codes >= 0
                effects[seen] = model.params.random_effects[name][lookup.key_codes[seen]]
            eta += effects[lookup.row_groups]
        prob = expit(eta)
        draws[d] = rng.binomial(1, prob) if outcome == 'bernoulli' else prob

    timer.stop()

    return Simulation(Result(
        params=SimulationParams(draws=draws, outcome=outcome, unseen=unseen),
        status=STATUS_OK,
        info={
            'n_draws': int(n_draws),
            'use_fitted_random_effects': use_fitted_random_effects,
        },
        timing=timer.result(),
        backend_name='cpu_simulate',
    ))
