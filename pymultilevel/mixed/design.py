"""
Design construction for hierarchical logistic regression.

MixedDesign turns a DataSource and a validated ModelSpec into the
numerical inputs of the fit: the binary response y, the fixed-effects
matrix X (intercept first, then one block per term) and the grouping
index. The encoding of each term is kept in a DesignEncoding so that new
rows can be encoded identically at prediction time.

Encodings:
    Numeric      one column, values as float64
    Boolean      one column, True/1 -> 1.0, False/0 -> 0.0
    Categorical  treatment coding: one indicator per non-reference level,
                 named '<column><level>' like R's contr.treatment
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.exceptions import ConfigurationError, ValidationError
from pymultilevel.core.validation import (
    check_array, check_finite, check_binary, check_column_rank,
)
from pymultilevel.mixed.spec import ModelSpec, Numeric, Boolean, Categorical, Term
from pymultilevel.mixed._hierarchy import (
    GroupingIndex, canonical_label, canonical_labels, resolve_groups,
)

INTERCEPT = '(Intercept)'
MIN_OBSERVATIONS = 3


@dataclass(frozen=True)
class TermEncoding:
    """How one fixed-effect term maps to design columns."""
    column: str
    kind: str
    levels: tuple[str, ...] = ()        # categorical only, reference first
    reference: str | None = None

    @property
    def column_names(self) -> tuple[str, ...]:
        if self.kind == 'categorical':
            return tuple(f"{self.column}{lvl}" for lvl in self.levels[1:])
        return (self.column,)

    def encode(self, data: DataSource) -> NDArray:
        """Design columns for this term, shape (n, k)."""
        if self.column not in data:
            raise ConfigurationError(
                f"Fixed-effect column '{self.column}' not found. "
                f"Available: {sorted(data.keys())}",
                column=self.column,
            )
        raw = np.asarray(data[self.column])
        if self.kind == 'numeric':
            values = check_array(raw, self.column)
            check_finite(values, self.column)
            return values.reshape(-1, 1)
        if self.kind == 'boolean':
            values = check_array(raw, self.column)
            check_finite(values, self.column)
            check_binary(values, self.column)
            return values.reshape(-1, 1)

        labels = canonical_labels(raw)
        position = {lvl: i for i, lvl in enumerate(self.levels)}
        unknown = sorted(set(labels.tolist()) - set(position))
        if unknown:
            raise ValidationError(
                f"Column '{self.column}' has levels not present at fit time: "
                f"{unknown[:5]}. Known: {list(self.levels)}"
            )
        codes = np.fromiter((position[s] for s in labels), dtype=np.intp,
                            count=labels.shape[0])
        out = np.zeros((labels.shape[0], len(self.levels) - 1), dtype=np.float64)
        rows = np.nonzero(codes > 0)[0]
        out[rows, codes[rows] - 1] = 1.0
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            'column': self.column,
            'kind': self.kind,
            'levels': list(self.levels),
            'reference': self.reference,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TermEncoding:
        return cls(d['column'], d['kind'], tuple(d.get('levels', ())),
                   d.get('reference'))


@dataclass(frozen=True)
class DesignEncoding:
    """Frozen fixed-effect encoding learned from the fit data."""
    terms: tuple[TermEncoding, ...]

    @property
    def column_names(self) -> tuple[str, ...]:
        names = [INTERCEPT]
        for t in self.terms:
            names.extend(t.column_names)
        return tuple(names)

    def transform(self, data: DataSource) -> NDArray:
        """Fixed-effects matrix for `data`, intercept first."""
        n = data.n_observations
        blocks = [np.ones((n, 1), dtype=np.float64)]
        blocks.extend(t.encode(data) for t in self.terms)
        return np.hstack(blocks)

    def to_dict(self) -> dict[str, Any]:
        return {'terms': [t.to_dict() for t in self.terms]}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DesignEncoding:
        return cls(tuple(TermEncoding.from_dict(t) for t in d['terms']))


def learn_encoding(data: DataSource, terms: tuple[Term, ...]) -> DesignEncoding:
    encodings = []
    for term in terms:
        if isinstance(term, Categorical):
            if term.column not in data:
                raise ConfigurationError(
                    f"Fixed-effect column '{term.column}' not found. "
                    f"Available: {sorted(data.keys())}",
                    column=term.column,
                )
            levels = sorted(set(canonical_labels(data[term.column]).tolist()))
            if len(levels) < 2:
                raise ConfigurationError(
                    f"Categorical column '{term.column}' has a single level "
                    f"{levels}; it is collinear with the intercept",
                    column=term.column,
                )
            reference = levels[0] if term.reference is None else canonical_label(term.reference)
            if reference not in levels:
                raise ConfigurationError(
                    f"Reference level {reference!r} not found in column "
                    f"'{term.column}'. Levels: {levels}",
                    column=term.column,
                )
            ordered = (reference,) + tuple(lvl for lvl in levels if lvl != reference)
            encodings.append(TermEncoding(term.column, 'categorical', ordered, reference))
        elif isinstance(term, Boolean):
            encodings.append(TermEncoding(term.column, 'boolean'))
        elif isinstance(term, Numeric):
            encodings.append(TermEncoding(term.column, 'numeric'))
    return DesignEncoding(tuple(encodings))


@dataclass(frozen=True)
class MixedDesign:
    """Validated numerical design for a hierarchical logistic model.

    Attributes:
        y: Binary response (n,).
        X: Fixed-effects design matrix (n, p), full column rank.
        encoding: Term encodings, reused for prediction rows.
        index: Resolved grouping index.
        n: Number of observations.
        p: Number of fixed-effect columns.
    """
    y: NDArray
    X: NDArray
    encoding: DesignEncoding
    index: GroupingIndex
    n: int
    p: int

    @property
    def column_names(self) -> tuple[str, ...]:
        return self.encoding.column_names

    @staticmethod
    def build(data: DataSource, spec: ModelSpec) -> 'MixedDesign':
        """Validate the data against the model declaration and build the design.

        Raises:
            ConfigurationError: Unknown column, non-binary response,
                rank-deficient X, or a grouping problem.
            ValidationError: Non-numeric or non-finite values.
        """
        if spec.response not in data:
            raise ConfigurationError(
                f"Response column '{spec.response}' not found. "
                f"Available: {sorted(data.keys())}",
                column=spec.response,
            )
        y = check_array(data[spec.response], spec.response)
        check_finite(y, spec.response)
        check_binary(y, spec.response)
        n = y.shape[0]
        if n < MIN_OBSERVATIONS:
            raise ValidationError(
                f"Need at least {MIN_OBSERVATIONS} observations, got {n}"
            )

        encoding = learn_encoding(data, spec.terms)
        X = encoding.transform(data)
        check_column_rank(X, 'fixed-effects design')

        index = resolve_groups(data, spec)

        return MixedDesign(y=y, X=X, encoding=encoding, index=index,
                           n=n, p=X.shape[1])
