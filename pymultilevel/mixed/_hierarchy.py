"""
Grouping index resolution.

Turns the grouping declarations of a ModelSpec plus raw label columns
into dense per-factor level indices. Each level is identified by a
canonical key, a tuple of stringified labels:

    top-level factor 'school'           ('s1',)
    'class' nested in 'school'          ('s1', 'c2')       display 's1/c2'
    compound factor class:school        ('c2', 's1')       display 'c2:s1'

Because a nested level's key embeds its parent's key, the same child
label under two different parents is two distinct levels. Levels are
numbered by sorted key, so the index depends only on the set of keys and
never on row order.

The resolver also rejects ambiguous declarations: two sibling factors
(same parent, or both top-level) where neither refines the other must be
marked crossed, otherwise repeated labels could be silently treated as
crossed when nesting was meant.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.exceptions import ConfigurationError, ValidationError
from pymultilevel.mixed.spec import ModelSpec, GroupingFactor

logger = logging.getLogger(__name__)

MIN_LEVELS = 2


@dataclass(frozen=True)
class GroupLevel:
    """One level of a grouping factor."""
    factor: str
    key: tuple[str, ...]
    index: int
    parent_index: int | None = None
    separator: str = '/'

    @property
    def label(self) -> str:
        return self.separator.join(self.key)


@dataclass(frozen=True)
class ResolvedFactor:
    """
    A grouping factor after resolution against the fit data.

    Attributes:
        name: Factor name.
        parent: Enclosing factor name, or None.
        levels: Levels in index order (sorted by canonical key).
        codes: Level index of every fit observation, shape (n,).
        separator: '/' for nested keys, ':' for compound keys.
    """
    name: str
    parent: str | None
    levels: tuple[GroupLevel, ...]
    codes: NDArray
    separator: str = '/'

    @property
    def n_levels(self) -> int:
        return len(self.levels)

    def key_to_index(self) -> dict[tuple[str, ...], int]:
        return {lvl.key: lvl.index for lvl in self.levels}

    def labels(self) -> tuple[str, ...]:
        return tuple(lvl.label for lvl in self.levels)

    def level_sizes(self) -> NDArray:
        """Observation count per level."""
        return np.bincount(self.codes, minlength=self.n_levels)


@dataclass(frozen=True)
class LevelLookup:
    """
    Resolution of new rows against a fitted factor.

    Rows are grouped by canonical key: `row_groups` maps each row to one of
    the distinct keys in `keys`, and `key_codes` gives each distinct key's
    fitted level index or -1 when the key was never seen.
    """
    factor: str
    codes: NDArray          # (n,) fitted level index, -1 if unseen
    row_groups: NDArray     # (n,) index into keys
    keys: tuple[tuple[str, ...], ...]
    key_codes: NDArray      # (len(keys),)
    separator: str = '/'

    @property
    def unseen_mask(self) -> NDArray:
        return self.codes < 0

    def unseen_labels(self) -> tuple[str, ...]:
        return tuple(
            self.separator.join(k)
            for k, code in zip(self.keys, self.key_codes) if code < 0
        )


@dataclass(frozen=True)
class GroupingIndex:
    """Resolved index for every grouping factor of a model, in spec order."""
    factors: tuple[ResolvedFactor, ...]
    declarations: tuple[GroupingFactor, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.factors)

    @property
    def n_observations(self) -> int:
        return int(self.factors[0].codes.shape[0]) if self.factors else 0

    def factor(self, name: str) -> ResolvedFactor:
        for f in self.factors:
            if f.name == name:
                return f
        raise KeyError(f"No grouping factor '{name}'. Available: {list(self.names)}")

    def n_groups(self) -> dict[str, int]:
        return {f.name: f.n_levels for f in self.factors}

    def lookup(self, data: DataSource) -> dict[str, LevelLookup]:
        """Map new rows to fitted levels; unseen keys get code -1."""
        components = _key_components(data, self.declarations)
        out: dict[str, LevelLookup] = {}
        for f in self.factors:
            comp = components[f.name]
            keys_arr, row_groups = _unique_rows(comp)
            keys = tuple(tuple(str(s) for s in row) for row in keys_arr)
            index = f.key_to_index()
            key_codes = np.array([index.get(k, -1) for k in keys], dtype=np.intp)
            codes = key_codes[row_groups] if len(keys) else np.empty(0, dtype=np.intp)
            out[f.name] = LevelLookup(
                factor=f.name,
                codes=codes,
                row_groups=row_groups,
                keys=keys,
                key_codes=key_codes,
                separator=f.separator,
            )
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            'factors': [
                {
                    'name': f.name,
                    'parent': f.parent,
                    'separator': f.separator,
                    'keys': [list(lvl.key) for lvl in f.levels],
                    'parent_indices': [lvl.parent_index for lvl in f.levels],
                    'codes': f.codes.tolist(),
                }
                for f in self.factors
            ],
            'declarations': [g.to_dict() for g in self.declarations],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GroupingIndex:
        factors = []
        for fd in d['factors']:
            levels = tuple(
                GroupLevel(
                    factor=fd['name'],
                    key=tuple(key),
                    index=i,
                    parent_index=pidx,
                    separator=fd['separator'],
                )
                for i, (key, pidx) in enumerate(zip(fd['keys'], fd['parent_indices']))
            )
            factors.append(ResolvedFactor(
                name=fd['name'],
                parent=fd['parent'],
                levels=levels,
                codes=np.asarray(fd['codes'], dtype=np.intp),
                separator=fd['separator'],
            ))
        declarations = tuple(GroupingFactor.from_dict(g) for g in d['declarations'])
        return cls(factors=tuple(factors), declarations=declarations)


# =====================================================================
# Resolution
# =====================================================================

def resolve_groups(data: DataSource, spec: ModelSpec) -> GroupingIndex:
    """
    Build the grouping index for the fit data.

    Raises:
        ConfigurationError: Missing column, fewer than two levels in a
            factor, or an ambiguous sibling declaration.
        ValidationError: Missing (None/NaN) group labels.
    """
    components = _key_components(data, spec.groups)
    resolved: dict[str, ResolvedFactor] = {}

    for g in spec.factor_order():
        comp = components[g.name]
        keys_arr, codes = _unique_rows(comp)
        n_levels = keys_arr.shape[0]
        if n_levels < MIN_LEVELS:
            raise ConfigurationError(
                f"Grouping factor '{g.name}' has {n_levels} level(s); "
                f"at least {MIN_LEVELS} are required to estimate a variance",
                column=g.name,
            )

        separator = ':' if g.is_compound else '/'
        parent_index: dict[tuple[str, ...], int] = {}
        n_own = len(g.columns)
        if g.parent is not None:
            parent_index = resolved[g.parent].key_to_index()

        levels = []
        for i, row in enumerate(keys_arr):
            key = tuple(str(s) for s in row)
            pidx = parent_index[key[:-n_own]] if g.parent is not None else None
            levels.append(GroupLevel(g.name, key, i, pidx, separator))

        resolved[g.name] = ResolvedFactor(
            name=g.name,
            parent=g.parent,
            levels=tuple(levels),
            codes=codes,
            separator=separator,
        )
        logger.debug("resolved factor %s: %d levels", g.name, n_levels)

    _check_ambiguity(spec, resolved)

    return GroupingIndex(
        factors=tuple(resolved[g.name] for g in spec.groups),
        declarations=spec.groups,
    )


def _check_ambiguity(spec: ModelSpec, resolved: dict[str, ResolvedFactor]) -> None:
    groups = spec.groups
    for i, a in enumerate(groups):
        for b in groups[i + 1:]:
            if a.parent != b.parent or a.crossed or b.crossed:
                continue
            fa, fb = resolved[a.name], resolved[b.name]
            if _refines(fa, fb) or _refines(fb, fa):
                continue
            raise ConfigurationError(
                f"Grouping factors '{a.name}' and '{b.name}' cross each other "
                f"but neither is declared crossed. Declare the nesting with "
                f"parent='{a.name}' (or '{b.name}'), or mark the factors "
                f"crossed=True",
                column=b.name,
            )


def _refines(fine: ResolvedFactor, coarse: ResolvedFactor) -> bool:
    """True if every level of `fine` falls inside exactly one level of `coarse`."""
    pairs = np.unique(np.column_stack([fine.codes, coarse.codes]), axis=0)
    return pairs.shape[0] == fine.n_levels


# =====================================================================
# Key construction
# =====================================================================

def _key_components(
    data: DataSource,
    declarations: tuple[GroupingFactor, ...],
) -> dict[str, NDArray]:
    """Per factor, an (n, depth) string array of canonical key components."""
    by_name = {g.name: g for g in declarations}
    components: dict[str, NDArray] = {}

    def build(g: GroupingFactor) -> NDArray:
        if g.name in components:
            return components[g.name]
        own = np.column_stack([_labels(data, c) for c in g.columns])
        if g.parent is not None:
            own = np.column_stack([build(by_name[g.parent]), own])
        components[g.name] = own
        return own

    for g in declarations:
        build(g)
    return components


def _labels(data: DataSource, column: str) -> NDArray:
    if column not in data:
        raise ConfigurationError(
            f"Grouping column '{column}' not found. Available: {sorted(data.keys())}",
            column=column,
        )
    values = np.asarray(data[column])
    if values.dtype.kind == 'f':
        missing = np.isnan(values)
    elif values.dtype == object:
        missing = np.array([v is None or (isinstance(v, float) and v != v)
                            for v in values], dtype=bool)
    else:
        missing = np.zeros(values.shape[0], dtype=bool)
    if np.any(missing):
        raise ValidationError(
            f"Grouping column '{column}' has {int(missing.sum())} missing label(s)"
        )
    return canonical_labels(values)


def canonical_label(value: Any) -> str:
    """String form of one label; integral floats print as integers (1.0 -> '1')."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def canonical_labels(values: NDArray) -> NDArray:
    """Vectorized canonical_label over a label column."""
    values = np.asarray(values)
    if values.dtype.kind in 'fO':
        return np.array([canonical_label(v) for v in values.tolist()], dtype=str)
    return values.astype(str)


def _unique_rows(comp: NDArray) -> tuple[NDArray, NDArray]:
    """Sorted distinct rows and the inverse index of every input row."""
    if comp.shape[0] == 0:
        return comp, np.empty(0, dtype=np.intp)
    keys, inverse = np.unique(comp, axis=0, return_inverse=True)
    return keys, inverse.reshape(-1).astype(np.intp)
