"""
Model specification for hierarchical logistic regression.

A model is declared, not parsed: fixed-effect terms are tagged variants
(Numeric, Boolean, Categorical) and grouping factors are explicit
declarations with an optional parent (nesting) and an optional crossed
flag. ModelSpec.validate() checks the declaration before any data is
touched.

Formula equivalents (lme4 notation):

    y ~ x + (1 | school/class)
        ModelSpec.nested('y', [Numeric('x')], 'school', 'class')

    y ~ x + (1 | school) + (1 | class:school)
        ModelSpec('y', (Numeric('x'),), (
            GroupingFactor('school', 'school'),
            GroupingFactor.interaction('class', 'school'),
        ))

    y ~ x + (1 | subject) + (1 | item)
        ModelSpec('y', (Numeric('x'),), (
            GroupingFactor('subject', 'subject', crossed=True),
            GroupingFactor('item', 'item', crossed=True),
        ))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

import numpy as np

from pymultilevel.core.exceptions import ConfigurationError


FAMILY = 'binomial'
LINK = 'logit'


# =====================================================================
# Fixed-effect terms
# =====================================================================

@dataclass(frozen=True)
class Numeric:
    """A numeric covariate entered linearly."""
    column: str

    kind = 'numeric'


@dataclass(frozen=True)
class Boolean:
    """A boolean (or 0/1) covariate entered as a single indicator."""
    column: str

    kind = 'boolean'


@dataclass(frozen=True)
class Categorical:
    """A categorical covariate expanded to treatment-coded indicators.

    Attributes:
        column: Source column.
        reference: Reference level (absorbed by the intercept). None uses
            the first level in sorted order.
    """
    column: str
    reference: Any = None

    kind = 'categorical'


Term = Union[Numeric, Boolean, Categorical]

_TERM_KINDS: dict[str, type] = {
    'numeric': Numeric,
    'boolean': Boolean,
    'categorical': Categorical,
}


def _json_scalar(value: Any) -> Any:
    """JSON-native form of a reference level; other objects are stringified."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def term_to_dict(term: Term) -> dict[str, Any]:
    out: dict[str, Any] = {'kind': term.kind, 'column': term.column}
    if isinstance(term, Categorical) and term.reference is not None:
        out['reference'] = _json_scalar(term.reference)
    return out


def term_from_dict(d: dict[str, Any]) -> Term:
    cls = _TERM_KINDS.get(d.get('kind'))
    if cls is None:
        raise ConfigurationError(f"Unknown term kind: {d.get('kind')!r}")
    if cls is Categorical:
        return Categorical(d['column'], d.get('reference'))
    return cls(d['column'])


# =====================================================================
# Grouping factors
# =====================================================================

@dataclass(frozen=True)
class GroupingFactor:
    """Declaration of one random-intercept grouping factor.

    Attributes:
        name: Factor name used in reports and for parent references.
        columns: Label column, or a tuple of columns forming a compound
            key (the lme4 'B:A' construction).
        parent: Name of the enclosing factor for nested factors. A level
            of a nested factor is identified by its parent's key plus its
            own labels, so labels may repeat across parents.
        crossed: Declares that this factor is meant to cross its sibling
            factors. Required when neither of two sibling factors refines
            the other, since repeated labels would otherwise be ambiguous.
    """
    name: str
    columns: tuple[str, ...] | str
    parent: str | None = None
    crossed: bool = False

    def __post_init__(self):
        if isinstance(self.columns, str):
            object.__setattr__(self, 'columns', (self.columns,))
        else:
            object.__setattr__(self, 'columns', tuple(self.columns))

    @classmethod
    def interaction(cls, *columns: str, name: str | None = None,
                    crossed: bool = False) -> GroupingFactor:
        """Compound-key factor, e.g. interaction('class', 'school') ≡ class:school."""
        if len(columns) < 2:
            raise ConfigurationError(
                "interaction() needs at least two columns"
            )
        return cls(name or ':'.join(columns), tuple(columns), crossed=crossed)

    @property
    def is_compound(self) -> bool:
        return len(self.columns) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'columns': list(self.columns),
            'parent': self.parent,
            'crossed': self.crossed,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GroupingFactor:
        return cls(d['name'], tuple(d['columns']), d.get('parent'),
                   bool(d.get('crossed', False)))


# =====================================================================
# Model specification
# =====================================================================

@dataclass(frozen=True)
class ModelSpec:
    """Complete, statically validated model declaration.

    The family is fixed to Bernoulli response with logit link; an
    intercept is always included in the fixed effects.
    """
    response: str
    terms: tuple[Term, ...] = ()
    groups: tuple[GroupingFactor, ...] = ()
    family: str = field(default=FAMILY)
    link: str = field(default=LINK)

    def __post_init__(self):
        object.__setattr__(self, 'terms', tuple(self.terms))
        object.__setattr__(self, 'groups', tuple(self.groups))

    @classmethod
    def nested(cls, response: str, terms, *columns: str) -> ModelSpec:
        """Build the (1 | A/B/...) chain: each factor nested in the previous."""
        if not columns:
            raise ConfigurationError("nested() needs at least one grouping column")
        groups = []
        parent = None
        for col in columns:
            groups.append(GroupingFactor(col, col, parent=parent))
            parent = col
        return cls(response, tuple(terms), tuple(groups))

    # --- validation ---

    def validate(self) -> ModelSpec:
        """Check the declaration; return self for chaining.

        Raises:
            ConfigurationError: On any malformed declaration.
        """
        if self.family != FAMILY or self.link != LINK:
            raise ConfigurationError(
                f"Only the {FAMILY}({LINK}) family is supported, "
                f"got {self.family}({self.link})"
            )
        if not isinstance(self.response, str) or not self.response:
            raise ConfigurationError("response must be a non-empty column name")

        seen_terms: set[str] = set()
        for term in self.terms:
            if not isinstance(term, (Numeric, Boolean, Categorical)):
                raise ConfigurationError(
                    f"Fixed-effect terms must be Numeric, Boolean or "
                    f"Categorical, got {type(term).__name__}"
                )
            if term.column == self.response:
                raise ConfigurationError(
                    f"Response '{self.response}' cannot also be a fixed-effect term",
                    column=term.column,
                )
            if term.column in seen_terms:
                raise ConfigurationError(
                    f"Fixed-effect column '{term.column}' listed twice",
                    column=term.column,
                )
            seen_terms.add(term.column)

        if not self.groups:
            raise ConfigurationError("At least one grouping factor required")

        names = [g.name for g in self.groups]
        for g in self.groups:
            if not isinstance(g, GroupingFactor):
                raise ConfigurationError(
                    f"Grouping factors must be GroupingFactor, got {type(g).__name__}"
                )
            if names.count(g.name) > 1:
                raise ConfigurationError(
                    f"Grouping factor '{g.name}' declared twice", column=g.name
                )
            if not g.columns:
                raise ConfigurationError(
                    f"Grouping factor '{g.name}' has no label columns", column=g.name
                )
            if self.response in g.columns:
                raise ConfigurationError(
                    f"Response '{self.response}' cannot be a grouping column",
                    column=self.response,
                )
            if g.parent is not None:
                if g.parent == g.name:
                    raise ConfigurationError(
                        f"Grouping factor '{g.name}' cannot be its own parent",
                        column=g.name,
                    )
                if g.parent not in names:
                    raise ConfigurationError(
                        f"Grouping factor '{g.name}' declares unknown parent "
                        f"'{g.parent}'. Declared: {names}",
                        column=g.name,
                    )

        # Raises on cycles
        self.factor_order()
        return self

    def factor_order(self) -> tuple[GroupingFactor, ...]:
        """Factors sorted so that every parent precedes its children."""
        by_name = {g.name: g for g in self.groups}
        ordered: list[GroupingFactor] = []
        placed: set[str] = set()

        def visit(g: GroupingFactor, trail: tuple[str, ...]) -> None:
            if g.name in placed:
                return
            if g.name in trail:
                cycle = ' -> '.join(trail + (g.name,))
                raise ConfigurationError(
                    f"Cyclic nesting declaration: {cycle}", column=g.name
                )
            if g.parent is not None:
                visit(by_name[g.parent], trail + (g.name,))
            placed.add(g.name)
            ordered.append(g)

        for g in self.groups:
            visit(g, ())
        return tuple(ordered)

    def ancestors(self, name: str) -> tuple[str, ...]:
        """Names of the enclosing factors of `name`, outermost first."""
        by_name = {g.name: g for g in self.groups}
        chain: list[str] = []
        parent = by_name[name].parent
        while parent is not None:
            chain.append(parent)
            parent = by_name[parent].parent
        return tuple(reversed(chain))

    @property
    def required_columns(self) -> tuple[str, ...]:
        """Columns needed to build a prediction row (response excluded)."""
        cols: list[str] = [t.column for t in self.terms]
        for g in self.groups:
            for c in g.columns:
                if c not in cols:
                    cols.append(c)
        return tuple(cols)

    # --- serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            'response': self.response,
            'terms': [term_to_dict(t) for t in self.terms],
            'groups': [g.to_dict() for g in self.groups],
            'family': self.family,
            'link': self.link,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ModelSpec:
        return cls(
            response=d['response'],
            terms=tuple(term_from_dict(t) for t in d.get('terms', ())),
            groups=tuple(GroupingFactor.from_dict(g) for g in d.get('groups', ())),
            family=d.get('family', FAMILY),
            link=d.get('link', LINK),
        )
