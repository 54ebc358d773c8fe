"""
Tolerance tiers for numerical validation.

Defines precision expectations for comparing quantities that come out of
different numerical paths:
- EXACT: same computation repeated (determinism, serialization)
- LINEAR_ALGEBRA: direct solves of the same system by different routes
- OPTIMIZER: quantities at an optimum found by an iterative outer loop

Used by the test suite and by the singular-fit check.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


# Bit-for-bit reproduction
EXACT = ToleranceTier(
    rtol=0.0,
    atol=0.0,
    name='exact',
    description='Same computation repeated, identical floats',
)

# Same linear system, different factorization or column order
LINEAR_ALGEBRA = ToleranceTier(
    rtol=1e-8,
    atol=1e-10,
    name='linear_algebra',
    description='Direct solves of the same system by different routes',
)

# Estimates at an optimum located by L-BFGS-B / Nelder-Mead
OPTIMIZER = ToleranceTier(
    rtol=1e-4,
    atol=1e-4,
    name='optimizer',
    description='Converged outer-loop estimates',
)

# Default θ threshold below which a variance component counts as zero
# (lme4's isSingular uses the same value).
SINGULAR_THETA = 1e-4


def select_tolerance(comparison: str) -> ToleranceTier:
    """Select the tolerance tier for a named kind of comparison."""
    tiers = {t.name: t for t in (EXACT, LINEAR_ALGEBRA, OPTIMIZER)}
    if comparison not in tiers:
        raise ValueError(
            f"Unknown comparison {comparison!r}. Valid: {sorted(tiers)}"
        )
    return tiers[comparison]
