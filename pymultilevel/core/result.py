"""
Generic result container for all PyMultilevel computations.

The Result class provides a standardized envelope that fits and
predictions use. This enables shared tooling for timing, reporting,
reproducibility, and serialization while allowing each computation to
define its own parameter structure.

Design decisions:
    - Generic over parameter payload P for type safety
    - status is mandatory: silent partial success is not representable
    - info dict for flexible metadata (iterations, diagnostics)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) for reproducibility
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type

# Terminal states of an iterative computation
STATUS_CONVERGED = 'converged'
STATUS_MAX_ITERATIONS = 'max_iterations_exceeded'
STATUS_OK = 'ok'  # non-iterative computations (predict, simulate)

VALID_STATUSES = frozenset({STATUS_CONVERGED, STATUS_MAX_ITERATIONS, STATUS_OK})


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for statistical computations.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific parameters (coefficients, estimates, etc.)
        status: Terminal state, one of VALID_STATUSES
        info: Structured metadata (method, iterations, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the backend that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=FitParams(...),
        ...     status='converged',
        ...     info={'optimizer': 'L-BFGS-B', 'n_iter': 12},
        ...     timing={'total_seconds': 0.5, 'optimization': 0.4},
        ...     backend_name='cpu_laplace',
        ... )
    """
    params: P
    status: str
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Unknown status {self.status!r}. "
                f"Valid: {sorted(VALID_STATUSES)}"
            )

    @property
    def converged(self) -> bool:
        """True unless an iterative budget was exhausted."""
        return self.status != STATUS_MAX_ITERATIONS

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
