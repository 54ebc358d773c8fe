"""
Exception and warning hierarchy for PyMultilevel.

All exceptions inherit from PyMultilevelError to allow catching any
library-specific error. Non-fatal conditions (an exhausted iteration
budget, a variance component on the boundary) are warnings rather than
exceptions: the estimates are still usable, so they are reported and the
caller decides whether to accept them.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Configuration problems are raised before any numerical work
    - Never catch and re-raise with less information
"""


class PyMultilevelError(Exception):
    """Base exception for all PyMultilevel errors."""
    pass


class ValidationError(PyMultilevelError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple columns have inconsistent lengths.
    """
    pass


class ConfigurationError(ValidationError):
    """
    The model specification cannot be fitted as declared.

    Raised for malformed specs, unknown columns, ambiguous nesting
    declarations and rank-deficient fixed-effect designs. Never retried.

    Attributes:
        column: Offending column or grouping factor name, if any
        rank: Numerical rank of the fixed-effect design (rank deficiency)
        expected_rank: Number of fixed-effect columns (rank deficiency)
    """

    def __init__(
        self,
        message: str,
        column: str | None = None,
        rank: int | None = None,
        expected_rank: int | None = None,
    ):
        super().__init__(message)
        self.column = column
        self.rank = rank
        self.expected_rank = expected_rank


class NumericalError(PyMultilevelError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class NotPositiveDefiniteError(NumericalError):
    """
    Matrix is not positive definite.

    Raised when an operation requires a positive definite matrix
    (e.g., Cholesky decomposition) but the matrix fails this requirement.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        min_eigenvalue: Minimum eigenvalue, if computed
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        min_eigenvalue: float | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.min_eigenvalue = min_eigenvalue


class UnseenLevelError(PyMultilevelError):
    """
    Prediction rows reference group levels absent from the fit data.

    Raised only when the unseen-level policy is 'reject'. Request-scoped:
    the fitted model is unaffected.

    Attributes:
        factor: Grouping factor name
        levels: Canonical keys of the unseen levels (display form)
    """

    def __init__(self, message: str, factor: str, levels: tuple[str, ...]):
        super().__init__(message)
        self.factor = factor
        self.levels = levels


class FitCancelled(PyMultilevelError):
    """
    A fit or simulation was cancelled at an iteration boundary.

    Attributes:
        iterations: Outer iterations (or draws) completed before cancellation
    """

    def __init__(self, message: str, iterations: int):
        super().__init__(message)
        self.iterations = iterations


class PyMultilevelWarning(UserWarning):
    """Base class for all PyMultilevel warnings."""
    pass


class ConvergenceFailure(PyMultilevelWarning):
    """
    An iterative solver exhausted its budget without converging.

    Issued for the PIRLS inner loop and for the outer variance-component
    optimizer. The best available estimates are still returned and the
    fitted model's status is 'max_iterations_exceeded'.
    """
    pass


class SingularFitWarning(PyMultilevelWarning):
    """
    At least one variance component converged to (numerically) zero.

    A legitimate terminal state: the grouping factor explains no residual
    variation and the model reduces to ordinary logistic regression with
    respect to it.
    """
    pass
