"""
Exception hierarchy for pylongreg.

All exceptions inherit from PyLongRegError so callers can catch any
library-specific failure with one clause. Each stage of the workflow
(loading, fitting, inference, selection) raises the narrowest subclass
that describes what went wrong.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""

from __future__ import annotations


class PyLongRegError(Exception):
    """Base exception for all pylongreg errors."""
    pass


# =====================================================================
# Validation
# =====================================================================

class ValidationError(PyLongRegError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.
    """
    pass


class DimensionMismatchError(DimensionError):
    """
    A contrast or coefficient vector does not line up with the model.

    Attributes:
        expected: Number of columns the model requires
        actual: Number of columns supplied
    """

    def __init__(
        self,
        message: str,
        expected: int | None = None,
        actual: int | None = None,
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class FormatError(ValidationError):
    """
    Tabular input is malformed.

    Raised by the loader when rows have inconsistent field counts or a
    column mixes numeric and non-numeric values.

    Attributes:
        line: 1-based line number in the source, if known
        column: Offending column name, if known
    """

    def __init__(
        self,
        message: str,
        line: int | None = None,
        column: str | None = None,
    ):
        super().__init__(message)
        self.line = line
        self.column = column


class UnknownLevelError(ValidationError):
    """
    A categorical value is outside the declared level set.

    Attributes:
        column: Column being coerced
        values: Offending values (sorted, deduplicated)
    """

    def __init__(
        self,
        message: str,
        column: str | None = None,
        values: tuple[str, ...] = (),
    ):
        super().__init__(message)
        self.column = column
        self.values = values


class InvalidResponseError(ValidationError):
    """
    The response column is not valid for the requested model family.

    Attributes:
        column: Response column name
        values: Offending values (first few, deduplicated)
    """

    def __init__(
        self,
        message: str,
        column: str | None = None,
        values: tuple = (),
    ):
        super().__init__(message)
        self.column = column
        self.values = values


class NotNestedError(ValidationError):
    """
    Two models cannot be compared by a likelihood-ratio test.

    Attributes:
        reason: Short machine-readable reason (e.g. 'terms', 'data', 'method')
    """

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


# =====================================================================
# Numerical
# =====================================================================

class NumericalError(PyLongRegError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically min(n, p))
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank


class RankDeficientError(SingularMatrixError):
    """
    The fixed-effects design matrix does not have full column rank.

    Attributes:
        aliased: Names of the columns that are linear combinations of
            earlier columns
    """

    def __init__(
        self,
        message: str,
        rank: int | None = None,
        expected_rank: int | None = None,
        aliased: tuple[str, ...] = (),
    ):
        super().__init__(
            message, matrix_name='X', rank=rank, expected_rank=expected_rank,
        )
        self.aliased = aliased


class NotPositiveDefiniteError(NumericalError):
    """
    Matrix is not positive definite.

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


class SingularFitError(NumericalError):
    """
    Estimated random-effects covariance is singular.

    The fit reached a boundary (a variance component at zero or a
    correlation at ±1). It is reported rather than silently corrected.

    Attributes:
        theta: Relative Cholesky factor elements at the optimum
        tolerance: Threshold below which a diagonal element counts as zero
    """

    def __init__(
        self,
        message: str,
        theta: tuple[float, ...] = (),
        tolerance: float | None = None,
    ):
        super().__init__(message)
        self.theta = theta
        self.tolerance = tolerance


# =====================================================================
# Convergence
# =====================================================================

class ConvergenceError(PyLongRegError):
    """
    Iterative algorithm failed to converge.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed (e.g., 'max_iterations', 'diverging')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold


class NonConvergenceError(ConvergenceError):
    """
    A model fit did not converge.

    Raised when the iteration budget is exhausted (reason
    'max_iterations') and when the optimizer stops without meeting
    its convergence criterion (reason 'optimizer_failure'). No partial
    model is returned.
    """
    pass
