"""
Core infrastructure for pylongreg.

Shared abstractions used by every sub-package (data, design, mixed,
gls, regression, inference, selection).

Key components:
    result: Generic Result[P] envelope
    fitted: FittedModel / WorkingModel
    protocols: InferenceCapable protocol
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing, tolerances, linear algebra, Satterthwaite helpers
"""

from pylongreg.core.result import Result
from pylongreg.core.fitted import FittedModel, WorkingModel
from pylongreg.core.protocols import InferenceCapable
from pylongreg.core.exceptions import (
    PyLongRegError,
    ValidationError,
    DimensionError,
    DimensionMismatchError,
    FormatError,
    UnknownLevelError,
    InvalidResponseError,
    NotNestedError,
    NumericalError,
    SingularMatrixError,
    RankDeficientError,
    NotPositiveDefiniteError,
    SingularFitError,
    ConvergenceError,
    NonConvergenceError,
)

__all__ = [
    "Result",
    "FittedModel",
    "WorkingModel",
    "InferenceCapable",
    "PyLongRegError",
    "ValidationError",
    "DimensionError",
    "DimensionMismatchError",
    "FormatError",
    "UnknownLevelError",
    "InvalidResponseError",
    "NotNestedError",
    "NumericalError",
    "SingularMatrixError",
    "RankDeficientError",
    "NotPositiveDefiniteError",
    "SingularFitError",
    "ConvergenceError",
    "NonConvergenceError",
]
