"""
Logistic regression design.

LogisticDesign wraps a DesignMatrix and adds the one check a binomial
fit needs on top of it: the response must be exactly 0/1. The check runs
before the model matrix is built so that a categorical or missing
response is reported as an invalid response rather than as a generic
design problem.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import NDArray

from pylongreg.core.exceptions import InvalidResponseError
from pylongreg.data.table import Table, format_level
from pylongreg.design.matrix import DesignMatrix, build_design
from pylongreg.design.spec import ModelSpec


@dataclass(frozen=True)
class LogisticDesign:
    """
    Validated design for a logistic regression.

    Construction:
        LogisticDesign.from_table(table, spec)
    """
    design: DesignMatrix
    intercept: bool

    @classmethod
    def from_table(cls, table: Table, spec: ModelSpec) -> LogisticDesign:
        """
        Build the design after validating the binary response.

        Raises:
            InvalidResponseError: If the response is categorical, has
                missing values or takes values other than 0 and 1.
            ValidationError: If the spec does not match the table.
            RankDeficientError: If the model matrix is rank-deficient.
        """
        spec.validate(table)
        check_binary_response(table, spec.response)
        return cls(design=build_design(table, spec), intercept=spec.intercept)

    @property
    def X(self) -> NDArray[np.floating[Any]]:
        return self.design.X

    @property
    def y(self) -> NDArray[np.floating[Any]]:
        return self.design.y

    @property
    def n(self) -> int:
        return self.design.n

    @property
    def p(self) -> int:
        return self.design.p


def check_binary_response(table: Table, column: str) -> None:
    """
    Verify a response column holds only the values 0 and 1.

    Raises:
        InvalidResponseError: With the offending values attached.
    """
    if table.is_categorical(column):
        raise InvalidResponseError(
            f"Response '{column}' is categorical with levels "
            f"{list(table.levels(column))}; logistic regression needs a 0/1 column",
            column=column,
            values=table.levels(column),
        )
    missing = table.is_missing(column)
    if missing.any():
        raise InvalidResponseError(
            f"Response '{column}' has {int(missing.sum())} missing value(s)",
            column=column,
        )
    validate_binary(table[column], column)


def validate_binary(y: NDArray, name: str = 'y') -> None:
    """Raise InvalidResponseError unless every value is exactly 0 or 1."""
    y = np.asarray(y, dtype=np.float64)
    bad = ~np.isin(y, (0.0, 1.0))
    if bad.any():
        offending = tuple(sorted({format_level(v) for v in y[bad]}))[:5]
        raise InvalidResponseError(
            f"Response '{name}' must contain only 0 and 1; "
            f"found {', '.join(offending)}",
            column=name,
            values=offending,
        )
