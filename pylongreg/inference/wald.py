"""
Joint Wald tests of linear hypotheses Lβ = r.

    W = (Lβ̂ - r)' (L V L')⁻¹ (Lβ̂ - r)

test='chisq' refers W to χ²(q); test='F' refers W/q to F(q, n - p).
V is the model-based or a sandwich covariance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import stats

from pylongreg.core.exceptions import DimensionMismatchError, ValidationError
from pylongreg.core.fitted import FittedModel
from pylongreg.core.validation import check_choice
from pylongreg.inference.variance import standard_errors

TEST_CHISQ = 'chisq'
TEST_F = 'F'


@dataclass(frozen=True)
class WaldTestResult:
    """
    Result of a joint Wald test. Iterates as (statistic, df, p_value).

    Attributes:
        statistic: W for test='chisq', W/q for test='F'.
        df: Numerator degrees of freedom q (rows of L).
        p_value: Upper-tail p-value.
        test: 'chisq' or 'F'.
        df_denominator: Residual df for the F test, else None.
        estimator: Covariance estimator used.
    """
    statistic: float
    df: int
    p_value: float
    test: str
    df_denominator: float | None
    estimator: str

    def __iter__(self) -> Iterator[float]:
        return iter((self.statistic, self.df, self.p_value))


def wald_test(
    model: FittedModel,
    estimator: str,
    contrast: ArrayLike,
    *,
    rhs: ArrayLike | None = None,
    test: str = TEST_CHISQ,
) -> WaldTestResult:
    """
    Jointly test the rows of a contrast matrix against zero (or rhs).

    Args:
        model: Fitted model.
        estimator: 'model', 'CR0', 'CR1' or 'CR2'.
        contrast: Matrix L (q, p); a 1-D array is one row.
        rhs: Hypothesized values r (q,). Defaults to zeros.
        test: 'chisq' (default) or 'F'.

    Returns:
        WaldTestResult.

    Raises:
        DimensionMismatchError: If L does not have one column per
            coefficient, or rhs does not have one entry per row.
        ValidationError: If the rows of L are linearly dependent.

    Examples:
        >>> L = term_contrast(model, 'rank')
        >>> stat, df, p = wald_test(model, 'model', L)
    """
    check_choice(test, (TEST_CHISQ, TEST_F), 'test')
    p = len(model.beta)
    L = np.asarray(contrast, dtype=np.float64)
    if L.ndim == 1:
        L = L.reshape(1, -1)
    if L.ndim != 2 or L.shape[1] != p:
        actual = L.shape[1] if L.ndim == 2 else None
        raise DimensionMismatchError(
            f"Contrast matrix has {actual} columns; the model has {p} "
            f"coefficients ({', '.join(model.coefficient_names)})",
            expected=p,
            actual=actual,
        )
    q = L.shape[0]
    r = np.zeros(q) if rhs is None else np.asarray(rhs, dtype=np.float64).ravel()
    if len(r) != q:
        raise DimensionMismatchError(
            f"rhs has {len(r)} entries; the contrast has {q} rows",
            expected=q,
            actual=len(r),
        )
    if np.linalg.matrix_rank(L) < q:
        raise ValidationError(
            f"Contrast rows are linearly dependent (rank "
            f"{np.linalg.matrix_rank(L)} < {q} rows)"
        )

    V = standard_errors(model, estimator).matrix
    diff = L @ model.beta - r
    LVL = L @ V @ L.T
    try:
        W = float(diff @ np.linalg.solve(LVL, diff))
    except np.linalg.LinAlgError as e:
        raise ValidationError(
            f"L V L' is singular under the {estimator} estimator: {e}"
        ) from e

    if test == TEST_F:
        ddf = float(model.working.df_residual)
        F = W / q
        return WaldTestResult(
            statistic=F, df=q, p_value=float(stats.f.sf(F, q, ddf)),
            test=test, df_denominator=ddf, estimator=estimator,
        )
    return WaldTestResult(
        statistic=W, df=q, p_value=float(stats.chi2.sf(W, q)),
        test=test, df_denominator=None, estimator=estimator,
    )


def term_contrast(model: FittedModel, term: Any) -> NDArray[np.floating[Any]]:
    """
    Contrast selecting every design column of a term.

    Args:
        model: Fitted model.
        term: Coefficient name ('rank2'), term label ('rank') or Term.

    Returns:
        L with one unit row per column of the term.

    Raises:
        ValidationError: If the model has no such term.
    """
    cols = model.columns_for(term)
    L = np.zeros((len(cols), len(model.beta)), dtype=np.float64)
    for row, col in enumerate(cols):
        L[row, col] = 1.0
    return L
