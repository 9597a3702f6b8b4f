"""
Column-pivoted QR decomposition and least squares.

Used by the design builder (rank checks with aliased-column reporting)
and by IRLS (one weighted least squares solve per iteration).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pylongreg.core.exceptions import RankDeficientError


@dataclass(frozen=True)
class QRResult:
    """
    Result of a pivoted QR decomposition X[:, pivot] = Q R.

    Attributes:
        Q: Orthonormal factor (n x k), k = min(n, p)
        R: Upper triangular factor (k x p)
        pivot: Column permutation applied to X
        rank: Numerical rank determined from the R diagonal
    """
    Q: NDArray[np.floating[Any]]
    R: NDArray[np.floating[Any]]
    pivot: NDArray[np.intp]
    rank: int


def qr_cpu(X: NDArray[np.floating[Any]], tol: float = 1e-7) -> QRResult:
    """
    Economy QR with column pivoting (LAPACK geqp3 via SciPy).

    The rank is the number of |R_jj| exceeding tol * |R_00|, which is
    the criterion R's lm.fit/glm.fit apply with tol = 1e-7.

    Args:
        X: Matrix to decompose (n x p)
        tol: Relative tolerance for the rank decision

    Returns:
        QRResult with Q, R, pivot and numerical rank
    """
    Q, R, pivot = sla.qr(X, mode='economic', pivoting=True)
    diag_R = np.abs(np.diag(R))
    if len(diag_R) > 0 and diag_R[0] > 0:
        rank = int(np.sum(diag_R > tol * diag_R[0]))
    else:
        rank = 0
    return QRResult(Q=Q, R=R, pivot=pivot, rank=rank)


def qr_solve(
    X: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
) -> tuple[NDArray[np.floating[Any]], QRResult]:
    """
    Solve min_β ||y - Xβ||² via pivoted QR.

    Aliased coefficients (beyond the numerical rank) are set to NaN.

    Returns:
        (β, QRResult)
    """
    n, p = X.shape
    qr = qr_cpu(X)
    r = qr.rank
    beta = np.full(p, np.nan, dtype=np.float64)
    if r > 0:
        Qty = qr.Q[:, :r].T @ y
        beta_piv = sla.solve_triangular(qr.R[:r, :r], Qty, lower=False)
        beta[qr.pivot[:r]] = beta_piv
    return beta, qr


def check_full_rank(
    X: NDArray[np.floating[Any]],
    column_names: Sequence[str],
) -> int:
    """
    Verify a design matrix has full column rank.

    Args:
        X: Design matrix (n x p)
        column_names: Names of the p columns, used to report aliasing

    Returns:
        The rank (always p on success)

    Raises:
        RankDeficientError: If some columns are linear combinations of
            others. The exception lists the aliased columns.
    """
    n, p = X.shape
    if p == 0:
        return 0
    if n < p:
        raise RankDeficientError(
            f"Design matrix has more columns ({p}) than rows ({n})",
            rank=n,
            expected_rank=p,
        )
    qr = qr_cpu(X)
    if qr.rank < p:
        aliased = tuple(column_names[j] for j in sorted(qr.pivot[qr.rank:]))
        raise RankDeficientError(
            f"Design matrix is rank-deficient: rank={qr.rank}, expected={p}. "
            f"Aliased columns: {', '.join(aliased)}",
            rank=qr.rank,
            expected_rank=p,
            aliased=aliased,
        )
    return qr.rank
