"""
Block-diagonal generalized least squares.

Every linear model in the package has a marginal covariance of the form

    Var(y) = σ² Φ,   Φ = blockdiag(Φ_1, ..., Φ_m)

with one block per independent cluster. Given Φ (known up to σ²), the
coefficients, the weighted residual sum of squares and the determinant
terms of the Gaussian likelihood are computed cluster by cluster from
the Cholesky factor of each block. Nothing larger than one cluster is
ever factored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pylongreg.core.exceptions import NotPositiveDefiniteError, SingularMatrixError


@dataclass(frozen=True)
class BlockGLS:
    """
    Whitened least squares fit for fixed Φ.

    Attributes:
        beta: GLS coefficients (p,).
        residuals: y - Xβ (n,).
        rss: r'Φ⁻¹r.
        logdet_phi: log|Φ|.
        logdet_xtx: log|X'Φ⁻¹X|.
        xtx_inv: (X'Φ⁻¹X)⁻¹, the bread of every variance estimate.
    """
    beta: NDArray[np.floating[Any]]
    residuals: NDArray[np.floating[Any]]
    rss: float
    logdet_phi: float
    logdet_xtx: float
    xtx_inv: NDArray[np.floating[Any]]


def block_gls(
    X: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
    clusters: Sequence[NDArray[np.intp]],
    phi_blocks: Sequence[NDArray[np.floating[Any]]],
) -> BlockGLS:
    """
    Solve min_β (y - Xβ)'Φ⁻¹(y - Xβ) for block-diagonal Φ.

    Args:
        X: Design matrix (n, p).
        y: Response (n,).
        clusters: Row indices of each cluster.
        phi_blocks: Φ_i for each cluster, in the same order.

    Returns:
        BlockGLS with coefficients and likelihood ingredients.

    Raises:
        NotPositiveDefiniteError: If a block is not positive definite.
        SingularMatrixError: If X'Φ⁻¹X is singular.
    """
    n, p = X.shape
    Xw = np.empty_like(X, dtype=np.float64)
    yw = np.empty(n, dtype=np.float64)
    logdet_phi = 0.0
    for idx, phi in zip(clusters, phi_blocks):
        L = cholesky_block(phi)
        Xw[idx] = sla.solve_triangular(L, X[idx], lower=True)
        yw[idx] = sla.solve_triangular(L, y[idx], lower=True)
        logdet_phi += 2.0 * float(np.sum(np.log(np.diag(L))))

    if p == 0:
        beta = np.zeros(0)
        resid_w = yw
        logdet_xtx = 0.0
        xtx_inv = np.zeros((0, 0))
    else:
        XtX = Xw.T @ Xw
        try:
            R = np.linalg.cholesky(XtX)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(
                "X'Φ⁻¹X is singular; the design is not estimable under "
                "this covariance structure",
                matrix_name="X'Φ⁻¹X",
                expected_rank=p,
            ) from e
        beta = sla.cho_solve((R, True), Xw.T @ yw)
        resid_w = yw - Xw @ beta
        logdet_xtx = 2.0 * float(np.sum(np.log(np.diag(R))))
        xtx_inv = sla.cho_solve((R, True), np.eye(p))

    return BlockGLS(
        beta=beta,
        residuals=y - X @ beta,
        rss=float(resid_w @ resid_w),
        logdet_phi=logdet_phi,
        logdet_xtx=logdet_xtx,
        xtx_inv=xtx_inv,
    )


def cholesky_block(phi: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """Lower Cholesky factor of one covariance block.

    Raises:
        NotPositiveDefiniteError: With the smallest eigenvalue attached.
    """
    try:
        return np.linalg.cholesky(phi)
    except np.linalg.LinAlgError as e:
        min_eig = float(np.linalg.eigvalsh(phi)[0])
        raise NotPositiveDefiniteError(
            f"Working covariance block is not positive definite "
            f"(smallest eigenvalue {min_eig:.3g})",
            matrix_name='Φ_i',
            min_eigenvalue=min_eig,
        ) from e


def profiled_log_likelihood(fit: BlockGLS, n: int, p: int, reml: bool) -> float:
    """
    Gaussian log-likelihood with σ² profiled out.

    ML:   -½ [log|Φ| + n (1 + log(2π rss/n))]
    REML: -½ [log|Φ| + log|X'Φ⁻¹X| + (n-p)(1 + log(2π rss/(n-p)))]

    The REML form is the lme4 convention (no log|X'X| correction), so
    linear mixed models and GLS fits report comparable values.
    """
    if reml:
        df = n - p
        return -0.5 * (
            fit.logdet_phi + fit.logdet_xtx
            + df * (1.0 + np.log(2.0 * np.pi * fit.rss / df))
        )
    return -0.5 * (fit.logdet_phi + n * (1.0 + np.log(2.0 * np.pi * fit.rss / n)))


def deviance_at_sigma(
    fit: BlockGLS,
    n: int,
    p: int,
    sigma: float,
    reml: bool,
) -> float:
    """-2 log-likelihood at a given σ (σ not profiled out)."""
    sigma_sq = sigma ** 2
    m = n - p if reml else n
    dev = m * np.log(2.0 * np.pi * sigma_sq) + fit.logdet_phi + fit.rss / sigma_sq
    if reml:
        dev += fit.logdet_xtx
    return float(dev)
