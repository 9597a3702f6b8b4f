"""
Penalized Least Squares (PLS) solver for Linear Mixed Models.

For fixed θ (and hence fixed Λ_θ), this solves the penalized least squares
problem to obtain conditional modes of the random effects and profiled
fixed effects:

    minimize ‖y - Xβ - ZΛu‖² + ‖u‖²

where u = Λ⁻¹b are the "spherical" random effects. σ² is profiled out
(computed in closed form from the penalized RSS).

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48. Section 2.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pylongreg.core.exceptions import SingularMatrixError


@dataclass(frozen=True)
class PLSResult:
    """Result from penalized least squares solve.

    Attributes:
        beta: Fixed effects estimates (p,).
        u: Spherical random effects (q,).
        b: Conditional modes b = Λu (q,).
        sigma_sq: Profiled residual variance.
        pwrss: Penalized residual sum of squares ‖y - Xβ - Zb‖² + ‖u‖².
        log_det_L: log|Λ'Z'ZΛ + I|.
        log_det_RX: log|X'V*⁻¹X|, the Schur complement determinant.
        fitted: Xβ + Zb (n,).
        residuals: y - fitted (n,).
    """
    beta: NDArray
    u: NDArray
    b: NDArray
    sigma_sq: float
    pwrss: float
    log_det_L: float
    log_det_RX: float
    fitted: NDArray
    residuals: NDArray


def solve_pls(
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    Lambda: NDArray,
    reml: bool = True,
) -> PLSResult:
    """Solve the penalized least squares problem.

    For the LMM: y = Xβ + Zb + ε, where b ~ N(0, σ²ΛΛ'), ε ~ N(0, σ²I).
    The normal equations of the penalized system are

        [Λ'Z'ZΛ + I   Λ'Z'X ] [u]   [Λ'Z'y]
        [X'ZΛ         X'X   ] [β] = [X'y  ]

    and u is eliminated through L = chol(Λ'Z'ZΛ + I).

    Args:
        X: Fixed effects design matrix (n, p). May have zero columns.
        Z: Random effects design matrix (n, q).
        y: Response vector (n,), already net of any offset.
        Lambda: Relative covariance factor (q, q).
        reml: If True, σ² = pwrss/(n-p); otherwise pwrss/n.

    Returns:
        PLSResult with all estimates.

    Raises:
        SingularMatrixError: If the Schur complement X'V*⁻¹X is singular.
    """
    n, p = X.shape
    q = Z.shape[1]

    ZLam = Z @ Lambda
    L = np.linalg.cholesky(ZLam.T @ ZLam + np.eye(q))

    cu = sla.solve_triangular(L, ZLam.T @ y, lower=True)
    CX = sla.solve_triangular(L, ZLam.T @ X, lower=True)

    if p > 0:
        # RX RX' = X'X - CX'CX
        RtR = X.T @ X - CX.T @ CX
        try:
            RX = np.linalg.cholesky(RtR)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(
                "Fixed-effects cross-product is singular given the random effects",
                matrix_name="X'V*⁻¹X",
                expected_rank=p,
            ) from e
        beta = sla.cho_solve((RX, True), X.T @ y - CX.T @ cu)
        log_det_RX = 2.0 * float(np.sum(np.log(np.diag(RX))))
    else:
        beta = np.zeros(0)
        log_det_RX = 0.0

    # L L' u = Λ'Z'(y - Xβ)
    cu_final = sla.solve_triangular(L, ZLam.T @ (y - X @ beta), lower=True)
    u = sla.solve_triangular(L.T, cu_final, lower=False)
    b = Lambda @ u

    fitted = X @ beta + Z @ b
    residuals = y - fitted
    pwrss = float(residuals @ residuals) + float(u @ u)
    sigma_sq = pwrss / (n - p) if reml else pwrss / n

    return PLSResult(
        beta=beta,
        u=u,
        b=b,
        sigma_sq=sigma_sq,
        pwrss=pwrss,
        log_det_L=2.0 * float(np.sum(np.log(np.diag(L)))),
        log_det_RX=log_det_RX,
        fitted=fitted,
        residuals=residuals,
    )
