"""
Cluster-robust sandwich estimators over the working model.

Every fit kind solves estimating equations of the form

    Σ_i X_i' W_i e_i = 0,    W_i = Φ_i⁻¹

so one implementation serves linear mixed models, GLS and logistic
regression:

    bread  M = (Σ X_i' W_i X_i)⁻¹
    meat   Σ X_i' W_i A_i e_i e_i' A_i' W_i X_i
    V      = M · meat · M

CR0 uses A_i = I; CR1 scales CR0 by m/(m-1); CR2 (bias-reduced
linearization) uses A_i = L_i C_i^{-1/2} L_i⁻¹ with Φ_i = L_i L_i' and
C_i = I - L_i⁻¹ X_i M X_i' L_i⁻ᵀ, so that A_i (Φ - X M X')_ii A_i' = Φ_i
and E[V_CR2] = Var(β̂) when the working model is correct.

Degrees of freedom for a contrast follow Bell & McCaffrey (2002) in the
form of Pustejovsky & Tipton (2018): c'Vc = Σ_i (u_i'y)², so under the
working model its Satterthwaite df is (tr Ω)² / tr(Ω²) with
Ω_ij = u_i' Φ u_j.

References:
    Bell, R. M., & McCaffrey, D. F. (2002). Bias reduction in standard
    errors for linear regression with multi-stage samples.
    Pustejovsky, J. E., & Tipton, E. (2018). Small-sample methods for
    cluster-robust variance estimation and hypothesis testing in fixed
    effects models. JBES 36(4).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pylongreg.core.capabilities import ESTIMATOR_CR1, ESTIMATOR_CR2
from pylongreg.core.compute.linalg import cholesky_block
from pylongreg.core.exceptions import SingularMatrixError, ValidationError
from pylongreg.core.protocols import WorkingModelLike

# Eigenvalues of C_i below this are treated as zero (Moore-Penrose C^{-1/2})
_EIGEN_TOL = 1e-12


@dataclass(frozen=True, eq=False)
class SandwichPieces:
    """
    Per-cluster ingredients of a sandwich estimate.

    Attributes:
        bread: M = (Σ X_i'W_iX_i)⁻¹ (p, p).
        WX: Stacked W_i X_i (n, p).
        chol: Lower Cholesky factor L_i of each Φ_i.
        adjustments: A_i for each cluster (identity for CR0/CR1).
    """
    bread: NDArray[np.floating[Any]]
    WX: NDArray[np.floating[Any]]
    chol: tuple[NDArray[np.floating[Any]], ...]
    adjustments: tuple[NDArray[np.floating[Any]], ...]


def sandwich_pieces(working: WorkingModelLike, estimator: str) -> SandwichPieces:
    """Factor the working model and build the residual adjustments."""
    X = working.X
    n, p = X.shape
    WX = np.empty_like(X, dtype=np.float64)
    chol = []
    for idx, phi in zip(working.clusters, working.phi_blocks):
        L = cholesky_block(phi)
        chol.append(L)
        WX[idx] = sla.cho_solve((L, True), X[idx])

    XtWX = X.T @ WX
    try:
        bread = np.linalg.inv(XtWX)
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(
            "X'WX is singular; the sandwich bread is undefined",
            matrix_name="X'WX",
            expected_rank=p,
        ) from e

    if estimator == ESTIMATOR_CR2:
        adjustments = tuple(
            cr2_adjustment(X[idx], L, bread)
            for idx, L in zip(working.clusters, chol)
        )
    else:
        adjustments = tuple(np.eye(len(idx)) for idx in working.clusters)
    return SandwichPieces(bread=bread, WX=WX, chol=tuple(chol), adjustments=adjustments)


def cr2_adjustment(
    X_i: NDArray[np.floating[Any]],
    L_i: NDArray[np.floating[Any]],
    bread: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """A_i = L_i C_i^{-1/2} L_i⁻¹ with C_i = I - L_i⁻¹X_i M X_i'L_i⁻ᵀ."""
    Xs = sla.solve_triangular(L_i, X_i, lower=True)
    C = np.eye(X_i.shape[0]) - Xs @ bread @ Xs.T
    C = 0.5 * (C + C.T)
    evals, evecs = np.linalg.eigh(C)
    inv_sqrt = np.where(evals > _EIGEN_TOL, 1.0 / np.sqrt(np.maximum(evals, _EIGEN_TOL)), 0.0)
    C_inv_sqrt = (evecs * inv_sqrt) @ evecs.T
    L_inv = sla.solve_triangular(L_i, np.eye(L_i.shape[0]), lower=True)
    return L_i @ C_inv_sqrt @ L_inv


def sandwich_vcov(working: WorkingModelLike, estimator: str) -> NDArray[np.floating[Any]]:
    """
    Cluster-robust covariance of β̂.

    Args:
        working: Working model of the fit.
        estimator: 'CR0', 'CR1' or 'CR2'.

    Raises:
        ValidationError: If CR1 is requested with a single cluster.
    """
    pieces = sandwich_pieces(working, estimator)
    p = working.X.shape[1]
    meat = np.zeros((p, p), dtype=np.float64)
    for idx, A in zip(working.clusters, pieces.adjustments):
        score = pieces.WX[idx].T @ (A @ working.residuals[idx])
        meat += np.outer(score, score)

    vcov = pieces.bread @ meat @ pieces.bread
    if estimator == ESTIMATOR_CR1:
        m = len(working.clusters)
        if m < 2:
            raise ValidationError("CR1 needs at least two clusters")
        vcov = vcov * m / (m - 1)
    return 0.5 * (vcov + vcov.T)


def bell_mccaffrey_df(
    working: WorkingModelLike,
    estimator: str,
    contrast: NDArray[np.floating[Any]],
    pieces: SandwichPieces | None = None,
) -> float:
    """
    Satterthwaite df of c'V_CR c under the working model.

    The CR1 scale factor cancels in the ratio, so CR0 and CR1 share df.
    """
    if pieces is None:
        pieces = sandwich_pieces(working, estimator)
    X = working.X
    n = X.shape[0]
    c = np.asarray(contrast, dtype=np.float64)
    Mc = pieces.bread @ c

    # Row i of G is u_i': the map from y to cluster i's score contribution
    G = np.zeros((len(working.clusters), n), dtype=np.float64)
    for i, (idx, A) in enumerate(zip(working.clusters, pieces.adjustments)):
        g_i = A.T @ (pieces.WX[idx] @ Mc)
        G[i, idx] += g_i
        G[i] -= pieces.WX @ (pieces.bread @ (X[idx].T @ g_i))

    GPhi = np.empty_like(G)
    for idx, phi in zip(working.clusters, working.phi_blocks):
        GPhi[:, idx] = G[:, idx] @ phi
    omega = GPhi @ G.T

    trace = float(np.trace(omega))
    trace_sq = float(np.sum(omega * omega))
    if trace_sq <= 0.0:
        return float('nan')
    return trace ** 2 / trace_sq
