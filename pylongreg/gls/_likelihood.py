"""
Profile likelihood for GLS covariance parameters.

For a candidate φ the coefficients are re-solved by whitened least
squares and σ² is profiled out, leaving a function of φ alone that the
outer optimizer minimizes (the same reduction nlme::gls uses).
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pylongreg.core.compute.linalg import (
    BlockGLS, block_gls, cholesky_block, deviance_at_sigma, profiled_log_likelihood,
)
from pylongreg.core.compute.satterthwaite import SatterthwaiteApprox, build_satterthwaite
from pylongreg.gls.structures import ResolvedStructure


def fit_at(phi: NDArray, X: NDArray, y: NDArray, resolved: ResolvedStructure) -> BlockGLS:
    """Whitened least squares at φ."""
    return block_gls(X, y, resolved.clusters, resolved.phi_blocks(phi))


def negative_log_likelihood(
    phi: NDArray,
    X: NDArray,
    y: NDArray,
    resolved: ResolvedStructure,
    reml: bool,
) -> float:
    """-ℓ(φ) with β and σ² profiled out."""
    n, p = X.shape
    return -profiled_log_likelihood(fit_at(phi, X, y, resolved), n, p, reml)


def normalized_residuals(
    residuals: NDArray,
    phi_blocks: tuple[NDArray, ...],
    clusters: tuple[NDArray, ...],
    sigma: float,
) -> NDArray:
    """L_i⁻¹ r_i / σ per cluster (nlme's type = 'normalized')."""
    out = np.empty_like(residuals)
    for idx, phi in zip(clusters, phi_blocks):
        L = cholesky_block(phi)
        out[idx] = sla.solve_triangular(L, residuals[idx], lower=True) / sigma
    return out


def gls_satterthwaite(
    phi: NDArray,
    sigma: float,
    X: NDArray,
    y: NDArray,
    resolved: ResolvedStructure,
    reml: bool,
) -> SatterthwaiteApprox:
    """Satterthwaite machinery over ψ = (φ, σ).

    With every structure parameter fixed only σ remains, and the df of
    any contrast reduces to n - p under REML (n under ML).
    """
    n, p = X.shape
    lower, upper = resolved.bounds()

    def cov_factor(ph: NDArray) -> NDArray:
        return fit_at(ph, X, y, resolved).xtx_inv

    def deviance(ph: NDArray, s: float) -> float:
        return deviance_at_sigma(fit_at(ph, X, y, resolved), n, p, s, reml)

    return build_satterthwaite(
        phi=phi,
        sigma=sigma,
        cov_factor=cov_factor,
        deviance=deviance,
        lower=lower,
        upper=upper,
        df_fallback=float(n - p),
    )
