"""
Satterthwaite degrees of freedom for fixed effects in LMM.

Follows lmerTest (Kuznetsova et al., 2017): the variance parameter
vector is ψ = (θ, σ), with σ included explicitly rather than profiled
out. Var(β̂) = σ² C(θ) with

    C(θ) = (Σ_i X_i' V*_i(θ)⁻¹ X_i)⁻¹,   V*_i = Z_i T T' Z_i' + I

and the Hessian is taken of the deviance evaluated at (θ, σ). The
numerical differentiation itself lives in core.compute.satterthwaite.

References:
    Kuznetsova, A., Brockhoff, P. B., & Christensen, R. H. B. (2017).
    lmerTest Package: Tests in Linear Mixed Effects Models.
    Journal of Statistical Software, 82(13), 1-26.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.compute.linalg import block_gls, deviance_at_sigma
from pylongreg.core.compute.satterthwaite import SatterthwaiteApprox, build_satterthwaite
from pylongreg.mixed._random_effects import (
    RandomEffectSpec, marginal_blocks, theta_lower_bounds,
)


def lmm_satterthwaite(
    theta: NDArray,
    sigma: float,
    X: NDArray,
    y: NDArray,
    spec: RandomEffectSpec,
    clusters: tuple[NDArray, ...],
    reml: bool = True,
) -> SatterthwaiteApprox:
    """Satterthwaite machinery at the converged (θ̂, σ̂).

    Args:
        theta: Converged θ̂.
        sigma: Residual standard deviation σ̂.
        X: Fixed effects design matrix (n, p).
        y: Response (n,), net of any offset.
        spec: Random effect specification.
        clusters: Row indices of each cluster.
        reml: Whether the fit used REML.

    Returns:
        SatterthwaiteApprox; df for any contrast via .df(c).
    """
    n, p = X.shape

    def cov_factor(th: NDArray) -> NDArray:
        return block_gls(X, y, clusters, marginal_blocks(th, spec, clusters)).xtx_inv

    def deviance(th: NDArray, s: float) -> float:
        fit = block_gls(X, y, clusters, marginal_blocks(th, spec, clusters))
        return deviance_at_sigma(fit, n, p, s, reml)

    return build_satterthwaite(
        phi=theta,
        sigma=sigma,
        cov_factor=cov_factor,
        deviance=deviance,
        lower=theta_lower_bounds(spec),
        upper=np.full(len(theta), np.inf),
        df_fallback=float(n - p),
    )
