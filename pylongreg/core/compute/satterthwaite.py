"""
Satterthwaite degrees of freedom for linear contrasts of fixed effects.

Generalizes the lmerTest construction (Kuznetsova et al., 2017) to any
likelihood-based linear model whose coefficient covariance factors as

    Var(β̂) = σ² C(φ)

for a vector of variance parameters φ. For a contrast c:

    df(c) = 2 [c'Var(β̂)c]² / (g' A g)

where
    g_j = ∂(c'Var(β̂)c)/∂ψ_j   for ψ = (φ, σ)
    A   = 2 H⁻¹                  H = Hessian of the deviance in ψ

The Jacobian of Var(β̂) is stored as a stack of p x p matrices so that
df can be evaluated for any contrast after the fit.

References:
    Kuznetsova, A., Brockhoff, P. B., & Christensen, R. H. B. (2017).
    lmerTest Package: Tests in Linear Mixed Effects Models.
    Journal of Statistical Software, 82(13), 1-26.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.compute.tolerances import DERIVATIVE_STEP


@dataclass(frozen=True, eq=False)
class SatterthwaiteApprox:
    """
    Ingredients for Satterthwaite df of arbitrary contrasts.

    Attributes:
        vcov: Var(β̂) at the estimate (p, p).
        jacobian: ∂Var(β̂)/∂ψ_j for each variance parameter (k, p, p).
        A: Asymptotic covariance of ψ̂ (k, k).
        df_fallback: Returned when the approximation degenerates
            (e.g. a boundary estimate makes g'Ag vanish).
    """
    vcov: NDArray
    jacobian: NDArray
    A: NDArray
    df_fallback: float

    def df(self, contrast: NDArray) -> float:
        """Satterthwaite df for the linear combination c'β."""
        c = np.asarray(contrast, dtype=np.float64)
        var = float(c @ self.vcov @ c)
        g = np.einsum('i,kij,j->k', c, self.jacobian, c)
        denom = float(g @ self.A @ g)
        if denom > 0 and var > 0:
            df = 2.0 * var ** 2 / denom
        else:
            df = self.df_fallback
        return max(df, 1.0)

    def df_per_coefficient(self) -> NDArray:
        """Satterthwaite df for each coefficient (unit contrasts)."""
        p = self.vcov.shape[0]
        return np.array([self.df(np.eye(p)[k]) for k in range(p)])


def build_satterthwaite(
    phi: NDArray,
    sigma: float,
    cov_factor: Callable[[NDArray], NDArray],
    deviance: Callable[[NDArray, float], float],
    lower: NDArray,
    upper: NDArray,
    df_fallback: float,
    eps: float = DERIVATIVE_STEP,
) -> SatterthwaiteApprox:
    """Differentiate Var(β̂) and the deviance at the estimate.

    Args:
        phi: Estimated variance parameters (may be empty).
        sigma: Estimated residual standard deviation.
        cov_factor: φ ↦ C(φ) with Var(β̂) = σ² C(φ).
        deviance: (φ, σ) ↦ -2 log-likelihood with σ not profiled out.
        lower, upper: Bounds on φ. Finite differences never step
            outside them.
        df_fallback: Residual df used when the approximation degenerates.
        eps: Relative step for numerical differentiation.

    Returns:
        SatterthwaiteApprox for evaluating df of any contrast.
    """
    phi = np.asarray(phi, dtype=np.float64)
    n_phi = len(phi)
    sigma_sq = sigma ** 2

    C = cov_factor(phi)
    p = C.shape[0]

    jacobian = np.zeros((n_phi + 1, p, p), dtype=np.float64)
    for j in range(n_phi):
        h = eps * max(abs(phi[j]), 1.0)
        plus, minus = phi.copy(), phi.copy()
        plus[j] = min(phi[j] + h, upper[j])
        minus[j] = max(phi[j] - h, lower[j])
        span = plus[j] - minus[j]
        jacobian[j] = sigma_sq * (cov_factor(plus) - cov_factor(minus)) / span
    jacobian[n_phi] = 2.0 * sigma * C

    H = _deviance_hessian(phi, sigma, deviance, lower, upper, eps)
    try:
        H_inv = np.linalg.inv(H)
    except np.linalg.LinAlgError:
        H_inv = np.linalg.pinv(H)

    return SatterthwaiteApprox(
        vcov=sigma_sq * C,
        jacobian=jacobian,
        A=2.0 * H_inv,
        df_fallback=float(df_fallback),
    )


def _deviance_hessian(
    phi: NDArray,
    sigma: float,
    deviance: Callable[[NDArray, float], float],
    lower: NDArray,
    upper: NDArray,
    eps: float,
) -> NDArray:
    """Central-difference Hessian of the deviance in ψ = (φ, σ).

    When a parameter sits within one step of a bound, the stencil is
    centred at the nearest interior point instead.
    """
    n_phi = len(phi)
    k = n_phi + 1
    x0 = np.append(phi, sigma)
    lo = np.append(lower, 0.0)
    hi = np.append(upper, np.inf)

    h = eps * np.maximum(np.abs(x0), 1.0)
    center = np.clip(x0, lo + h, hi - h)

    def f(x: NDArray) -> float:
        return deviance(x[:n_phi], float(x[n_phi]))

    d0 = f(center)
    H = np.zeros((k, k), dtype=np.float64)
    for j in range(k):
        ej = np.zeros(k)
        ej[j] = h[j]
        H[j, j] = (f(center + ej) - 2.0 * d0 + f(center - ej)) / h[j] ** 2
        for l in range(j + 1, k):
            el = np.zeros(k)
            el[l] = h[l]
            H[j, l] = (
                f(center + ej + el) - f(center + ej - el)
                - f(center - ej + el) + f(center - ej - el)
            ) / (4.0 * h[j] * h[l])
            H[l, j] = H[j, l]
    return H
