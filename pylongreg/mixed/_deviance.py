"""
Profiled deviance for linear mixed models.

The profiled deviance is the objective the outer optimizer minimizes
over θ: β and σ² are profiled out analytically through PLS, leaving a
function of θ only.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), Sections 2-3.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pylongreg.mixed._pls import PLSResult, solve_pls
from pylongreg.mixed._random_effects import RandomEffectSpec, build_lambda


def deviance_from_pls(pls: PLSResult, n: int, p: int, reml: bool) -> float:
    """-2 × profiled log-likelihood from a PLS solution.

    ML:   log|L|² + n [1 + log(2π pwrss/n)]
    REML: log|L|² + log|RX|² + (n-p) [1 + log(2π pwrss/(n-p))]
    """
    if reml:
        df = n - p
        return float(
            pls.log_det_L + pls.log_det_RX
            + df * (1.0 + np.log(2.0 * np.pi * pls.pwrss / df))
        )
    return float(pls.log_det_L + n * (1.0 + np.log(2.0 * np.pi * pls.pwrss / n)))


def profiled_deviance_lmm(
    theta: NDArray,
    X: NDArray,
    Z: NDArray,
    y: NDArray,
    spec: RandomEffectSpec,
    reml: bool = True,
) -> float:
    """Profiled REML (or ML) deviance at θ.

    Args:
        theta: Parameter vector for Λ_θ.
        X: Fixed effects design matrix (n, p).
        Z: Random effects design matrix (n, J*q).
        y: Response vector (n,), net of any offset.
        spec: Random effect specification.
        reml: REML deviance if True, ML deviance otherwise.

    Returns:
        Profiled deviance value (scalar to minimize).
    """
    n, p = X.shape
    pls = solve_pls(X, Z, y, build_lambda(theta, spec), reml=reml)
    return deviance_from_pls(pls, n, p, reml)
