"""
Common data types for generalized least squares.

Contains the frozen parameter payload that goes inside the Result[P]
envelope.
"""

from dataclasses import dataclass

from numpy.typing import NDArray

from pylongreg.core.compute.satterthwaite import SatterthwaiteApprox
from pylongreg.gls.structures import CovarianceStructure


@dataclass(frozen=True)
class GLSParams:
    """
    Parameter payload for a fitted GLS model.

    `structure` carries every covariance parameter, estimated or fixed;
    `estimated` names the ones the optimizer chose.
    """
    # Coefficients
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    vcov: NDArray                      # σ² (X'Φ⁻¹X)⁻¹ (p, p)
    se: NDArray
    df_satterthwaite: NDArray
    t_values: NDArray
    p_values: NDArray

    # Covariance structure
    structure: CovarianceStructure     # with estimates filled in
    rho: float | None
    multipliers: dict[str, float]      # level → SD multiplier
    estimated: tuple[str, ...]         # names of free parameters
    phi: NDArray                       # free parameters at the optimum
    residual_variance: float           # σ²
    residual_std: float                # σ

    # Model fit
    log_likelihood: float
    method: str
    n_params: int                      # p + len(phi) + 1
    n_obs: int
    n_clusters: int

    # Convergence
    converged: bool                    # always True; failed fits raise
    n_iter: int

    # Predictions
    fitted_values: NDArray             # Xβ̂ (n,)
    residuals: NDArray                 # y - Xβ̂ (n,)
    normalized_residuals: NDArray      # L_i⁻¹ r_i / σ (n,)

    # Internal
    phi_blocks: tuple[NDArray, ...]
    clusters: tuple[NDArray, ...]
    satterthwaite: SatterthwaiteApprox | None
