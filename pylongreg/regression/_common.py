"""
Common data types for logistic regression.

Contains the frozen parameter payload that goes inside the Result[P]
envelope.
"""

from dataclasses import dataclass

from numpy.typing import NDArray


@dataclass(frozen=True)
class LogisticParams:
    """
    Parameter payload for a binomial GLM with logit link.

    Residual and influence vectors follow R's definitions
    (residuals.glm, rstandard.glm, cooks.distance.glm).
    """
    # Coefficients
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    vcov: NDArray                      # (X'WX)⁻¹ (p, p)
    se: NDArray
    z_values: NDArray
    p_values: NDArray

    # Fitted values
    fitted_values: NDArray             # μ̂ = P(y = 1) (n,)
    linear_predictor: NDArray          # η̂ = Xβ̂ + offset (n,)
    working_weights: NDArray           # μ̂(1 - μ̂) (n,)

    # Residuals
    residuals_response: NDArray        # y - μ̂
    residuals_working: NDArray         # (y - μ̂) / μ̂(1 - μ̂)
    residuals_deviance: NDArray        # sign(y - μ̂) √d_i
    residuals_pearson: NDArray         # (y - μ̂) / √V(μ̂)

    # Influence
    hat_values: NDArray                # diag of W½X(X'WX)⁻¹X'W½
    std_deviance_residuals: NDArray    # r_D / √(1 - h)
    std_pearson_residuals: NDArray     # r_P / √(1 - h)
    cooks_distance: NDArray            # r_P² h / (p (1 - h)²)

    # Model fit
    deviance: float
    null_deviance: float
    log_likelihood: float
    aic: float
    pseudo_r_squared: float            # McFadden: 1 - ℓ / ℓ_null
    df_residual: int
    df_null: int
    n_params: int
    n_obs: int

    # Convergence
    converged: bool
    n_iter: int

    # Family
    family_name: str
    link_name: str
