"""
Common data types for linear mixed models.

Contains the frozen parameter payload that goes inside the Result[P]
envelope. Each payload is a pure data container with no
computation.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48.
"""

from dataclasses import dataclass

from numpy.typing import NDArray

from pylongreg.core.compute.satterthwaite import SatterthwaiteApprox


@dataclass(frozen=True)
class VarCompSummary:
    """Variance component summary for one random effect term.

    Attributes:
        group: Grouping factor name (e.g. 'Subject').
        name: Term name within the group (e.g. '(Intercept)', 'age').
        variance: Estimated variance σ²_b for this component.
        std_dev: Standard deviation (sqrt of variance).
        corr: Correlation with the first term in the same group,
              or None for the first (or only) term.
    """
    group: str
    name: str
    variance: float
    std_dev: float
    corr: float | None = None


@dataclass(frozen=True)
class LMMParams:
    """
    Parameter payload for a fitted linear mixed model.

    Contains all estimates needed to reconstruct the model summary,
    perform inference, and extract random effects.
    """
    # Fixed effects
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    vcov: NDArray                      # σ² (X'V*⁻¹X)⁻¹ (p, p)
    se: NDArray                        # standard errors of β̂ (p,)
    df_satterthwaite: NDArray          # Satterthwaite df per fixed effect (p,)
    t_values: NDArray                  # β̂ / se (p,)
    p_values: NDArray                  # from t-distribution with Satt. df (p,)

    # Random effects
    var_components: tuple[VarCompSummary, ...]
    residual_variance: float           # σ²
    residual_std: float                # σ
    icc: float                         # intercept variance share (NaN without '1')

    # Model fit
    log_likelihood: float
    reml: bool
    n_params: int                      # p + len(θ) + 1
    n_obs: int
    n_groups: int
    group_name: str

    # Convergence
    converged: bool                    # always True; failed fits raise
    n_iter: int

    # Random effects conditional modes (BLUPs)
    random_effects: NDArray            # (n_groups, n_terms)
    group_labels: tuple[str, ...]      # row labels of random_effects
    random_terms: tuple[str, ...]      # column labels of random_effects

    # Predictions
    fitted_values: NDArray             # Xβ̂ + Zb̂ (n,)
    residuals: NDArray                 # y - fitted (n,)
    marginal_residuals: NDArray        # y - Xβ̂ (n,)

    # Internal
    theta: NDArray                     # converged θ parameters
    marginal_blocks: tuple[NDArray, ...]  # V*_i per cluster
    clusters: tuple[NDArray, ...]      # row indices per cluster
    satterthwaite: SatterthwaiteApprox | None
