"""
Iteration budgets and numerical tolerances for model fitting.

FitControl is passed explicitly to every fitter; there is no global
options state. The defaults mirror the reference implementations:
lme4/nlme for the likelihood optimizers and glm.fit for IRLS.
"""

from __future__ import annotations

from dataclasses import dataclass

from pylongreg.core.exceptions import ValidationError


@dataclass(frozen=True)
class FitControl:
    """
    Convergence settings for one optimizer call.

    Attributes:
        tol: Convergence tolerance. For L-BFGS-B this is the relative
            objective reduction (ftol); for IRLS it is the relative
            deviance change.
        max_iter: Iteration budget. Exhausting it is a fit failure.
        singular_tol: A relative random-effect standard deviation below
            this value marks a singular mixed-model fit.
        profile_max_iter: Iteration budget for each refit performed
            while profiling the likelihood.
    """
    tol: float = 1e-8
    max_iter: int = 200
    singular_tol: float = 1e-4
    profile_max_iter: int = 200

    def __post_init__(self) -> None:
        if not self.tol > 0:
            raise ValidationError(f"tol: must be positive, got {self.tol}")
        if self.max_iter < 1:
            raise ValidationError(
                f"max_iter: must be at least 1, got {self.max_iter}"
            )
        if self.singular_tol < 0:
            raise ValidationError(
                f"singular_tol: must be non-negative, got {self.singular_tol}"
            )
        if self.profile_max_iter < 1:
            raise ValidationError(
                f"profile_max_iter: must be at least 1, got {self.profile_max_iter}"
            )


# Profiled REML/ML optimizers (mixed models, GLS)
LIKELIHOOD_CONTROL = FitControl()

# IRLS, matching glm.control(epsilon = 1e-8, maxit = 25)
IRLS_CONTROL = FitControl(tol=1e-8, max_iter=25, profile_max_iter=25)

# Relative step for numerical derivatives of variance parameters
DERIVATIVE_STEP = 1e-4


def optimizer_failure_reason(opt_result) -> str:
    """NonConvergenceError reason for an unsuccessful scipy.optimize result."""
    # L-BFGS-B reports status 1 for an exhausted iteration or evaluation budget
    if opt_result.status == 1:
        return 'max_iterations'
    return 'optimizer_failure'
