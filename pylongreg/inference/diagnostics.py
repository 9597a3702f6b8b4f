"""
Per-observation diagnostics.

For logistic regression these are R's influence measures
(hatvalues, rstandard, cooks.distance on a glm). Linear models (GLS and
the population level of a mixed model) are first whitened by their
working covariance, y* = L_i⁻¹ y_i, so the same formulas apply to the
decorrelated residuals.

No cutoffs are built in: flag_influential() takes the leverage and
Cook's distance thresholds from the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pylongreg.core.capabilities import KIND_LOGISTIC
from pylongreg.core.compute.linalg import cholesky_block
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.fitted import FittedModel


@dataclass(frozen=True, eq=False)
class ObservationDiagnostics:
    """
    Diagnostic vectors, one entry per observation (table row order).

    Attributes:
        fitted: Fitted mean (probability for logistic models).
        leverage: Hat values.
        std_residual: Standardized residuals (deviance residuals for
            logistic models, whitened residuals otherwise) over √(1-h).
        std_pearson: Standardized Pearson residuals.
        cooks_distance: Cook's distance.
    """
    fitted: NDArray[np.floating[Any]]
    leverage: NDArray[np.floating[Any]]
    std_residual: NDArray[np.floating[Any]]
    std_pearson: NDArray[np.floating[Any]]
    cooks_distance: NDArray[np.floating[Any]]

    @property
    def n(self) -> int:
        return len(self.fitted)

    def to_records(self) -> list[dict[str, float]]:
        """One plain dict per observation, for external reporting."""
        return [
            {
                'index': i,
                'fitted': float(self.fitted[i]),
                'leverage': float(self.leverage[i]),
                'std_residual': float(self.std_residual[i]),
                'std_pearson': float(self.std_pearson[i]),
                'cooks_distance': float(self.cooks_distance[i]),
            }
            for i in range(self.n)
        ]


def observation_diagnostics(model: FittedModel) -> ObservationDiagnostics:
    """Fitted values, leverage, standardized residuals and Cook's distance."""
    if model.kind == KIND_LOGISTIC:
        params = model.params
        return ObservationDiagnostics(
            fitted=params.fitted_values.copy(),
            leverage=params.hat_values.copy(),
            std_residual=params.std_deviance_residuals.copy(),
            std_pearson=params.std_pearson_residuals.copy(),
            cooks_distance=params.cooks_distance.copy(),
        )

    working = model.working
    X = working.X
    n, p = X.shape
    Xs = np.empty_like(X, dtype=np.float64)
    es = np.empty(n, dtype=np.float64)
    for idx, phi in zip(working.clusters, working.phi_blocks):
        L = cholesky_block(phi)
        Xs[idx] = sla.solve_triangular(L, X[idx], lower=True)
        es[idx] = sla.solve_triangular(L, working.residuals[idx], lower=True)

    if p:
        Q, _ = np.linalg.qr(Xs)
        leverage = np.clip(np.sum(Q * Q, axis=1), 0.0, 1.0)
    else:
        leverage = np.zeros(n)
    one_minus_h = np.maximum(1.0 - leverage, 1e-12)
    pearson = es / np.sqrt(working.scale)
    std = pearson / np.sqrt(one_minus_h)
    cooks = pearson ** 2 * leverage / (p * one_minus_h ** 2) if p else np.zeros(n)
    return ObservationDiagnostics(
        fitted=working.y - working.residuals,
        leverage=leverage,
        std_residual=std,
        std_pearson=std.copy(),
        cooks_distance=cooks,
    )


def flag_influential(
    model: FittedModel,
    *,
    leverage_threshold: float | None = None,
    cooks_threshold: float | None = None,
) -> NDArray[np.intp]:
    """
    Indices of observations above either caller-supplied threshold.

    Args:
        model: Fitted model.
        leverage_threshold: Flag rows with leverage strictly above this.
        cooks_threshold: Flag rows with Cook's distance strictly above this.

    Returns:
        Sorted row indices.

    Raises:
        ValidationError: If neither threshold is given.

    Examples:
        >>> flag_influential(model, leverage_threshold=0.045, cooks_threshold=0.05)
    """
    if leverage_threshold is None and cooks_threshold is None:
        raise ValidationError(
            "Give leverage_threshold, cooks_threshold or both; "
            "there are no default cutoffs"
        )
    diag = observation_diagnostics(model)
    flagged = np.zeros(diag.n, dtype=bool)
    if leverage_threshold is not None:
        flagged |= diag.leverage > leverage_threshold
    if cooks_threshold is not None:
        flagged |= diag.cooks_distance > cooks_threshold
    return np.flatnonzero(flagged).astype(np.intp)
