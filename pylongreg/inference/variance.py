"""
Coefficient covariance estimates.

standard_errors() derives a VarianceEstimate from a fitted model without
touching the model: either its own model-based covariance or one of the
cluster-robust sandwich estimators computed from its working model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.capabilities import ALL_ESTIMATORS, ESTIMATOR_MODEL
from pylongreg.core.protocols import InferenceCapable
from pylongreg.core.validation import check_choice
from pylongreg.inference._sandwich import sandwich_vcov


@dataclass(frozen=True, eq=False)
class VarianceEstimate:
    """
    Covariance matrix of the fixed-effect estimates.

    Attributes:
        matrix: Symmetric positive semi-definite (p, p) matrix.
        estimator: 'model', 'CR0', 'CR1' or 'CR2'.
        coefficient_names: Row/column labels.
        n_clusters: Number of independent clusters in the working model.
    """
    matrix: NDArray[np.floating[Any]]
    estimator: str
    coefficient_names: tuple[str, ...]
    n_clusters: int

    @property
    def se(self) -> NDArray[np.floating[Any]]:
        """Standard errors (square roots of the diagonal)."""
        return np.sqrt(np.maximum(np.diag(self.matrix), 0.0))

    def to_dict(self) -> dict[str, float]:
        """Coefficient name → standard error."""
        return {name: float(s) for name, s in zip(self.coefficient_names, self.se)}

    def __repr__(self) -> str:
        return (
            f"VarianceEstimate({self.estimator}, p={len(self.coefficient_names)}, "
            f"clusters={self.n_clusters})"
        )


def standard_errors(
    model: InferenceCapable,
    estimator: str = ESTIMATOR_MODEL,
) -> VarianceEstimate:
    """
    Covariance of the coefficients of a fitted model.

    Args:
        model: Any fitted model (LMM, GLS or logistic).
        estimator: 'model' (default) for the likelihood-based covariance,
            or 'CR0', 'CR1', 'CR2' for cluster-robust sandwich estimators
            over the model's working covariance. Clusters are the levels
            of the grouping column, or single observations without one.

    Returns:
        VarianceEstimate.

    Raises:
        ValidationError: On an unknown estimator.

    Examples:
        >>> v = standard_errors(model, 'CR2')
        >>> v.to_dict()['age']
    """
    check_choice(estimator, ALL_ESTIMATORS, 'estimator')
    if estimator == ESTIMATOR_MODEL:
        matrix = np.array(model.vcov_model, dtype=np.float64)
    else:
        matrix = sandwich_vcov(model.working, estimator)
    return VarianceEstimate(
        matrix=matrix,
        estimator=estimator,
        coefficient_names=tuple(model.coefficient_names),
        n_clusters=len(model.working.clusters),
    )
