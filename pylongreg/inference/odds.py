"""
Odds ratios for logistic regression.
"""

from __future__ import annotations

import numpy as np

from pylongreg.core.capabilities import ESTIMATOR_MODEL, KIND_LOGISTIC
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.fitted import FittedModel
from pylongreg.inference.intervals import INTERVAL_WALD, confidence_interval


def odds_ratios(
    model: FittedModel,
    estimator: str = ESTIMATOR_MODEL,
    level: float = 0.95,
    *,
    method: str = INTERVAL_WALD,
) -> dict[str, tuple[float, float, float]]:
    """
    Exponentiated coefficients with exponentiated interval limits.

    Equivalent to R's exp(cbind(OR = coef(m), confint(m))).

    Args:
        model: Fitted logistic regression.
        estimator: Covariance estimator for Wald intervals.
        level: Confidence level.
        method: 'wald' (default) or 'profile'.

    Returns:
        Coefficient name → (OR, low, high), in coefficient order.

    Raises:
        ValidationError: If the model is not a logistic regression.
    """
    if model.kind != KIND_LOGISTIC:
        raise ValidationError(
            f"Odds ratios need a logistic model, got kind {model.kind!r}"
        )
    out: dict[str, tuple[float, float, float]] = {}
    for name, beta in zip(model.coefficient_names, model.beta):
        low, high = confidence_interval(model, name, estimator, level, method=method)
        out[name] = (float(np.exp(beta)), float(np.exp(low)), float(np.exp(high)))
    return out
