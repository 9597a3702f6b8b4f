"""
Population-level predictions for new rows.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.capabilities import KIND_LOGISTIC
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.fitted import FittedModel
from pylongreg.data.table import Table
from pylongreg.design.matrix import model_matrix
from pylongreg.regression.families import LogitLink


def predict(model: FittedModel, table: Table) -> NDArray[np.floating[Any]]:
    """
    Predict the mean response for the rows of a table.

    Random effects are not used: mixed models predict at the population
    level (Xβ̂). Logistic models return probabilities.

    Args:
        model: Fitted model.
        table: Rows to predict. Needs every predictor of the model but
            not the response. Categorical columns are coded against the
            levels seen at fit time.

    Returns:
        Predicted values (n,).

    Raises:
        ValidationError: If a predictor is missing or has missing values.
        UnknownLevelError: If a categorical value was not seen at fit time.
    """
    for v in model.spec.variables:
        if v not in table:
            raise ValidationError(
                f"Prediction table has no column '{v}'. Available: {list(table.keys())}"
            )
        if table.is_missing(v).any():
            raise ValidationError(f"Prediction column '{v}' has missing values")
        if table.is_categorical(v) != (v in model.factor_levels):
            kind = 'categorical' if v in model.factor_levels else 'numeric'
            raise ValidationError(f"Column '{v}' must be {kind}, as when the model was fitted")

    X, names, _, _ = model_matrix(table, model.spec, model.factor_levels)
    if names != model.coefficient_names:
        raise ValidationError(
            f"Prediction design columns {list(names)} do not match the model's "
            f"{list(model.coefficient_names)}"
        )
    eta = X @ model.beta
    if model.kind == KIND_LOGISTIC:
        return LogitLink().linkinv(eta)
    return eta
