"""
Logistic regression (binomial GLM with logit link).

Public API:
    logistic(y, X, ...) -> Result[LogisticParams]
    fit_logistic_regression(table, spec) -> FittedModel

Fitting runs IRLS exactly as R's glm.fit does; the payload carries
deviance, null deviance, McFadden pseudo-R², fitted probabilities and
the influence measures (hat values, standardized residuals, Cook's
distance).

Example:
    >>> from pylongreg.regression import fit_logistic_regression
    >>> model = fit_logistic_regression(admissions, spec)
    >>> print(model.summary())
"""

from pylongreg.regression._common import LogisticParams
from pylongreg.regression.design import LogisticDesign
from pylongreg.regression.families import Binomial, LogitLink
from pylongreg.regression.solvers import logistic, fit_logistic_regression

__all__ = [
    "logistic",
    "fit_logistic_regression",
    "LogisticParams",
    "LogisticDesign",
    "Binomial",
    "LogitLink",
]
