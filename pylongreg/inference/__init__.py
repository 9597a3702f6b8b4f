"""
Inference on fitted models.

Every operation takes a FittedModel of any kind and derives a new value
from it; models are never modified.

Public API:
    standard_errors()          — model-based or CR0/CR1/CR2 covariance
    confidence_interval()      — Wald or profile-likelihood interval
    wald_test(), term_contrast()
    satterthwaite_test()       — t/F test with approximate df
    odds_ratios()              — logistic models
    predict()                  — population-level predictions
    observation_diagnostics(), flag_influential()
"""

from pylongreg.inference.variance import VarianceEstimate, standard_errors
from pylongreg.inference.wald import WaldTestResult, wald_test, term_contrast
from pylongreg.inference.satterthwaite import SatterthwaiteResult, satterthwaite_test
from pylongreg.inference.intervals import confidence_interval
from pylongreg.inference.odds import odds_ratios
from pylongreg.inference.prediction import predict
from pylongreg.inference.diagnostics import (
    ObservationDiagnostics,
    observation_diagnostics,
    flag_influential,
)

__all__ = [
    "VarianceEstimate",
    "standard_errors",
    "WaldTestResult",
    "wald_test",
    "term_contrast",
    "SatterthwaiteResult",
    "satterthwaite_test",
    "confidence_interval",
    "odds_ratios",
    "predict",
    "ObservationDiagnostics",
    "observation_diagnostics",
    "flag_influential",
]
