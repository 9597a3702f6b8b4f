"""
pylongreg: fitting, testing and selecting models for longitudinal and
binary-outcome data.

Submodules:
    data: Typed tables, loading, categorical coercion, grouped summaries
    design: ModelSpec builder and design matrices
    mixed: Linear mixed-effects models (REML / ML)
    gls: Generalized least squares with structured residual covariance
    regression: Logistic regression (IRLS)
    inference: Sandwich variances, Wald / Satterthwaite tests,
        confidence intervals, odds ratios, diagnostics
    selection: Likelihood-ratio comparison and stepwise search

Example:
    >>> from pylongreg import load, ModelSpec, fit_linear_mixed_effects
    >>> tbl = load('orthodont.txt')
    >>> spec = (ModelSpec.builder('distance').main('age', 'Sex')
    ...         .interaction('age', 'Sex').grouped_by('Subject').build())
    >>> model = fit_linear_mixed_effects(tbl, spec)
    >>> print(model.summary())
"""

__version__ = "0.1.0"

from pylongreg.core import (
    FittedModel,
    PyLongRegError,
    ValidationError,
    DimensionMismatchError,
    FormatError,
    UnknownLevelError,
    InvalidResponseError,
    NotNestedError,
    RankDeficientError,
    SingularFitError,
    NonConvergenceError,
)
from pylongreg.core.compute.tolerances import FitControl
from pylongreg.data import Table, load, coerce_categorical, group_summary
from pylongreg.design import Term, ModelSpec
from pylongreg.gls import CovarianceStructure, fit_generalized_least_squares
from pylongreg.mixed import fit_linear_mixed_effects
from pylongreg.regression import fit_logistic_regression
from pylongreg.inference import (
    VarianceEstimate,
    standard_errors,
    confidence_interval,
    wald_test,
    term_contrast,
    satterthwaite_test,
    odds_ratios,
    predict,
    observation_diagnostics,
    flag_influential,
)
from pylongreg.selection import (
    ComparisonResult,
    compare,
    compare_chain,
    CandidateFit,
    fit_candidates,
    Scope,
    stepwise_select,
)

__all__ = [
    "__version__",
    "FittedModel",
    "FitControl",
    "PyLongRegError",
    "ValidationError",
    "DimensionMismatchError",
    "FormatError",
    "UnknownLevelError",
    "InvalidResponseError",
    "NotNestedError",
    "RankDeficientError",
    "SingularFitError",
    "NonConvergenceError",
    "Table",
    "load",
    "coerce_categorical",
    "group_summary",
    "Term",
    "ModelSpec",
    "CovarianceStructure",
    "fit_linear_mixed_effects",
    "fit_generalized_least_squares",
    "fit_logistic_regression",
    "VarianceEstimate",
    "standard_errors",
    "confidence_interval",
    "wald_test",
    "term_contrast",
    "satterthwaite_test",
    "odds_ratios",
    "predict",
    "observation_diagnostics",
    "flag_influential",
    "ComparisonResult",
    "compare",
    "compare_chain",
    "CandidateFit",
    "fit_candidates",
    "Scope",
    "stepwise_select",
]
