"""
Confidence intervals for single coefficients.

Two mechanisms:

    wald      estimate ± q·SE. q is a normal quantile for model-based
              logistic fits and a t quantile with Satterthwaite df
              otherwise. Symmetric by construction.
    profile   inverts the likelihood-ratio test: the interval is the set
              of values b with 2(ℓ̂ - ℓ_p(b)) ≤ χ²₁(level), where ℓ_p(b)
              refits the model by ML with the coefficient held at b as
              an offset. REML fits are refitted by ML first. Generally
              asymmetric.
"""

from __future__ import annotations

import warnings
from typing import Any, Callable

import numpy as np
from scipy import stats
from scipy.optimize import brentq

from pylongreg.core.capabilities import (
    ESTIMATOR_MODEL, KIND_GLS, KIND_LMM, KIND_LOGISTIC,
)
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.fitted import FittedModel
from pylongreg.core.validation import check_choice, check_level
from pylongreg.gls import solvers as gls_solvers
from pylongreg.inference.satterthwaite import contrast_df, t_quantile_or_normal
from pylongreg.inference.variance import standard_errors
from pylongreg.mixed import solvers as mixed_solvers
from pylongreg.regression import solvers as logistic_solvers

INTERVAL_WALD = 'wald'
INTERVAL_PROFILE = 'profile'

# Bracket search for profile limits: start one Wald half-width out,
# double at most this many times.
_MAX_BRACKET_DOUBLINGS = 8

_PROFILERS: dict[str, tuple[Callable, Callable]] = {
    KIND_LMM: (mixed_solvers.refit_ml, mixed_solvers.profile_log_likelihood),
    KIND_GLS: (gls_solvers.refit_ml, gls_solvers.profile_log_likelihood),
    KIND_LOGISTIC: (logistic_solvers.refit_ml, logistic_solvers.profile_log_likelihood),
}


def confidence_interval(
    model: FittedModel,
    term: Any,
    estimator: str = ESTIMATOR_MODEL,
    level: float = 0.95,
    *,
    method: str = INTERVAL_WALD,
) -> tuple[float, float]:
    """
    Confidence interval for one coefficient.

    Args:
        model: Fitted model.
        term: Coefficient name, or a term with a single design column.
        estimator: Covariance estimator for Wald intervals.
        level: Confidence level in (0, 1).
        method: 'wald' (default) or 'profile'.

    Returns:
        (low, high). A profile limit that cannot be bracketed is
        reported as ±inf with a RuntimeWarning.

    Raises:
        ValidationError: If the term spans several columns, or a
            profile interval is requested with a sandwich estimator.
        NonConvergenceError: If a profiling refit fails.
    """
    check_level(level)
    check_choice(method, (INTERVAL_WALD, INTERVAL_PROFILE), 'method')
    index = _single_column(model, term)

    if method == INTERVAL_PROFILE:
        if estimator != ESTIMATOR_MODEL:
            raise ValidationError(
                f"Profile intervals are likelihood-based; estimator must be "
                f"'{ESTIMATOR_MODEL}', got {estimator!r}"
            )
        return _profile_interval(model, index, level)
    return _wald_interval(model, index, estimator, level)


def _wald_interval(
    model: FittedModel,
    index: int,
    estimator: str,
    level: float,
) -> tuple[float, float]:
    se = standard_errors(model, estimator).se[index]
    c = np.zeros(len(model.beta))
    c[index] = 1.0
    df = contrast_df(model, estimator, c)
    q = t_quantile_or_normal(0.5 + level / 2.0, df)
    estimate = float(model.beta[index])
    return estimate - q * se, estimate + q * se


def _profile_interval(model: FittedModel, index: int, level: float) -> tuple[float, float]:
    refit, profile = _PROFILERS[model.kind]
    ml_model = refit(model)
    ll_hat = ml_model.log_likelihood
    estimate = float(ml_model.beta[index])
    crit = float(stats.chi2.ppf(level, 1))

    def excess(b: float) -> float:
        return 2.0 * (ll_hat - profile(ml_model, index, b)) - crit

    half_width = np.sqrt(crit) * max(float(ml_model.se[index]), 1e-8)
    limits = []
    for direction in (-1.0, 1.0):
        step = half_width
        outer = None
        for _ in range(_MAX_BRACKET_DOUBLINGS + 1):
            candidate = estimate + direction * step
            if excess(candidate) > 0.0:
                outer = candidate
                break
            step *= 2.0
        if outer is None:
            msg = (
                f"Profile likelihood for {ml_model.coefficient_names[index]} "
                f"does not reach the {level:.0%} cutoff on the "
                f"{'lower' if direction < 0 else 'upper'} side; limit set to "
                f"{'-inf' if direction < 0 else 'inf'}"
            )
            warnings.warn(msg, RuntimeWarning, stacklevel=3)
            limits.append(direction * np.inf)
            continue
        # excess(estimate) = -crit < 0, so [estimate, outer] brackets the root
        inner = estimate + direction * step / 2.0 if step > half_width else estimate
        a, b = sorted((inner, outer))
        limits.append(float(brentq(excess, a, b, xtol=1e-8 * max(1.0, abs(estimate)))))
    return limits[0], limits[1]


def _single_column(model: FittedModel, term: Any) -> int:
    cols = model.columns_for(term)
    if len(cols) != 1:
        label = getattr(term, 'label', term)
        names = [model.coefficient_names[j] for j in cols]
        raise ValidationError(
            f"Term {label!r} spans {len(cols)} coefficients ({names}); "
            f"ask for one coefficient at a time"
        )
    return cols[0]
