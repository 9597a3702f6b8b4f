"""
Likelihood-ratio comparison of nested models.

Matches anova() on two fitted models in R: information criteria for
both fits, the LRT statistic 2(ℓ_B - ℓ_A) and its χ²(Δk) p-value.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import stats

from pylongreg.core.capabilities import KIND_GLS, KIND_LMM, KIND_LOGISTIC, METHOD_REML
from pylongreg.core.exceptions import NotNestedError, ValidationError
from pylongreg.core.fitted import FittedModel

# Fit kind → likelihood family. LMM and GLS fits share a Gaussian
# likelihood and can be compared with each other.
_FAMILY = {KIND_LMM: 'gaussian', KIND_GLS: 'gaussian', KIND_LOGISTIC: 'binomial'}


@dataclass(frozen=True)
class ComparisonResult:
    """
    Comparison of a smaller model A with a larger model B.

    Attributes:
        aic_a, aic_b: AIC = 2k - 2ℓ.
        bic_a, bic_b: BIC = k ln(n) - 2ℓ.
        loglik_a, loglik_b: Log-likelihoods (REML criterion for REML fits).
        df_a, df_b: Number of estimated parameters k.
        statistic: LRT = max(0, 2(ℓ_B - ℓ_A)).
        df_diff: k_B - k_A.
        p_value: P(χ²(Δk) ≥ LRT); NaN when Δk = 0.
    """
    aic_a: float
    aic_b: float
    bic_a: float
    bic_b: float
    loglik_a: float
    loglik_b: float
    df_a: int
    df_b: int
    statistic: float
    df_diff: int
    p_value: float

    def to_dict(self) -> dict[str, float]:
        return dict(self.__dict__)

    def summary(self) -> str:
        """Two-row table in the layout of R's anova()."""
        lines = [
            f"{'':6s} {'df':>4s} {'AIC':>10s} {'BIC':>10s} {'logLik':>10s} "
            f"{'L.Ratio':>10s} {'p-value':>10s}",
            f"{'A':6s} {self.df_a:4d} {self.aic_a:10.3f} {self.bic_a:10.3f} "
            f"{self.loglik_a:10.3f}",
            f"{'B':6s} {self.df_b:4d} {self.aic_b:10.3f} {self.bic_b:10.3f} "
            f"{self.loglik_b:10.3f} {self.statistic:10.4f} {self.p_value:10.4g}",
        ]
        return '\n'.join(lines)


def compare(model_a: FittedModel, model_b: FittedModel) -> ComparisonResult:
    """
    Compare nested models A ⊆ B.

    Args:
        model_a: The smaller model.
        model_b: The larger model.

    Returns:
        ComparisonResult.

    Raises:
        NotNestedError: If B's terms do not include A's, the models were
            fitted to different data, by different methods or with
            different likelihoods, if linear models group observations
            differently, if B has fewer parameters than A, or if REML
            fits differ in their fixed effects.
    """
    fam_a, fam_b = _FAMILY[model_a.kind], _FAMILY[model_b.kind]
    if fam_a != fam_b:
        raise NotNestedError(
            f"Models have different likelihoods ({model_a.kind}: {fam_a}, "
            f"{model_b.kind}: {fam_b})",
            reason='family',
        )
    if model_a.n_obs != model_b.n_obs or not np.array_equal(
        model_a.working.y, model_b.working.y
    ):
        raise NotNestedError(
            f"Models were fitted to different data (n={model_a.n_obs} vs "
            f"n={model_b.n_obs}, or different response values)",
            reason='data',
        )
    if fam_a == 'gaussian' and model_a.spec.group != model_b.spec.group:
        # the clusters define the Gaussian covariance
        raise NotNestedError(
            f"Models group observations differently "
            f"({model_a.spec.group!r} vs {model_b.spec.group!r})",
            reason='group',
        )
    if model_a.method != model_b.method:
        raise NotNestedError(
            f"Models were fitted by different methods "
            f"({model_a.method} vs {model_b.method})",
            reason='method',
        )

    spec_a, spec_b = model_a.spec, model_b.spec
    missing = [t.label for t in spec_a.terms if not spec_b.has_term(t)]
    if spec_a.intercept and not spec_b.intercept:
        missing.append('(Intercept)')
    if missing:
        raise NotNestedError(
            f"Model B lacks terms of model A: {missing}",
            reason='terms',
        )
    if model_b.n_params < model_a.n_params:
        raise NotNestedError(
            f"Model B has fewer parameters ({model_b.n_params}) than model A "
            f"({model_a.n_params})",
            reason='parameters',
        )
    if model_a.method == METHOD_REML and (
        spec_a.term_set != spec_b.term_set or spec_a.intercept != spec_b.intercept
    ):
        raise NotNestedError(
            "REML likelihoods are only comparable between models with the "
            "same fixed effects; refit both by ML",
            reason='fixed_effects',
        )

    df_diff = model_b.n_params - model_a.n_params
    statistic = max(0.0, 2.0 * (model_b.log_likelihood - model_a.log_likelihood))
    p_value = float(stats.chi2.sf(statistic, df_diff)) if df_diff > 0 else float('nan')

    return ComparisonResult(
        aic_a=model_a.aic,
        aic_b=model_b.aic,
        bic_a=model_a.bic,
        bic_b=model_b.bic,
        loglik_a=model_a.log_likelihood,
        loglik_b=model_b.log_likelihood,
        df_a=model_a.n_params,
        df_b=model_b.n_params,
        statistic=statistic,
        df_diff=df_diff,
        p_value=p_value,
    )


def compare_chain(*models: FittedModel) -> list[ComparisonResult]:
    """Compare each model with the next: (m1, m2), (m2, m3), ...

    Raises:
        ValidationError: If fewer than two models are given.
        NotNestedError: If any successive pair is not nested.
    """
    if len(models) < 2:
        raise ValidationError(f"compare_chain needs at least two models, got {len(models)}")
    return [compare(a, b) for a, b in zip(models[:-1], models[1:])]
