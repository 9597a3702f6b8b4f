"""
Satterthwaite tests for fixed-effect terms.

Degrees of freedom are approximated from the variance of the estimate
rather than assumed:

    model-based, LMM / GLS   Kuznetsova et al. (2017), from the
                             Jacobian of Var(β̂) in the variance
                             parameters and their asymptotic covariance
    model-based, logistic    ∞ (the usual z test)
    sandwich (CR0/CR1/CR2)   Bell & McCaffrey (2002) under the working
                             model

Multi-column terms are tested with lmerTest's F construction: the
contrast covariance is eigen-decomposed into independent 1-df pieces
whose df are combined as ν = 2E / (E - q), E = Σ ν_m / (ν_m - 2).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pylongreg.core.capabilities import ESTIMATOR_MODEL, KIND_LOGISTIC
from pylongreg.core.fitted import FittedModel
from pylongreg.inference._sandwich import SandwichPieces, bell_mccaffrey_df, sandwich_pieces
from pylongreg.inference.variance import standard_errors
from pylongreg.inference.wald import term_contrast


@dataclass(frozen=True)
class SatterthwaiteResult:
    """
    Test of one fixed-effect term with approximate degrees of freedom.

    Iterates as (statistic, df, p_value).

    Attributes:
        statistic: t for a single-column term, F for a multi-column term.
        df: Approximate denominator degrees of freedom.
        p_value: Two-sided p-value.
        num_df: Number of columns tested (1 for a t test).
        estimator: Covariance estimator used.
        term: Label of the tested term.
    """
    statistic: float
    df: float
    p_value: float
    num_df: int
    estimator: str
    term: str

    @property
    def statistic_name(self) -> str:
        return 't' if self.num_df == 1 else 'F'

    def __iter__(self) -> Iterator[float]:
        return iter((self.statistic, self.df, self.p_value))


class _DfCalculator:
    """Contrast df for one (model, estimator) pair."""

    def __init__(self, model: FittedModel, estimator: str):
        self._model = model
        self._estimator = estimator
        self._pieces: SandwichPieces | None = None

    def __call__(self, contrast: NDArray[np.floating[Any]]) -> float:
        model = self._model
        if self._estimator == ESTIMATOR_MODEL:
            if model.kind == KIND_LOGISTIC:
                return float('inf')
            if model.satterthwaite is None:
                return float(model.working.df_residual)
            return model.satterthwaite.df(contrast)
        if self._pieces is None:
            self._pieces = sandwich_pieces(model.working, self._estimator)
        return bell_mccaffrey_df(
            model.working, self._estimator, contrast, pieces=self._pieces,
        )


def contrast_df(
    model: FittedModel,
    estimator: str,
    contrast: NDArray[np.floating[Any]],
) -> float:
    """Approximate df of c'β̂ under the given covariance estimator."""
    return _DfCalculator(model, estimator)(np.asarray(contrast, dtype=np.float64))


def t_quantile_or_normal(prob: float, df: float) -> float:
    """Quantile of t(df), or of N(0, 1) when df is infinite."""
    if np.isfinite(df):
        return float(stats.t.ppf(prob, df))
    return float(stats.norm.ppf(prob))


def satterthwaite_test(
    model: FittedModel,
    estimator: str,
    term: Any,
) -> SatterthwaiteResult:
    """
    Test that every coefficient of a term is zero.

    Args:
        model: Fitted model.
        estimator: 'model', 'CR0', 'CR1' or 'CR2'.
        term: Coefficient name, term label or Term.

    Returns:
        SatterthwaiteResult (t test for one column, F test otherwise).

    Raises:
        ValidationError: If the term is not in the model or the
            estimator is unknown.

    Examples:
        >>> t, df, p = satterthwaite_test(model, 'CR2', 'age:Sex')
    """
    V = standard_errors(model, estimator).matrix
    L = term_contrast(model, term)
    label = getattr(term, 'label', term)
    df_of = _DfCalculator(model, estimator)

    if L.shape[0] == 1:
        c = L[0]
        estimate = float(c @ model.beta)
        se = float(np.sqrt(max(c @ V @ c, 0.0)))
        t = estimate / se
        df = df_of(c)
        return SatterthwaiteResult(
            statistic=t, df=df, p_value=_two_sided_p(t, df),
            num_df=1, estimator=estimator, term=label,
        )

    # Independent 1-df directions of the contrast covariance
    evals, P = np.linalg.eigh(L @ V @ L.T)
    keep = evals > 1e-10 * max(float(evals.max()), 0.0)
    evals, P = evals[keep], P[:, keep]
    q = len(evals)
    rotated = P.T @ L
    t_sq = (rotated @ model.beta) ** 2 / evals
    nus = np.array([df_of(c) for c in rotated])
    F = float(np.sum(t_sq) / q)
    ddf = _combine_df(nus)
    if np.isfinite(ddf):
        p_value = float(stats.f.sf(F, q, ddf))
    else:
        p_value = float(stats.chi2.sf(F * q, q))
    return SatterthwaiteResult(
        statistic=F, df=ddf, p_value=p_value,
        num_df=q, estimator=estimator, term=label,
    )


def _combine_df(nus: NDArray[np.floating[Any]], tol: float = 1e-8) -> float:
    """lmerTest's get_Fstat_ddf."""
    if len(nus) == 1:
        return float(nus[0])
    if np.all(np.isinf(nus)):
        return float('inf')
    if np.all(np.abs(nus - nus[0]) < tol):
        return float(nus[0])
    if np.any(nus <= 2):
        return 2.0
    finite = nus[np.isfinite(nus)]
    E = float(np.sum(finite / (finite - 2.0))) + float(np.sum(~np.isfinite(nus)))
    return 2.0 * E / (E - len(nus))


def _two_sided_p(t: float, df: float) -> float:
    if np.isfinite(df):
        return float(2.0 * stats.t.sf(abs(t), df))
    return float(2.0 * stats.norm.sf(abs(t)))
