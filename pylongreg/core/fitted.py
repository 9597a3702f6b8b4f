"""
FittedModel: the immutable artifact every fitter produces.

The three fit kinds (linear mixed effects, GLS, logistic) form a closed
tagged variant. They share one container; kind-specific output lives in
the Result payload and in the WorkingModel, which expresses each fit's
estimating equations in the common form

    Σ_i X_i' Φ_i⁻¹ e_i = 0

so that sandwich estimators and Bell-McCaffrey df need no per-kind code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pylongreg.core.capabilities import KIND_LMM, KIND_GLS, KIND_LOGISTIC
from pylongreg.core.compute.satterthwaite import SatterthwaiteApprox
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.result import Result

if TYPE_CHECKING:
    from pylongreg.data.table import Table
    from pylongreg.design.spec import ModelSpec


@dataclass(frozen=True, eq=False)
class WorkingModel:
    """
    Working-scale representation of a fit.

    Attributes:
        X: Fixed-effects design matrix (n, p).
        y: Response on its original scale (n,).
        residuals: Working residuals e (n,). Marginal residuals y - Xβ̂
            for linear models; (y - μ̂)/w for logistic regression.
        clusters: Row indices of each independent cluster.
        phi_blocks: Relative working covariance Φ_i of each cluster.
            The model-based covariance of β̂ is scale · (Σ X_i'Φ_i⁻¹X_i)⁻¹.
        scale: Residual variance σ² (1 for logistic regression).
        df_residual: n - p.
    """
    X: NDArray
    y: NDArray
    residuals: NDArray
    clusters: tuple[NDArray, ...]
    phi_blocks: tuple[NDArray, ...]
    scale: float
    df_residual: float

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    A fitted model. Immutable; produced only by the fitters.

    Attributes:
        kind: 'lmm', 'gls' or 'logistic'.
        spec: The ModelSpec that was fitted.
        coefficient_names: Names of the fixed-effect columns.
        beta: Estimated fixed effects (p,).
        vcov_model: Model-based covariance of β̂ (p, p).
        log_likelihood: Maximized log-likelihood (REML criterion for
            REML fits).
        n_params: Number of estimated parameters (AIC/BIC df).
        n_obs: Number of observations.
        method: 'REML' or 'ML'.
        variance_parameters: Estimated covariance-structure parameters
            by name (ρ, variance multipliers, random-effect SDs, σ).
        term_columns: Term label → indices of its design columns.
        working: WorkingModel consumed by the inference engine.
        result: Result envelope with the kind-specific payload.
        satterthwaite: Model-based df machinery (None for logistic fits).
        table: The data the model was fitted to.
        factor_levels: Levels of each categorical predictor at fit time.
        options: Fitter settings needed to refit (profiling, stepwise).
    """
    kind: str
    spec: 'ModelSpec'
    coefficient_names: tuple[str, ...]
    beta: NDArray
    vcov_model: NDArray
    log_likelihood: float
    n_params: int
    n_obs: int
    method: str
    variance_parameters: dict[str, float]
    term_columns: dict[str, tuple[int, ...]]
    working: WorkingModel
    result: Result[Any]
    satterthwaite: SatterthwaiteApprox | None = None
    table: 'Table | None' = field(default=None, repr=False)
    factor_levels: dict[str, tuple[str, ...]] = field(default_factory=dict, repr=False)
    options: dict[str, Any] = field(default_factory=dict, repr=False)

    # --- Coefficients ---

    @property
    def coefficients(self) -> dict[str, float]:
        """Coefficient name → estimate."""
        return {name: float(b) for name, b in zip(self.coefficient_names, self.beta)}

    @property
    def se(self) -> NDArray:
        """Model-based standard errors."""
        return np.sqrt(np.maximum(np.diag(self.vcov_model), 0.0))

    def columns_for(self, term: Any) -> tuple[int, ...]:
        """Design-column indices for a coefficient name or a term.

        Args:
            term: A coefficient name ('SexFemale'), a term label
                ('age:Sex' or 'Sex:age'), or a Term object.

        Raises:
            ValidationError: If nothing in the model matches.
        """
        label = getattr(term, 'label', term)
        if label in self.coefficient_names:
            return (self.coefficient_names.index(label),)
        # a term is its set of variables, whatever order the label uses
        key = frozenset(str(label).split(':'))
        for name, cols in self.term_columns.items():
            if frozenset(name.split(':')) == key:
                return cols
        raise ValidationError(
            f"Model has no coefficient or term {label!r}. "
            f"Coefficients: {list(self.coefficient_names)}; "
            f"terms: {list(self.term_columns)}"
        )

    # --- Fit statistics ---

    @property
    def aic(self) -> float:
        """AIC = 2k - 2 logLik."""
        return 2.0 * self.n_params - 2.0 * self.log_likelihood

    @property
    def bic(self) -> float:
        """BIC = k ln(n) - 2 logLik."""
        return self.n_params * np.log(self.n_obs) - 2.0 * self.log_likelihood

    @property
    def params(self) -> Any:
        """Kind-specific payload (LMMParams, GLSParams, LogisticParams)."""
        return self.result.params

    @property
    def info(self) -> dict[str, Any]:
        return self.result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self.result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self.result.warnings

    # --- Display ---

    def summary(self) -> str:
        """R-style summary for this fit kind."""
        if self.kind == KIND_LMM:
            from pylongreg.mixed.solution import summarize
        elif self.kind == KIND_GLS:
            from pylongreg.gls.solution import summarize
        elif self.kind == KIND_LOGISTIC:
            from pylongreg.regression.solution import summarize
        else:
            raise ValidationError(f"Unknown fit kind: {self.kind!r}")
        return summarize(self)

    def __repr__(self) -> str:
        return (
            f"FittedModel({self.kind}, {self.spec}, method={self.method}, "
            f"n={self.n_obs}, logLik={self.log_likelihood:.4f})"
        )
