"""
Solver dispatch for logistic regression.

This module provides the public fitting API and backend selection.

Public API:
    logistic()                 — fit from arrays
    fit_logistic_regression()  — fit from a Table and a ModelSpec
    refit_ml()                 — identity (IRLS already maximizes the likelihood)
    profile_log_likelihood()   — log-likelihood with one coefficient fixed
"""

from __future__ import annotations

import dataclasses
import numpy as np
from numpy.typing import ArrayLike, NDArray

from pylongreg.core.capabilities import KIND_LOGISTIC, METHOD_ML
from pylongreg.core.compute.tolerances import FitControl, IRLS_CONTROL
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.fitted import FittedModel, WorkingModel
from pylongreg.core.result import Result
from pylongreg.core.validation import (
    check_1d, check_2d, check_array, check_consistent_length, check_finite,
)
from pylongreg.data.table import Table
from pylongreg.design.spec import ModelSpec

from pylongreg.regression._common import LogisticParams
from pylongreg.regression.backends.cpu_glm import CPUIRLSBackend
from pylongreg.regression.design import LogisticDesign, validate_binary
from pylongreg.regression.families import Binomial


def logistic(
    y: ArrayLike,
    X: ArrayLike,
    *,
    offset: ArrayLike | None = None,
    intercept: bool = True,
    coefficient_names: tuple[str, ...] | None = None,
    control: FitControl | None = None,
) -> Result[LogisticParams]:
    """
    Fit a logistic regression by IRLS.

    This is the boundary: validate here, trust everywhere else.

    Args:
        y: Binary response (n,). Values must be exactly 0 or 1.
        X: Design matrix (n, p).
        offset: Known component of the linear predictor (n,).
        intercept: Whether X carries an intercept column. Only the null
            deviance depends on it.
        coefficient_names: Names of the columns of X.
        control: IRLS settings. Defaults to IRLS_CONTROL
            (tol=1e-8, max_iter=25, as glm.control).

    Returns:
        Result[LogisticParams].

    Raises:
        InvalidResponseError: If y has values other than 0/1.
        ValidationError: On non-finite or inconsistent inputs.
        NonConvergenceError: If IRLS exhausts its budget.
    """
    control = control or IRLS_CONTROL
    X_arr = check_array(X, 'X')
    y_arr = check_array(y, 'y')
    if X_arr.ndim == 1:
        X_arr = X_arr.reshape(-1, 1)
    if y_arr.ndim == 2 and y_arr.shape[1] == 1:
        y_arr = y_arr.ravel()
    check_2d(X_arr, 'X')
    check_1d(y_arr, 'y')
    check_consistent_length(X_arr, y_arr, names=('X', 'y'))
    check_finite(X_arr, 'X')
    validate_binary(y_arr)
    n, p = X_arr.shape
    if n <= p:
        raise ValidationError(f"Need more observations ({n}) than coefficients ({p})")
    offset_arr = None
    if offset is not None:
        offset_arr = np.asarray(offset, dtype=np.float64).ravel()
        check_consistent_length(X_arr, offset_arr, names=('X', 'offset'))
        check_finite(offset_arr, 'offset')

    backend = CPUIRLSBackend()
    return backend.solve(
        X_arr, y_arr, Binomial(),
        offset=offset_arr,
        intercept=intercept,
        coefficient_names=coefficient_names,
        tol=control.tol,
        max_iter=control.max_iter,
    )


def fit_logistic_regression(
    table: Table,
    spec: ModelSpec,
    *,
    control: FitControl | None = None,
) -> FittedModel:
    """Fit a binomial GLM with logit link to a table.

    Clusters for sandwich estimators are the levels of spec.group when
    one is given, otherwise single observations.

    Args:
        table: Source data.
        spec: Model specification with a 0/1 response.
        control: IRLS settings.

    Returns:
        FittedModel of kind 'logistic'.

    Raises:
        InvalidResponseError: If the response is categorical, missing
            or not exactly 0/1.
        RankDeficientError: If the design is rank-deficient.
        NonConvergenceError: If IRLS exhausts its budget.

    Examples:
        >>> spec = ModelSpec.builder('admit').main('gre', 'gpa', 'rank').build()
        >>> model = fit_logistic_regression(admissions, spec)
        >>> model.params.null_deviance
    """
    ld = LogisticDesign.from_table(table, spec)
    design = ld.design
    result = logistic(
        design.y, design.X,
        intercept=ld.intercept,
        coefficient_names=design.column_names,
        control=control,
    )
    result = dataclasses.replace(result, warnings=design.warnings + result.warnings)
    params = result.params

    clusters = design.clusters()
    working = WorkingModel(
        X=design.X,
        y=design.y,
        residuals=params.residuals_working,
        clusters=clusters,
        phi_blocks=_phi_blocks(params.working_weights, clusters),
        scale=1.0,
        df_residual=float(params.df_residual),
    )
    return FittedModel(
        kind=KIND_LOGISTIC,
        spec=spec,
        coefficient_names=design.column_names,
        beta=params.coefficients,
        vcov_model=params.vcov,
        log_likelihood=params.log_likelihood,
        n_params=params.n_params,
        n_obs=params.n_obs,
        method=METHOD_ML,
        variance_parameters={},
        term_columns=design.term_columns,
        working=working,
        result=result,
        satterthwaite=None,
        table=table,
        factor_levels=design.factor_levels,
        options={'control': control},
    )


def refit_ml(model: FittedModel) -> FittedModel:
    """IRLS fits are already maximum likelihood."""
    return model


def profile_log_likelihood(model: FittedModel, index: int, value: float) -> float:
    """Log-likelihood with coefficient `index` held at `value`."""
    control = model.options.get('control') or IRLS_CONTROL
    X = model.working.X
    keep = [j for j in range(X.shape[1]) if j != index]
    result = logistic(
        model.working.y, X[:, keep],
        offset=X[:, index] * value,
        intercept=model.spec.intercept,
        control=FitControl(tol=control.tol, max_iter=control.profile_max_iter),
    )
    return result.params.log_likelihood


def _phi_blocks(weights: NDArray, clusters: tuple[NDArray, ...]) -> tuple[NDArray, ...]:
    """Working covariance diag(1/w) restricted to each cluster."""
    return tuple(np.diag(1.0 / weights[idx]) for idx in clusters)
