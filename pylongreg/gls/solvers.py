"""
Solver dispatch for generalized least squares.

Public API:
    gls()                            — fit from arrays
    fit_generalized_least_squares()  — fit from a Table and a ModelSpec
    refit_ml()                       — refit by ML with the same structure
    profile_log_likelihood()         — ML log-likelihood with one coefficient fixed
"""

from __future__ import annotations

import dataclasses
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.optimize import minimize
from scipy import stats

from pylongreg.core.capabilities import ALL_METHODS, KIND_GLS, METHOD_ML, METHOD_REML
from pylongreg.core.compute.linalg import profiled_log_likelihood
from pylongreg.core.compute.timing import Timer
from pylongreg.core.compute.tolerances import (
    FitControl, LIKELIHOOD_CONTROL, optimizer_failure_reason,
)
from pylongreg.core.exceptions import NonConvergenceError, ValidationError
from pylongreg.core.fitted import FittedModel, WorkingModel
from pylongreg.core.result import Result
from pylongreg.core.validation import (
    check_1d, check_2d, check_array, check_choice, check_consistent_length, check_finite,
)
from pylongreg.data.table import Table, format_level
from pylongreg.design.matrix import build_design
from pylongreg.design.spec import ModelSpec

from pylongreg.gls._common import GLSParams
from pylongreg.gls._likelihood import (
    fit_at, gls_satterthwaite, negative_log_likelihood, normalized_residuals,
)
from pylongreg.gls.structures import CovarianceStructure, resolve_structure


def gls(
    y: ArrayLike,
    X: ArrayLike,
    covariance: CovarianceStructure,
    *,
    clusters: tuple[NDArray, ...] | None = None,
    time: ArrayLike | None = None,
    strata: ArrayLike | None = None,
    strata_levels: tuple[str, ...] | None = None,
    coefficient_names: tuple[str, ...] | None = None,
    offset: ArrayLike | None = None,
    method: str = METHOD_REML,
    control: FitControl | None = None,
    compute_satterthwaite: bool = True,
) -> Result[GLSParams]:
    """Fit a linear model with a structured residual covariance.

    Args:
        y: Response vector (n,).
        X: Design matrix (n, p).
        covariance: Residual covariance structure.
        clusters: Row indices of each cluster. Defaults to one cluster
            per row (only valid for uncorrelated structures).
        time: Measurement times for AR(1) lags.
        strata: Variance-stratum label per row, required with
            covariance.variance_by.
        strata_levels: Stratum order; the first is the reference.
        coefficient_names: Names of the columns of X.
        offset: Known component of the mean (n,).
        method: 'REML' (default) or 'ML'.
        control: Optimizer settings. Defaults to LIKELIHOOD_CONTROL.
        compute_satterthwaite: If True (default), compute Satterthwaite
            df for the coefficients; otherwise use n - p.

    Returns:
        Result[GLSParams].

    Raises:
        ValidationError: On invalid inputs or an inadmissible structure.
        NonConvergenceError: If the optimizer exhausts its budget or stops
            without converging.
        NotPositiveDefiniteError: If a Φ_i block is not positive definite.
    """
    check_choice(method, ALL_METHODS, 'method')
    control = control or LIKELIHOOD_CONTROL
    reml = method == METHOD_REML
    timer = Timer()
    timer.start()

    y = check_array(y, 'y')
    X = check_array(X, 'X')
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if y.ndim == 2 and y.shape[1] == 1:
        y = y.ravel()
    check_2d(X, 'X')
    check_1d(y, 'y')
    check_consistent_length(X, y, names=('X', 'y'))
    check_finite(X, 'X')
    check_finite(y, 'y')
    n, p = X.shape
    if n <= p:
        raise ValidationError(f"Need more observations ({n}) than coefficients ({p})")
    y_net = y if offset is None else y - np.asarray(offset, dtype=np.float64)

    if clusters is None:
        if covariance.is_correlated:
            raise ValidationError(
                f"A {covariance.kind} structure needs clusters (a grouping column)"
            )
        clusters = tuple(np.array([i]) for i in range(n))

    with timer.section('setup'):
        resolved = resolve_structure(
            covariance, clusters, n,
            time=None if time is None else np.asarray(time),
            strata=None if strata is None else np.asarray(strata, dtype=object),
            strata_levels=strata_levels,
        )
        lower, upper = resolved.bounds()

    warn_list: list[str] = []
    if resolved.n_free == 0:
        # Every parameter fixed: one whitened least squares solve
        phi_hat = np.zeros(0)
        n_iter = 0
    else:
        with timer.section('optimization'):
            ols_resid = y_net - X @ np.linalg.lstsq(X, y_net, rcond=None)[0] if p else y_net
            start = np.clip(resolved.start(ols_resid), lower, upper)
            opt_result = minimize(
                negative_log_likelihood,
                start,
                args=(X, y_net, resolved, reml),
                method='L-BFGS-B',
                bounds=list(zip(lower, upper)),
                options={'maxiter': control.max_iter, 'ftol': control.tol,
                         'gtol': control.tol * 10},
            )
        phi_hat = opt_result.x
        n_iter = int(opt_result.nit)
        if not opt_result.success:
            raise NonConvergenceError(
                f"GLS optimizer did not converge ({n_iter} of {control.max_iter} "
                f"iterations): {opt_result.message}",
                iterations=n_iter,
                reason=optimizer_failure_reason(opt_result),
                threshold=control.tol,
            )

    with timer.section('final_solve'):
        fit = fit_at(phi_hat, X, y_net, resolved)
        blocks = resolved.phi_blocks(phi_hat)
        sigma_sq = fit.rss / (n - p) if reml else fit.rss / n
        sigma = float(np.sqrt(sigma_sq))
        vcov = sigma_sq * fit.xtx_inv
        se = np.sqrt(np.maximum(np.diag(vcov), 0.0))
        ll = profiled_log_likelihood(fit, n, p, reml)

    with timer.section('satterthwaite'):
        if compute_satterthwaite:
            approx = gls_satterthwaite(phi_hat, sigma, X, y_net, resolved, reml)
            df_satt = approx.df_per_coefficient()
        else:
            approx = None
            df_satt = np.full(p, float(n - p))
        t_vals = fit.beta / se
        p_vals = 2.0 * stats.t.sf(np.abs(t_vals), df_satt)

    timer.stop()

    filled = resolved.with_estimates(phi_hat)
    params = GLSParams(
        coefficients=fit.beta,
        coefficient_names=tuple(coefficient_names or [f'X{j}' for j in range(p)]),
        vcov=vcov,
        se=se,
        df_satterthwaite=df_satt,
        t_values=t_vals,
        p_values=p_vals,
        structure=filled,
        rho=filled.rho,
        multipliers=resolved.multipliers(phi_hat),
        estimated=tuple(resolved.parameter_names()),
        phi=phi_hat,
        residual_variance=float(sigma_sq),
        residual_std=sigma,
        log_likelihood=float(ll),
        method=method,
        n_params=p + resolved.n_free + 1,
        n_obs=n,
        n_clusters=len(clusters),
        converged=True,
        n_iter=n_iter,
        fitted_values=y - fit.residuals,
        residuals=fit.residuals,
        normalized_residuals=normalized_residuals(fit.residuals, blocks, clusters, sigma),
        phi_blocks=blocks,
        clusters=tuple(clusters),
        satterthwaite=approx,
    )

    return Result(
        params=params,
        info={
            'method': method,
            'structure': covariance.kind,
            'optimizer': 'L-BFGS-B' if resolved.n_free else 'closed_form',
            'converged': True,
            'n_iter': n_iter,
            'n_free_parameters': resolved.n_free,
        },
        timing=timer.result(),
        backend_name='cpu_gls',
        warnings=tuple(warn_list),
    )


def fit_generalized_least_squares(
    table: Table,
    spec: ModelSpec,
    covariance: CovarianceStructure,
    method: str = METHOD_REML,
    *,
    control: FitControl | None = None,
) -> FittedModel:
    """Fit a GLS model to a table.

    Args:
        table: Source data.
        spec: Mean model; spec.group defines the clusters.
        covariance: Residual covariance structure. Parameters given at
            construction are held fixed, the rest estimated.
        method: 'REML' (default) or 'ML'.
        control: Optimizer settings.

    Returns:
        FittedModel of kind 'gls'.

    Raises:
        ValidationError: If a correlated structure has no grouping
            column, or a structure column is missing.
        RankDeficientError: If the design is rank-deficient.
        NonConvergenceError: If the optimizer exhausts its budget or stops
            without converging.

    Examples:
        >>> cs = CovarianceStructure.compound_symmetry(variance_by='Sex')
        >>> model = fit_generalized_least_squares(orthodont, spec, cs)
    """
    check_choice(method, ALL_METHODS, 'method')
    if covariance.is_correlated and spec.group is None:
        raise ValidationError(
            f"A {covariance.kind} structure needs a grouping column; "
            f"use ModelSpec.builder(...).grouped_by(...)"
        )
    time, strata, strata_levels = _structure_columns(table, covariance)

    design = build_design(table, spec)
    clusters = design.clusters()
    result = gls(
        design.y, design.X, covariance,
        clusters=clusters,
        time=time,
        strata=strata,
        strata_levels=strata_levels,
        coefficient_names=design.column_names,
        method=method,
        control=control,
    )
    result = dataclasses.replace(result, warnings=design.warnings + result.warnings)
    params = result.params

    working = WorkingModel(
        X=design.X,
        y=design.y,
        residuals=params.residuals,
        clusters=params.clusters,
        phi_blocks=params.phi_blocks,
        scale=params.residual_variance,
        df_residual=float(design.n - design.p),
    )
    return FittedModel(
        kind=KIND_GLS,
        spec=spec,
        coefficient_names=design.column_names,
        beta=params.coefficients,
        vcov_model=params.vcov,
        log_likelihood=params.log_likelihood,
        n_params=params.n_params,
        n_obs=params.n_obs,
        method=method,
        variance_parameters=_variance_parameters(params),
        term_columns=design.term_columns,
        working=working,
        result=result,
        satterthwaite=params.satterthwaite,
        table=table,
        factor_levels=design.factor_levels,
        options={'covariance': covariance, 'control': control},
    )


def refit_ml(model: FittedModel) -> FittedModel:
    """Refit a GLS model by maximum likelihood with the same structure."""
    if model.method == METHOD_ML:
        return model
    return fit_generalized_least_squares(
        model.table, model.spec, model.options['covariance'], METHOD_ML,
        control=model.options.get('control'),
    )


def profile_log_likelihood(model: FittedModel, index: int, value: float) -> float:
    """ML log-likelihood with coefficient `index` held at `value`."""
    control = model.options.get('control') or LIKELIHOOD_CONTROL
    covariance = model.options['covariance']
    time, strata, strata_levels = _structure_columns(model.table, covariance)
    X = model.working.X
    keep = [j for j in range(X.shape[1]) if j != index]
    return _profile_free(model, X[:, keep], X[:, index] * value,
                         time, strata, strata_levels, control)


# =====================================================================
# Helpers
# =====================================================================

def _profile_free(model, X, offset, time, strata, strata_levels, control) -> float:
    result = gls(
        model.working.y, X, model.options['covariance'],
        clusters=model.working.clusters,
        time=time,
        strata=strata,
        strata_levels=strata_levels,
        offset=offset,
        method=METHOD_ML,
        control=FitControl(tol=control.tol, max_iter=control.profile_max_iter),
        compute_satterthwaite=False,
    )
    return result.params.log_likelihood


def _structure_columns(
    table: Table,
    covariance: CovarianceStructure,
) -> tuple[NDArray | None, NDArray | None, tuple[str, ...] | None]:
    """Time values and variance strata for a structure, from the table."""
    time = strata = levels = None
    for column in (covariance.time, covariance.variance_by):
        if column is not None and column not in table:
            raise ValidationError(
                f"Covariance column '{column}' not found. Available: {list(table.keys())}"
            )
        if column is not None and table.is_missing(column).any():
            raise ValidationError(f"Covariance column '{column}' has missing values")
    if covariance.time is not None:
        if table.is_categorical(covariance.time):
            time = table.codes(covariance.time)
        else:
            time = table[covariance.time]
    if covariance.variance_by is not None:
        column = covariance.variance_by
        if table.is_categorical(column):
            strata = table[column]
            present = set(strata)
            levels = tuple(lv for lv in table.levels(column) if lv in present)
        else:
            values = table[column]
            strata = np.array([format_level(v) for v in values], dtype=object)
            levels = tuple(format_level(u) for u in np.unique(values))
    return time, strata, levels


def _variance_parameters(params: GLSParams) -> dict[str, float]:
    out = {}
    if params.rho is not None:
        out['rho'] = float(params.rho)
    for level, mult in params.multipliers.items():
        out[f"delta[{level}]"] = mult
    out['sigma'] = params.residual_std
    return out
