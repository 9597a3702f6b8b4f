"""
Solver dispatch for linear mixed models.

Public API:
    lmm()                       — fit an LMM from arrays (REML or ML)
    fit_linear_mixed_effects()  — fit an LMM from a Table and a ModelSpec
    refit_ml()                  — refit a model by ML with the same structure
    profile_log_likelihood()    — ML log-likelihood with one coefficient fixed
"""

from __future__ import annotations

import dataclasses
import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.optimize import minimize
from scipy import stats

from pylongreg.core.capabilities import KIND_LMM, METHOD_ML, METHOD_REML
from pylongreg.core.compute.linalg import block_gls
from pylongreg.core.compute.timing import Timer
from pylongreg.core.compute.tolerances import (
    FitControl, LIKELIHOOD_CONTROL, optimizer_failure_reason,
)
from pylongreg.core.exceptions import (
    NonConvergenceError, SingularFitError, ValidationError,
)
from pylongreg.core.fitted import FittedModel, WorkingModel
from pylongreg.core.result import Result
from pylongreg.data.table import Table
from pylongreg.design.matrix import INTERCEPT, build_design
from pylongreg.design.spec import ModelSpec

from pylongreg.mixed._common import LMMParams, VarCompSummary
from pylongreg.mixed._random_effects import (
    RANDOM_INTERCEPT, RandomEffectSpec, build_random_effects, build_z_matrix,
    build_lambda, marginal_blocks, theta_diagonal, theta_lower_bounds,
    theta_starts, theta_to_factor,
)
from pylongreg.mixed._pls import solve_pls
from pylongreg.mixed._deviance import deviance_from_pls, profiled_deviance_lmm
from pylongreg.mixed._satterthwaite import lmm_satterthwaite
from pylongreg.mixed.design import MixedDesign


def lmm(
    y: ArrayLike,
    X: ArrayLike,
    groups: ArrayLike,
    *,
    random_terms: tuple[str, ...] = (RANDOM_INTERCEPT,),
    random_data: dict[str, ArrayLike] | None = None,
    group_name: str = 'group',
    group_labels: tuple[str, ...] | None = None,
    coefficient_names: tuple[str, ...] | None = None,
    offset: ArrayLike | None = None,
    reml: bool = True,
    control: FitControl | None = None,
    compute_satterthwaite: bool = True,
) -> Result[LMMParams]:
    """Fit a linear mixed model with one grouping factor.

    Estimates fixed effects β, random effects variance components,
    and conditional modes (BLUPs) of random effects using the profiled
    REML/ML deviance approach from Bates et al. (2015).

    Args:
        y: Response vector (n,).
        X: Fixed effects design matrix (n, p). Should include an
            intercept column if desired.
        groups: Cluster label per observation (n,).
        random_terms: Random effect terms per cluster. '1' is the
            random intercept; other names are slope variables.
            Example: ('1', 'age') for (1 + age | Subject).
        random_data: Data arrays for the slope variables.
        group_name: Name of the grouping factor, for display.
        group_labels: Display labels for the sorted unique groups.
        coefficient_names: Names of the columns of X.
        offset: Known component of the linear predictor (n,).
        reml: If True (default), use REML estimation. If False, use ML.
            Use ML for likelihood ratio tests between models with
            different fixed effects.
        control: Optimizer settings. Defaults to LIKELIHOOD_CONTROL.
        compute_satterthwaite: If True (default), compute Satterthwaite
            denominator df for fixed effects.

    Returns:
        Result[LMMParams].

    Raises:
        ValidationError: On invalid inputs.
        NonConvergenceError: If no optimizer start converges within the
            iteration budget.
        SingularFitError: If a relative random-effect standard deviation
            falls below control.singular_tol.

    Examples:
        # Random intercept model
        >>> result = lmm(y, X, subject_ids)

        # Random intercept + slope
        >>> result = lmm(y, X, subject_ids, random_terms=('1', 'age'),
        ...              random_data={'age': age})
    """
    control = control or LIKELIHOOD_CONTROL
    timer = Timer()
    timer.start()

    design = MixedDesign.validate(
        np.asarray(y, dtype=np.float64),
        np.asarray(X, dtype=np.float64),
        np.asarray(groups),
        random_terms,
        {k: np.asarray(v) for k, v in (random_data or {}).items()},
    )
    n, p = design.n, design.p
    y_net = design.y if offset is None else design.y - np.asarray(offset, dtype=np.float64)

    with timer.section('setup'):
        re = build_random_effects(
            group_name, design.group_ids, design.random_terms, design.random_data
        )
        Z = build_z_matrix(re)
        clusters = re.clusters()
        lb = theta_lower_bounds(re)
        bounds = [(lo if np.isfinite(lo) else None, None) for lo in lb]

    # Optimize θ, from several starts when random slopes are present
    with timer.section('optimization'):
        opt_result = None
        failed = None
        for start in theta_starts(re):
            res = minimize(
                profiled_deviance_lmm,
                start,
                args=(design.X, Z, y_net, re, reml),
                method='L-BFGS-B',
                bounds=bounds,
                options={'maxiter': control.max_iter, 'ftol': control.tol,
                         'gtol': control.tol * 10},
            )
            if not res.success:
                failed = res
            elif opt_result is None or res.fun < opt_result.fun:
                opt_result = res

    # Only a converged start may supply the estimate
    if opt_result is None:
        raise NonConvergenceError(
            f"LMM optimizer did not converge ({int(failed.nit)} of "
            f"{control.max_iter} iterations): {failed.message}",
            iterations=int(failed.nit),
            reason=optimizer_failure_reason(failed),
            threshold=control.tol,
        )
    theta_hat = opt_result.x
    n_iter = int(opt_result.nit)
    warn_list: list[str] = []

    diag = np.abs(theta_hat[theta_diagonal(re)])
    if np.any(diag < control.singular_tol):
        small = [re.terms[i] for i, d in enumerate(diag) if d < control.singular_tol]
        raise SingularFitError(
            f"Singular fit: random-effect covariance for {small} is at the "
            f"boundary (relative SD below {control.singular_tol:g}). "
            f"Simplify the random effects structure",
            theta=tuple(float(t) for t in theta_hat),
            tolerance=control.singular_tol,
        )

    # Final PLS solve at optimal θ
    with timer.section('final_solve'):
        pls = solve_pls(design.X, Z, y_net, build_lambda(theta_hat, re), reml=reml)
        blocks = marginal_blocks(theta_hat, re, clusters)
        gls = block_gls(design.X, y_net, clusters, blocks)
        vcov = pls.sigma_sq * gls.xtx_inv
        se = np.sqrt(np.maximum(np.diag(vcov), 0.0))

    with timer.section('variance_components'):
        var_comps = _extract_var_components(theta_hat, pls.sigma_sq, re)
        random_effs = pls.b.reshape(re.n_terms, re.n_groups).T.copy()
        icc = _intraclass_correlation(var_comps, pls.sigma_sq)

    with timer.section('satterthwaite'):
        sigma = float(np.sqrt(pls.sigma_sq))
        if compute_satterthwaite:
            approx = lmm_satterthwaite(theta_hat, sigma, design.X, y_net, re, clusters, reml)
            df_satt = approx.df_per_coefficient()
        else:
            approx = None
            df_satt = np.full(p, float(n - p))
        t_vals = pls.beta / se
        p_vals = 2.0 * stats.t.sf(np.abs(t_vals), df_satt)

    ll = -0.5 * deviance_from_pls(pls, n, p, reml)
    timer.stop()

    params = LMMParams(
        coefficients=pls.beta,
        coefficient_names=tuple(coefficient_names or _make_coef_names(p)),
        vcov=vcov,
        se=se,
        df_satterthwaite=df_satt,
        t_values=t_vals,
        p_values=p_vals,
        var_components=tuple(var_comps),
        residual_variance=pls.sigma_sq,
        residual_std=sigma,
        icc=icc,
        log_likelihood=float(ll),
        reml=reml,
        n_params=p + len(theta_hat) + 1,
        n_obs=n,
        n_groups=re.n_groups,
        group_name=group_name,
        converged=True,
        n_iter=n_iter,
        random_effects=random_effs,
        group_labels=tuple(group_labels) if group_labels is not None else design.group_labels,
        random_terms=re.terms,
        fitted_values=pls.fitted,
        residuals=pls.residuals,
        marginal_residuals=gls.residuals,
        theta=theta_hat,
        marginal_blocks=blocks,
        clusters=clusters,
        satterthwaite=approx,
    )

    return Result(
        params=params,
        info={
            'method': METHOD_REML if reml else METHOD_ML,
            'optimizer': 'L-BFGS-B',
            'converged': True,
            'n_iter': n_iter,
            'n_starts': len(theta_starts(re)),
            'deviance': float(opt_result.fun),
        },
        timing=timer.result(),
        backend_name='cpu_lmm',
        warnings=tuple(warn_list),
    )


def fit_linear_mixed_effects(
    table: Table,
    spec: ModelSpec,
    random_effects: tuple[str, ...] = (RANDOM_INTERCEPT,),
    *,
    reml: bool = True,
    control: FitControl | None = None,
) -> FittedModel:
    """Fit a linear mixed model to a table.

    Args:
        table: Source data.
        spec: Fixed effects and the grouping column (spec.group).
        random_effects: Terms that get a per-group random coefficient:
            '1' for the intercept, otherwise numeric column names.
        reml: REML (default) or ML estimation.
        control: Optimizer settings.

    Returns:
        FittedModel of kind 'lmm'.

    Raises:
        ValidationError: If the spec has no grouping column, or a random
            term is not a numeric column.
        RankDeficientError: If the fixed-effects design is rank-deficient.
        NonConvergenceError: If the optimizer exhausts its budget or stops
            without converging.
        SingularFitError: If the random-effects covariance is singular.

    Examples:
        >>> spec = (ModelSpec.builder('distance').crossed('age', 'Sex')
        ...         .grouped_by('Subject').build())
        >>> model = fit_linear_mixed_effects(orthodont, spec, ('1', 'age'))
    """
    if spec.group is None:
        raise ValidationError(
            "A mixed model needs a grouping column; use ModelSpec.builder(...).grouped_by(...)"
        )
    random_effects = tuple(random_effects)
    random_data = _random_slope_data(table, random_effects)

    design = build_design(table, spec)
    result = lmm(
        design.y, design.X, design.group_codes,
        random_terms=random_effects,
        random_data=random_data,
        group_name=spec.group,
        group_labels=design.group_labels,
        coefficient_names=design.column_names,
        reml=reml,
        control=control,
    )
    result = dataclasses.replace(result, warnings=design.warnings + result.warnings)
    params = result.params

    working = WorkingModel(
        X=design.X,
        y=design.y,
        residuals=params.marginal_residuals,
        clusters=params.clusters,
        phi_blocks=params.marginal_blocks,
        scale=params.residual_variance,
        df_residual=float(design.n - design.p),
    )
    return FittedModel(
        kind=KIND_LMM,
        spec=spec,
        coefficient_names=design.column_names,
        beta=params.coefficients,
        vcov_model=params.vcov,
        log_likelihood=params.log_likelihood,
        n_params=params.n_params,
        n_obs=params.n_obs,
        method=METHOD_REML if reml else METHOD_ML,
        variance_parameters=_variance_parameters(params),
        term_columns=design.term_columns,
        working=working,
        result=result,
        satterthwaite=params.satterthwaite,
        table=table,
        factor_levels=design.factor_levels,
        options={'random_effects': random_effects, 'control': control},
    )


def refit_ml(model: FittedModel) -> FittedModel:
    """Refit an LMM by maximum likelihood with the same structure."""
    if model.method == METHOD_ML:
        return model
    return fit_linear_mixed_effects(
        model.table, model.spec, model.options['random_effects'],
        reml=False, control=model.options.get('control'),
    )


def profile_log_likelihood(model: FittedModel, index: int, value: float) -> float:
    """ML log-likelihood with coefficient `index` held at `value`.

    The coefficient is moved into an offset and the remaining fixed
    effects and variance components are re-estimated.
    """
    control = model.options.get('control') or LIKELIHOOD_CONTROL
    X = model.working.X
    keep = [j for j in range(X.shape[1]) if j != index]
    codes = np.empty(model.n_obs, dtype=np.intp)
    for j, idx in enumerate(model.working.clusters):
        codes[idx] = j
    terms = model.options['random_effects']
    result = lmm(
        model.working.y, X[:, keep], codes,
        random_terms=terms,
        random_data=_random_slope_data(model.table, terms),
        offset=X[:, index] * value,
        reml=False,
        control=FitControl(
            tol=control.tol,
            max_iter=control.profile_max_iter,
            singular_tol=0.0,
        ),
        compute_satterthwaite=False,
    )
    return result.params.log_likelihood


# =====================================================================
# Helpers
# =====================================================================

def _random_slope_data(table: Table, terms: tuple[str, ...]) -> dict[str, NDArray]:
    data = {}
    for term in terms:
        if term == RANDOM_INTERCEPT:
            continue
        if term not in table:
            raise ValidationError(
                f"Random term '{term}' is not a column. Available: {list(table.keys())}"
            )
        if table.is_categorical(term):
            raise ValidationError(
                f"Random slope '{term}' must be a numeric column"
            )
        data[term] = table[term]
    return data


def _extract_var_components(
    theta: NDArray,
    sigma_sq: float,
    spec: RandomEffectSpec,
) -> list[VarCompSummary]:
    """Variance component summaries from θ and σ².

    The covariance of the random effects is σ² T T'.
    """
    T = theta_to_factor(theta, spec.n_terms)
    cov_matrix = sigma_sq * (T @ T.T)

    var_comps = []
    for i, term in enumerate(spec.terms):
        var_i = cov_matrix[i, i]
        sd_i = np.sqrt(max(var_i, 0.0))
        if i > 0 and cov_matrix[0, 0] > 0 and var_i > 0:
            corr = float(np.clip(
                cov_matrix[i, 0] / (np.sqrt(cov_matrix[0, 0]) * sd_i), -1.0, 1.0
            ))
        else:
            corr = None
        var_comps.append(VarCompSummary(
            group=spec.group_name,
            name=INTERCEPT if term == RANDOM_INTERCEPT else term,
            variance=float(var_i),
            std_dev=float(sd_i),
            corr=corr,
        ))
    return var_comps


def _intraclass_correlation(var_comps: list[VarCompSummary], sigma_sq: float) -> float:
    """σ²_b0 / (σ²_b0 + σ²), for the random intercept."""
    for vc in var_comps:
        if vc.name == INTERCEPT:
            return vc.variance / (vc.variance + sigma_sq)
    return float('nan')


def _variance_parameters(params: LMMParams) -> dict[str, float]:
    out = {}
    for vc in params.var_components:
        out[f"sd({vc.name}|{vc.group})"] = vc.std_dev
        if vc.corr is not None:
            out[f"cor({vc.name},{params.var_components[0].name}|{vc.group})"] = vc.corr
    out['sigma'] = params.residual_std
    return out


def _make_coef_names(p: int) -> list[str]:
    """Generate default coefficient names."""
    names = [INTERCEPT]
    for i in range(1, p):
        names.append(f'X{i}')
    return names[:p]
