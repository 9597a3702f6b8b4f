"""
R-style display for fitted GLS models.

summarize() follows the layout of nlme's summary.gls: fit criteria,
correlation structure, variance function, coefficient table and the
residual standard error.
"""

from __future__ import annotations

from pylongreg.core._formatting import coefficient_table
from pylongreg.core.fitted import FittedModel
from pylongreg.gls._common import GLSParams


def summarize(model: FittedModel) -> str:
    """R-style summary matching nlme::summary(gls(...))."""
    params: GLSParams = model.params
    structure = params.structure

    lines = []
    lines.append(f"Generalized least squares fit by {params.method}")
    lines.append(f"  Model: {model.spec}")
    lines.append("")
    lines.append(f"{'AIC':>10s} {'BIC':>10s} {'logLik':>10s}")
    lines.append(f"{model.aic:10.4f} {model.bic:10.4f} {params.log_likelihood:10.4f}")
    lines.append("")

    if structure.is_correlated:
        lines.append(f"Correlation Structure: {structure.display_name}")
        if model.spec.group is not None:
            lines.append(f" Formula: ~1 | {model.spec.group}")
        tag = '' if 'rho' in params.estimated else ' (fixed)'
        lines.append(" Parameter estimate(s):")
        lines.append(f"       Rho{tag}")
        lines.append(f"  {params.rho:10.6f}")
        lines.append("")

    if params.multipliers:
        fixed = not any(name.startswith('log_delta') for name in params.estimated)
        lines.append("Variance function:")
        lines.append(" Structure: Different standard deviations per stratum"
                     + (" (fixed)" if fixed else ""))
        lines.append(f" Formula: ~1 | {structure.variance_by}")
        lines.append(" Parameter estimates:")
        lines.append(" " + " ".join(f"{lv:>10s}" for lv in params.multipliers))
        lines.append(" " + " ".join(f"{v:10.6f}" for v in params.multipliers.values()))
        lines.append("")

    lines.append("Coefficients:")
    lines.extend(coefficient_table(
        params.coefficient_names,
        params.coefficients,
        params.se,
        params.t_values,
        params.p_values,
        stat_label='t-value',
        p_label='p-value',
        df=params.df_satterthwaite,
    ))
    lines.append("")
    lines.append(
        f"Residual standard error: {params.residual_std:.6f}"
    )
    lines.append(
        f"Degrees of freedom: {params.n_obs} total; "
        f"{params.n_obs - len(params.coefficients)} residual"
    )
    for w in model.warnings:
        lines.append(f"Warning: {w}")
    return '\n'.join(lines)
