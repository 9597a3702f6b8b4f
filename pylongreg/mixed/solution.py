"""
R-style display for fitted linear mixed models.

summarize() renders the layout of lmerTest::summary(lmer(...)):
random effects table, group counts, fixed effects with Satterthwaite
df, and the REML/ML criterion.
"""

from __future__ import annotations

import numpy as np

from pylongreg.core._formatting import coefficient_table
from pylongreg.core.fitted import FittedModel
from pylongreg.mixed._common import LMMParams


def summarize(model: FittedModel) -> str:
    """R-style summary matching lmerTest::summary(lmer(...))."""
    params: LMMParams = model.params
    method = 'REML' if params.reml else 'ML'

    lines = []
    lines.append(f"Linear mixed model fit by {method}")
    lines.append(f"Model: {model.spec}")
    lines.append("")

    lines.append("Random effects:")
    lines.append(f" {'Groups':<12s} {'Name':<15s} {'Variance':>10s} "
                 f"{'Std.Dev.':>10s} {'Corr':>6s}")
    prev_group = None
    for vc in params.var_components:
        grp_label = vc.group if vc.group != prev_group else ''
        corr_str = f'{vc.corr:6.2f}' if vc.corr is not None else ''
        lines.append(
            f" {grp_label:<12s} {vc.name:<15s} {vc.variance:10.4f} "
            f"{vc.std_dev:10.4f} {corr_str}"
        )
        prev_group = vc.group
    lines.append(
        f" {'Residual':<12s} {'':<15s} {params.residual_variance:10.4f} "
        f"{params.residual_std:10.4f}"
    )
    lines.append("")
    lines.append(
        f"Number of obs: {params.n_obs}, groups: {params.group_name}: {params.n_groups}"
    )
    lines.append("")

    lines.append("Fixed effects:")
    lines.extend(coefficient_table(
        params.coefficient_names,
        params.coefficients,
        params.se,
        params.t_values,
        params.p_values,
        stat_label='t value',
        p_label='Pr(>|t|)',
        df=params.df_satterthwaite,
    ))
    lines.append("")

    lines.append(f"{method} criterion at convergence: "
                 f"{-2 * params.log_likelihood:.1f}")
    lines.append(f"AIC: {model.aic:.1f}, BIC: {model.bic:.1f}")
    if np.isfinite(params.icc):
        lines.append(f"ICC ({params.group_name}): {params.icc:.4f}")
    for w in model.warnings:
        lines.append(f"Warning: {w}")
    return '\n'.join(lines)
