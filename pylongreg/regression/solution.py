"""
R-style display for fitted logistic regressions.
"""

from __future__ import annotations

import numpy as np

from pylongreg.core._formatting import coefficient_table
from pylongreg.core.fitted import FittedModel
from pylongreg.regression._common import LogisticParams


def summarize(model: FittedModel) -> str:
    """R-style summary matching summary(glm(..., family = binomial))."""
    params: LogisticParams = model.params

    lines = []
    lines.append("Call:")
    lines.append(f"glm(formula = {model.spec}, family = {params.family_name}"
                 f"(link = {params.link_name}))")
    lines.append("")

    q = np.percentile(params.residuals_deviance, [0, 25, 50, 75, 100])
    lines.append("Deviance Residuals:")
    lines.append(f"{'Min':>10s} {'1Q':>10s} {'Median':>10s} {'3Q':>10s} {'Max':>10s}")
    lines.append(' '.join(f"{v:10.4f}" for v in q))
    lines.append("")

    lines.append("Coefficients:")
    lines.extend(coefficient_table(
        params.coefficient_names,
        params.coefficients,
        params.se,
        params.z_values,
        params.p_values,
        stat_label='z value',
        p_label='Pr(>|z|)',
    ))
    lines.append("")
    lines.append(f"(Dispersion parameter for {params.family_name} family taken to be 1)")
    lines.append("")
    lines.append(
        f"    Null deviance: {params.null_deviance:.2f}  on {params.df_null}  degrees of freedom"
    )
    lines.append(
        f"Residual deviance: {params.deviance:.2f}  on {params.df_residual}  degrees of freedom"
    )
    lines.append(f"AIC: {params.aic:.2f}")
    lines.append(f"McFadden pseudo R-squared: {params.pseudo_r_squared:.4f}")
    lines.append("")
    lines.append(f"Number of Fisher Scoring iterations: {params.n_iter}")
    for w in model.warnings:
        lines.append(f"Warning: {w}")
    return '\n'.join(lines)
