"""
R-style number formatting shared by the summary() printers.
"""

from __future__ import annotations

import numpy as np


SIGNIF_LEGEND = "Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1"


def significance_stars(p: float) -> str:
    """Return significance stars like R."""
    if not np.isfinite(p):
        return ' '
    if p < 0.001:
        return '***'
    elif p < 0.01:
        return '**'
    elif p < 0.05:
        return '*'
    elif p < 0.1:
        return '.'
    else:
        return ' '


def format_pvalue(p: float) -> str:
    """Format p-value like R."""
    if not np.isfinite(p):
        return 'NA'
    if p < 2e-16:
        return '< 2e-16'
    elif p < 0.001:
        return f'{p:.2e}'
    else:
        return f'{p:.4f}'


def coefficient_table(
    names: tuple[str, ...],
    estimates: np.ndarray,
    se: np.ndarray,
    stat: np.ndarray,
    p_values: np.ndarray,
    *,
    stat_label: str,
    p_label: str,
    df: np.ndarray | None = None,
) -> list[str]:
    """Render the fixed-effects block of a summary."""
    width = max(15, max((len(n) for n in names), default=0))
    df_header = f" {'df':>10s}" if df is not None else ''
    lines = [
        f" {'':>{width}s} {'Estimate':>10s} {'Std. Error':>10s}{df_header} "
        f"{stat_label:>10s} {p_label:>10s}"
    ]
    for i, name in enumerate(names):
        df_str = f" {df[i]:10.2f}" if df is not None else ''
        lines.append(
            f" {name:>{width}s} {estimates[i]:10.4f} {se[i]:10.4f}{df_str} "
            f"{stat[i]:10.3f} {format_pvalue(p_values[i]):>10s} "
            f"{significance_stars(p_values[i])}"
        )
    lines.append("---")
    lines.append(SIGNIF_LEGEND)
    return lines
