"""
Linear mixed models.

Public API:
    lmm()                       — array-level fit (REML / ML)
    fit_linear_mixed_effects()  — fit from a Table and a ModelSpec
"""

from pylongreg.mixed.solvers import lmm, fit_linear_mixed_effects
from pylongreg.mixed._common import LMMParams, VarCompSummary

__all__ = [
    "lmm",
    "fit_linear_mixed_effects",
    "LMMParams",
    "VarCompSummary",
]
