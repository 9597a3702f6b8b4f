"""
Generalized least squares with structured residual covariance.

Public API:
    gls()                            — array-level fit (REML / ML)
    fit_generalized_least_squares()  — fit from a Table and a ModelSpec
    CovarianceStructure              — independent / compound symmetry /
                                       AR(1) / identity by group
"""

from pylongreg.gls.structures import CovarianceStructure
from pylongreg.gls.solvers import gls, fit_generalized_least_squares
from pylongreg.gls._common import GLSParams

__all__ = [
    "CovarianceStructure",
    "gls",
    "fit_generalized_least_squares",
    "GLSParams",
]
