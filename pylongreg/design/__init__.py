"""
Model specification and design matrices.

Public API:
    Term, ModelSpec  — structured model specification (builder, no formula strings)
    build_design()   — evaluate a spec against a Table
    DesignMatrix     — X, y, column names, cluster codes
"""

from pylongreg.design.spec import Term, ModelSpec, ModelSpecBuilder
from pylongreg.design.matrix import DesignMatrix, build_design, model_matrix, INTERCEPT

__all__ = [
    "Term",
    "ModelSpec",
    "ModelSpecBuilder",
    "DesignMatrix",
    "build_design",
    "model_matrix",
    "INTERCEPT",
]
