"""
Model selection.

Public API:
    compare(), compare_chain()  — likelihood-ratio tests with AIC/BIC
    fit_candidates()            — fit a batch, reporting failures per fit
    stepwise_select(), Scope    — greedy AIC/BIC search over terms
"""

from pylongreg.selection.compare import ComparisonResult, compare, compare_chain
from pylongreg.selection.batch import CandidateFit, fit_candidates
from pylongreg.selection.stepwise import Scope, stepwise_select

__all__ = [
    "ComparisonResult",
    "compare",
    "compare_chain",
    "CandidateFit",
    "fit_candidates",
    "Scope",
    "stepwise_select",
]
