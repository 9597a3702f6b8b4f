"""
Fitting a batch of candidate models.

Each candidate is fitted independently; one that fails with a library
error is reported as unavailable and the rest of the batch continues.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

from pylongreg.core.exceptions import PyLongRegError
from pylongreg.core.fitted import FittedModel


@dataclass(frozen=True)
class CandidateFit:
    """
    Outcome of one candidate fit.

    Attributes:
        name: Candidate name.
        model: The fitted model, or None if the fit failed.
        error: The exception that aborted the fit, or None.
    """
    name: str
    model: FittedModel | None = None
    error: PyLongRegError | None = None

    @property
    def available(self) -> bool:
        return self.model is not None


def fit_candidates(
    candidates: Mapping[str, Callable[[], FittedModel]],
) -> dict[str, CandidateFit]:
    """
    Fit each named candidate, in order.

    Args:
        candidates: Name → zero-argument callable returning a FittedModel,
            e.g. ``lambda: fit_generalized_least_squares(tbl, spec, cs)``.

    Returns:
        Name → CandidateFit, in the input order.

    Examples:
        >>> fits = fit_candidates({'cs': lambda: fit_gls(tbl, spec, cs),
        ...                        'ar1': lambda: fit_gls(tbl, spec, ar1)})
        >>> [n for n, f in fits.items() if f.available]
    """
    out: dict[str, CandidateFit] = {}
    for name, fit in candidates.items():
        try:
            out[name] = CandidateFit(name=name, model=fit())
        except PyLongRegError as e:
            out[name] = CandidateFit(name=name, error=e)
    return out
