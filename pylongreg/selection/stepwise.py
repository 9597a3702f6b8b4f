"""
Greedy stepwise term selection by AIC or BIC.

Follows R's step(): at every step each admissible single-term addition
and deletion is fitted, and the one with the lowest criterion is taken
if it strictly improves on the current model. Two rules make the search
deterministic and hierarchical:

    - marginality: an interaction can be added only when all of its
      margins are present, and a term can be dropped only when no
      interaction in the model contains it
    - ties: equal criterion values go to the lexicographically first
      term label
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from pylongreg.core.capabilities import METHOD_REML
from pylongreg.core.exceptions import PyLongRegError, ValidationError
from pylongreg.core.fitted import FittedModel
from pylongreg.core.validation import check_choice
from pylongreg.data.table import Table
from pylongreg.design.spec import ModelSpec, Term
from pylongreg.regression.solvers import fit_logistic_regression

DIRECTION_BOTH = 'both'
DIRECTION_FORWARD = 'forward'
DIRECTION_BACKWARD = 'backward'
ALL_DIRECTIONS = (DIRECTION_BOTH, DIRECTION_FORWARD, DIRECTION_BACKWARD)

CRITERION_AIC = 'aic'
CRITERION_BIC = 'bic'
ALL_CRITERIA = (CRITERION_AIC, CRITERION_BIC)

# A change must lower the criterion by more than this to be taken
_IMPROVEMENT_TOL = 1e-7


@dataclass(frozen=True)
class Scope:
    """
    Bounds of the search: every visited model has lower ⊆ terms ⊆ upper.

    Attributes:
        lower: Terms that are never dropped.
        upper: Terms that may be present.
    """
    lower: tuple[Term, ...] = field(default_factory=tuple)
    upper: tuple[Term, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        extra = [t.label for t in self.lower if t not in set(self.upper)]
        if extra:
            raise ValidationError(f"Scope lower terms are not in upper: {extra}")

    @classmethod
    def from_specs(cls, lower: ModelSpec | None, upper: ModelSpec) -> Scope:
        """Scope spanning the terms of two specs."""
        return cls(
            lower=tuple(lower.terms) if lower is not None else (),
            upper=tuple(upper.terms),
        )

    @classmethod
    def of(cls, upper: Iterable[Term], lower: Iterable[Term] = ()) -> Scope:
        return cls(lower=tuple(lower), upper=tuple(upper))


def stepwise_select(
    table: Table,
    base_spec: ModelSpec,
    scope: Scope,
    direction: str = DIRECTION_BOTH,
    criterion: str = CRITERION_AIC,
    *,
    fitter: Callable[[Table, ModelSpec], FittedModel] = fit_logistic_regression,
) -> FittedModel:
    """
    Stepwise search over the terms between scope.lower and scope.upper.

    Args:
        table: Data.
        base_spec: Starting model; its terms must lie within the scope.
        scope: Search bounds.
        direction: 'both' (default), 'forward' or 'backward'.
        criterion: 'aic' (default) or 'bic'.
        fitter: (table, spec) → FittedModel. Must fit by ML, since
            criteria are compared across different fixed effects.

    Returns:
        The selected FittedModel. Its info['selection_path'] lists the
        steps taken, starting with the base model.

    Raises:
        ValidationError: On a base outside the scope, an unknown
            direction or criterion, or a REML fitter.
        PyLongRegError: If the base model itself cannot be fitted.
            Candidate fits that fail are skipped with a RuntimeWarning.

    Examples:
        >>> full = ModelSpec.builder('admit').main('gre', 'gpa', 'rank').build()
        >>> best = stepwise_select(admissions, full, Scope.from_specs(None, full),
        ...                        direction='backward')
    """
    check_choice(direction, ALL_DIRECTIONS, 'direction')
    check_choice(criterion, ALL_CRITERIA, 'criterion')
    upper = set(scope.upper)
    outside = [t.label for t in base_spec.terms if t not in upper]
    missing = [t.label for t in scope.lower if not base_spec.has_term(t)]
    if outside or missing:
        raise ValidationError(
            f"Base model must lie within the scope; terms outside upper: "
            f"{outside}, lower terms missing: {missing}"
        )

    current = fitter(table, base_spec)
    if current.method == METHOD_REML:
        raise ValidationError(
            "Stepwise selection compares models with different fixed effects; "
            "REML criteria are not comparable there. Use an ML fitter"
        )
    score = _criterion(current, criterion)
    path: list[dict[str, Any]] = [
        {'step': 0, 'action': 'start', 'term': None, 'criterion': score,
         'spec': str(current.spec)},
    ]

    while True:
        best = None
        for action, term, spec in _moves(current.spec, scope, direction):
            try:
                candidate = fitter(table, spec)
            except PyLongRegError as e:
                msg = f"Skipping {action}{term.label}: {type(e).__name__}: {e}"
                warnings.warn(msg, RuntimeWarning, stacklevel=2)
                continue
            key = (_criterion(candidate, criterion), term.label)
            if best is None or key < best[0]:
                best = (key, action, term, candidate)

        if best is None or not best[0][0] < score - _IMPROVEMENT_TOL:
            break
        (score, label), action, _, current = best
        path.append({
            'step': len(path), 'action': action, 'term': label,
            'criterion': score, 'spec': str(current.spec),
        })

    result = current.result.with_info(
        selection_path=tuple(path), selection_criterion=criterion,
    )
    return dataclasses.replace(current, result=result)


def _moves(
    spec: ModelSpec,
    scope: Scope,
    direction: str,
) -> list[tuple[str, Term, ModelSpec]]:
    """Admissible single-term changes as (action, term, new spec)."""
    moves = []
    present = spec.term_set
    if direction in (DIRECTION_BOTH, DIRECTION_BACKWARD):
        lower = set(scope.lower)
        for term in spec.terms:
            if term in lower:
                continue
            if any(other.contains(term) for other in spec.terms):
                continue
            moves.append(('-', term, spec.drop_term(term)))
    if direction in (DIRECTION_BOTH, DIRECTION_FORWARD):
        for term in scope.upper:
            if term in present:
                continue
            if not all(m in present for m in term.margins()):
                continue
            moves.append(('+', term, spec.add_term(term)))
    return moves


def _criterion(model: FittedModel, criterion: str) -> float:
    return model.aic if criterion == CRITERION_AIC else model.bic
