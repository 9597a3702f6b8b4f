"""
Structured model specification.

A ModelSpec names a response, an ordered set of predictor terms and an
optional grouping column. It is built with a small builder instead of a
formula string so that term identity is explicit:

    spec = (ModelSpec.builder('distance')
            .crossed('age', 'Sex')          # age + Sex + age:Sex
            .grouped_by('Subject')
            .build())

Term identity is the *set* of its variables, so age:Sex and Sex:age are
the same term. Term order within a spec is preserved for display and
column order; comparisons use sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from itertools import combinations
from typing import Iterable

from pylongreg.core.exceptions import ValidationError


@dataclass(frozen=True, eq=False)
class Term:
    """
    A main effect (one variable) or an interaction (several).

    Attributes:
        variables: Variable names in display order.
    """
    variables: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.variables:
            raise ValidationError("A term needs at least one variable")
        if len(set(self.variables)) != len(self.variables):
            raise ValidationError(
                f"Term repeats a variable: {':'.join(self.variables)}"
            )

    @classmethod
    def of(cls, *variables: str) -> Term:
        return cls(tuple(variables))

    @property
    def label(self) -> str:
        """Display label, e.g. 'age:Sex'."""
        return ':'.join(self.variables)

    @property
    def order(self) -> int:
        """1 for main effects, 2 for two-way interactions, ..."""
        return len(self.variables)

    @property
    def key(self) -> frozenset[str]:
        return frozenset(self.variables)

    def contains(self, other: Term) -> bool:
        """True if other's variables are a proper subset of this term's."""
        return other.key < self.key

    def margins(self) -> tuple[Term, ...]:
        """All lower-order terms implied by this term (proper subsets)."""
        out = []
        for k in range(1, self.order):
            for combo in combinations(self.variables, k):
                out.append(Term(combo))
        return tuple(out)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Term):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Term({self.label})"

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class ModelSpec:
    """
    Response, predictor terms and (optional) grouping column.

    Attributes:
        response: Response column name.
        terms: Predictor terms, without duplicates.
        group: Column identifying repeated-measures clusters, or None.
        intercept: Whether the design includes an intercept column.
    """
    response: str
    terms: tuple[Term, ...] = field(default_factory=tuple)
    group: str | None = None
    intercept: bool = True

    def __post_init__(self) -> None:
        seen: set[Term] = set()
        for term in self.terms:
            if term in seen:
                raise ValidationError(f"Duplicate term {term.label!r} in model spec")
            seen.add(term)
            if self.response in term.variables:
                raise ValidationError(
                    f"Response '{self.response}' cannot also be a predictor"
                )
        if self.group is not None and self.group == self.response:
            raise ValidationError("Grouping column cannot be the response")

    @staticmethod
    def builder(response: str) -> ModelSpecBuilder:
        return ModelSpecBuilder(response)

    # === Term algebra ===

    @property
    def term_set(self) -> frozenset[Term]:
        return frozenset(self.terms)

    @property
    def variables(self) -> tuple[str, ...]:
        """Every predictor variable referenced by a term, first-seen order."""
        out: list[str] = []
        for term in self.terms:
            for v in term.variables:
                if v not in out:
                    out.append(v)
        return tuple(out)

    def has_term(self, term: Term) -> bool:
        return term in self.term_set

    def with_terms(self, terms: Iterable[Term]) -> ModelSpec:
        """Same response/group/intercept with a new term list."""
        return replace(self, terms=_ordered(terms))

    def add_term(self, term: Term) -> ModelSpec:
        if self.has_term(term):
            return self
        return self.with_terms((*self.terms, term))

    def drop_term(self, term: Term) -> ModelSpec:
        if not self.has_term(term):
            raise ValidationError(f"Term {term.label!r} is not in the model")
        return self.with_terms(t for t in self.terms if t != term)

    def is_hierarchical(self) -> bool:
        """True if every interaction's margins are also in the model."""
        terms = self.term_set
        return all(m in terms for t in self.terms for m in t.margins())

    def validate(self, table) -> None:
        """
        Check that the spec can be evaluated against a table.

        Raises:
            ValidationError: If a referenced column is missing, or the
                grouping column has missing values (so it does not
                partition the rows).
        """
        needed = [self.response, *self.variables]
        if self.group is not None:
            needed.append(self.group)
        absent = [c for c in needed if c not in table]
        if absent:
            raise ValidationError(
                f"Columns not found in table: {absent}. "
                f"Available: {list(table.keys())}"
            )
        if self.group is not None and table.is_missing(self.group).any():
            n_missing = int(table.is_missing(self.group).sum())
            raise ValidationError(
                f"Grouping column '{self.group}' has {n_missing} missing "
                f"value(s); every row must belong to a cluster"
            )

    def __str__(self) -> str:
        rhs = [t.label for t in self.terms]
        if self.intercept:
            rhs = ['1'] + rhs if not rhs else rhs
        else:
            rhs = ['0'] + rhs
        text = f"{self.response} ~ {' + '.join(rhs)}"
        if self.group is not None:
            text += f" | {self.group}"
        return text


class ModelSpecBuilder:
    """
    Fluent builder for ModelSpec.

    Example:
        >>> spec = (ModelSpec.builder('admit')
        ...         .main('gre', 'gpa', 'rank')
        ...         .build())
    """

    def __init__(self, response: str):
        self._response = response
        self._terms: list[Term] = []
        self._group: str | None = None
        self._intercept = True

    def main(self, *variables: str) -> ModelSpecBuilder:
        """Add one main effect per variable."""
        for v in variables:
            self._add(Term((v,)))
        return self

    def interaction(self, *variables: str) -> ModelSpecBuilder:
        """Add the single interaction term a:b(:c...)."""
        if len(variables) < 2:
            raise ValidationError("An interaction needs at least two variables")
        self._add(Term(tuple(variables)))
        return self

    def crossed(self, *variables: str) -> ModelSpecBuilder:
        """Add all main effects and interactions (a*b in formula notation)."""
        for k in range(1, len(variables) + 1):
            for combo in combinations(variables, k):
                self._add(Term(combo))
        return self

    def term(self, term: Term) -> ModelSpecBuilder:
        self._add(term)
        return self

    def grouped_by(self, column: str) -> ModelSpecBuilder:
        self._group = column
        return self

    def without_intercept(self) -> ModelSpecBuilder:
        self._intercept = False
        return self

    def build(self) -> ModelSpec:
        return ModelSpec(
            response=self._response,
            terms=tuple(self._terms),
            group=self._group,
            intercept=self._intercept,
        )

    def _add(self, term: Term) -> None:
        if term not in self._terms:
            self._terms.append(term)


def _ordered(terms: Iterable[Term]) -> tuple[Term, ...]:
    """Deduplicate, then order by interaction order (stable)."""
    unique: list[Term] = []
    for t in terms:
        if t not in unique:
            unique.append(t)
    return tuple(sorted(unique, key=lambda t: t.order))
